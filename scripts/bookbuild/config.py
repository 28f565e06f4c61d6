"""
Build configuration: load, validate, and provide defaults for book.yaml.

The result is a frozen BuildConfig, created once at start-up and handed
to every component. Nothing mutates it afterwards.
"""

import copy
import os
from dataclasses import dataclass, field
from types import MappingProxyType

import yaml

from bookbuild.resolve import find_sources


# Output formats, in the order the composite target builds them
FORMATS = ["pdf", "html", "epub", "json"]

# Steps that are not output formats
ASSET_TASKS = ["css", "inline", "js", "package"]

STEPS = FORMATS + ASSET_TASKS

PROFILE_FIELDS = {"output", "template", "filters", "metadata", "args"}

# Expected YAML types for top-level keys
FIELD_TYPES = {
    "name": str,
    "pandoc": str,
    "from": str,
    "flags": list,
    "metadata": (str, type(None)),
    "pages_dir": str,
    "pages": (list, type(None)),
    "output_dir": str,
    "temp_dir": str,
    "port": int,
    "profiles": dict,
    "assets": dict,
    "watch": dict,
    "analytics": dict,
}

MARKDOWN_EXTENSIONS = [
    "smart",
    "grid_tables",
    "multiline_tables",
    "fenced_code_blocks",
    "fenced_code_attributes",
    "yaml_metadata_block",
    "implicit_figures",
    "header_attributes",
    "definition_lists",
    "link_attributes",
]

# Defaults applied if missing
DEFAULTS = {
    "name": "essential-slick",
    "pandoc": "pandoc",
    "from": "markdown+" + "+".join(MARKDOWN_EXTENSIONS),
    "flags": [
        "--top-level-division=chapter",
        "--number-sections",
        "--toc",
        "--highlight-style=tango",
        "--standalone",
        "--embed-resources",
        "--citeproc",
    ],
    "metadata": "src/meta/metadata.yaml",
    "pages_dir": "src/pages",
    "pages": None,
    "output_dir": "dist",
    "temp_dir": "dist/temp",
    "port": 4000,
    "profiles": {
        "pdf": {
            "output": "dist/{name}.pdf",
            "template": "src/templates/template.tex",
            "filters": [
                "src/filters/pdf/callout.lua",
                "src/filters/pdf/columns.lua",
            ],
            "metadata": "src/meta/pdf.yaml",
            "args": ["--pdf-engine=xelatex"],
        },
        "html": {
            "output": "dist/{name}.html",
            "template": "src/templates/template.html",
            "filters": ["src/filters/html/tables.lua"],
            "metadata": "src/meta/html.yaml",
            "args": [
                "--include-in-header={temp_dir}/html/main.css.html",
                "--include-after-body={temp_dir}/html/main.js.html",
            ],
        },
        "epub": {
            "output": "dist/{name}.epub",
            "template": "src/templates/template.epub.html",
            "filters": [
                "src/filters/epub/callout.lua",
                "src/filters/epub/columns.lua",
            ],
            "metadata": "src/meta/epub.yaml",
            "args": [
                "--css={temp_dir}/epub/main.css",
                "--epub-cover-image=src/covers/epub-cover.png",
            ],
        },
        "json": {
            "output": "dist/{name}.json",
            "template": None,
            "filters": [],
            "metadata": "src/meta/html.yaml",
            "args": [],
        },
    },
    "assets": {
        "css": {
            "command": "lessc",
            "source_dir": "src/css",
            "formats": ["html", "epub"],
        },
        "js": {
            "command": "browserify",
            "entry": "src/js/main.js",
        },
    },
    "watch": {
        "css": {"patterns": ["src/css/*"], "tasks": ["css", "inline", "html"]},
        "js": {"patterns": ["src/js/*"], "tasks": ["js", "html"]},
        "pages": {"patterns": ["src/pages/*"], "tasks": ["html"]},
        "templates": {"patterns": ["src/templates/*"], "tasks": ["html"]},
        "filters": {"patterns": ["src/filters/*"], "tasks": ["html"]},
        "metadata": {"patterns": ["src/meta/*"], "tasks": ["html"]},
    },
    "analytics": {
        "link": '<link rel="import" href="../../analytics.html">',
    },
}


class ConfigError(Exception):
    """Raised when book.yaml is invalid or a build request cannot be satisfied."""
    pass


@dataclass(frozen=True)
class FormatProfile:
    """Fixed pandoc parameters for one output format."""

    name: str
    output: str
    template: str = None
    filters: tuple = ()
    metadata: str = None
    args: tuple = ()


@dataclass(frozen=True)
class WatchGroup:
    name: str
    patterns: tuple
    tasks: tuple


@dataclass(frozen=True)
class BuildConfig:
    """
    Loaded, validated build configuration.

    Usage:
        config = BuildConfig.load(project_root)
        config.profiles["pdf"].output   # "dist/essential-slick.pdf"
        config.sources                  # ("src/pages/intro.md", ...)
    """

    root: str
    name: str
    pandoc: str
    from_format: str
    flags: tuple
    shared_metadata: str
    sources: tuple
    output_dir: str
    temp_dir: str
    profiles: MappingProxyType
    assets: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    watch: tuple = ()
    port: int = 4000
    analytics_link: str = ""

    @classmethod
    def load(cls, root, filename="book.yaml"):
        """Load and validate book.yaml from a project root."""
        yaml_path = os.path.join(root, filename)
        if not os.path.exists(yaml_path):
            raise ConfigError(f"No {filename} found in {root}")

        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"{filename} must be a YAML mapping, got {type(data).__name__}"
            )

        return cls.from_dict(data, root)

    @classmethod
    def from_dict(cls, data, root):
        """Merge a raw mapping over DEFAULTS and freeze the result."""
        merged = _merge(DEFAULTS, data)
        _check_types(merged)

        pandoc = os.environ.get("PANDOC") or merged["pandoc"]
        subs = {"name": merged["name"], "temp_dir": merged["temp_dir"]}

        profiles = {}
        for fmt, raw in merged["profiles"].items():
            if fmt not in FORMATS:
                raise ConfigError(
                    f"Unknown format profile '{fmt}' (expected one of: {', '.join(FORMATS)})"
                )
            profiles[fmt] = _profile(fmt, raw, subs)

        sources = find_sources(root, merged["pages_dir"], merged["pages"])
        if not sources:
            raise ConfigError(f"No markdown pages found in {merged['pages_dir']}")

        watch = tuple(_watch_group(g, spec) for g, spec in merged["watch"].items())

        return cls(
            root=os.path.abspath(root),
            name=merged["name"],
            pandoc=pandoc,
            from_format=merged["from"],
            flags=tuple(merged["flags"]),
            shared_metadata=merged["metadata"],
            sources=tuple(sources),
            output_dir=merged["output_dir"],
            temp_dir=merged["temp_dir"],
            profiles=MappingProxyType(profiles),
            assets=_freeze(merged["assets"]),
            watch=watch,
            port=merged["port"],
            analytics_link=merged["analytics"].get("link", ""),
        )

    # ── Convenience ────────────────────────────────────────

    def path(self, relpath):
        """Absolute path for a project-relative path."""
        return os.path.join(self.root, relpath)

    def profile(self, fmt):
        try:
            return self.profiles[fmt]
        except KeyError:
            raise ConfigError(
                f"Unsupported format '{fmt}' (expected one of: {', '.join(self.profiles)})"
            )

    def summary(self):
        """Print a short config summary."""
        print(f"\n  Book:    {self.name}")
        print(f"  Source:  {self.root}")
        print(f"  Pages:   {len(self.sources)} files")
        print(f"  Output:  {self.path(self.output_dir)}")


# ── Internal helpers ───────────────────────────────────────────────────


def _merge(defaults, overrides):
    """Recursively merge overrides into a deep copy of defaults."""
    result = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _check_types(merged):
    """Reject top-level keys whose YAML value has the wrong type."""
    for key, kind in FIELD_TYPES.items():
        value = merged.get(key)
        if isinstance(value, bool) or not isinstance(value, kind):
            kinds = kind if isinstance(kind, tuple) else (kind,)
            expected = " or ".join(k.__name__ for k in kinds if k is not type(None))
            raise ConfigError(
                f"'{key}' must be {expected}, got {type(value).__name__}"
            )
    for section in ("css", "js"):
        if not isinstance(merged["assets"].get(section, {}), dict):
            raise ConfigError(f"'assets.{section}' must be a mapping")


def _check_list(value, where):
    if value is not None and not isinstance(value, list):
        raise ConfigError(f"{where} must be a list, got {type(value).__name__}")
    return value or []


def _freeze(value):
    """Read-only copy of a parsed YAML value: dicts become proxies, lists tuples."""
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _profile(fmt, raw, subs):
    if not isinstance(raw, dict):
        raise ConfigError(f"Profile '{fmt}' must be a mapping")

    unknown = set(raw) - PROFILE_FIELDS
    if unknown:
        raise ConfigError(
            f"Profile '{fmt}' has unknown fields: {', '.join(sorted(unknown))}"
        )
    if not raw.get("output"):
        raise ConfigError(f"Profile '{fmt}' is missing an output path")

    def expand(value, where):
        if not value:
            return value
        if not isinstance(value, str):
            raise ConfigError(
                f"Profile '{fmt}' {where} must be a string, got {type(value).__name__}"
            )
        try:
            return value.format(**subs)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigError(
                f"Profile '{fmt}' {where}: bad placeholder in '{value}' "
                f"(available: {', '.join('{' + k + '}' for k in subs)}): {e!r}"
            )

    filters = _check_list(raw.get("filters"), f"Profile '{fmt}' filters")
    args = _check_list(raw.get("args"), f"Profile '{fmt}' args")

    return FormatProfile(
        name=fmt,
        output=expand(raw["output"], "output"),
        template=expand(raw.get("template"), "template"),
        filters=tuple(expand(f, f"filters[{i}]") for i, f in enumerate(filters)),
        metadata=expand(raw.get("metadata"), "metadata"),
        args=tuple(expand(a, f"args[{i}]") for i, a in enumerate(args)),
    )


def _watch_group(name, spec):
    if not isinstance(spec, dict):
        raise ConfigError(f"Watch group '{name}' must be a mapping")

    tasks = tuple(_check_list(spec.get("tasks"), f"Watch group '{name}' tasks"))
    unknown = [str(t) for t in tasks if t not in STEPS]
    if unknown:
        raise ConfigError(
            f"Watch group '{name}' has unknown tasks: {', '.join(unknown)}"
        )

    patterns = _check_list(spec.get("patterns"), f"Watch group '{name}' patterns")
    return WatchGroup(
        name=name,
        patterns=tuple(patterns),
        tasks=tasks,
    )
