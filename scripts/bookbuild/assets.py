"""
Auxiliary asset tasks consumed by the html and epub builds.

    css      lessc src/css/<fmt>.less → dist/temp/<fmt>/main.css
    inline   main.css → <style> fragment for --include-in-header
    js       browserify src/js/main.js → <script> fragment for --include-after-body
    package  all format outputs → dist/<name>.zip

Also home to the analytics injector run on the published html.
"""

import logging
import os
import zipfile

from bookbuild.process import BuildResult, run_process

logger = logging.getLogger(__name__)


def _temp(config, *parts):
    return os.path.join(config.temp_dir, *parts).replace(os.sep, "/")


# ── Style compiler ─────────────────────────────────────────────────────


async def compile_styles(config, spawn=run_process):
    """Compile one stylesheet per format. Stops at the first failure."""
    css = config.assets.get("css", {})
    command = css.get("command", "lessc")
    source_dir = css.get("source_dir", "src/css")

    for fmt in css.get("formats", ["html", "epub"]):
        source = f"{source_dir}/{fmt}.less"
        target = _temp(config, fmt, "main.css")
        os.makedirs(os.path.dirname(config.path(target)), exist_ok=True)

        logger.info("Compiling %s → %s", source, target)
        result = await spawn([command, source, target], "css", cwd=config.root)
        if not result.ok:
            logger.error("  ✗ %s", result.describe())
            return result

    return BuildResult.succeeded("css")


# ── Inliner ────────────────────────────────────────────────────────────


def wrap_fragment(source, target, tag):
    """
    Wrap the contents of a file in a single HTML element.

    Returns True on success, False if the source does not exist.
    """
    if not os.path.exists(source):
        return False

    with open(source, "r", encoding="utf-8") as f:
        content = f.read()

    os.makedirs(os.path.dirname(target), exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        f.write(f"<{tag}>\n{content.rstrip()}\n</{tag}>\n")
    return True


async def inline_styles(config):
    """Turn the compiled html stylesheet into a header fragment."""
    source = config.path(_temp(config, "html", "main.css"))
    target = config.path(_temp(config, "html", "main.css.html"))

    if not wrap_fragment(source, target, "style"):
        logger.error("  ✗ %s not found. Run the css task first.", source)
        return BuildResult.failed("inline", error=f"{source} not found")

    logger.debug("  Inlined %s", target)
    return BuildResult.succeeded("inline")


# ── Script bundler ─────────────────────────────────────────────────────


async def bundle_scripts(config, spawn=run_process):
    """Bundle the entry script, then wrap it for the html template."""
    js = config.assets.get("js", {})
    command = js.get("command", "browserify")
    entry = js.get("entry", "src/js/main.js")
    bundle = _temp(config, "html", "main.js")
    os.makedirs(os.path.dirname(config.path(bundle)), exist_ok=True)

    logger.info("Bundling %s → %s", entry, bundle)
    result = await spawn([command, entry, "-o", bundle], "js", cwd=config.root)
    if not result.ok:
        logger.error("  ✗ %s", result.describe())
        return result

    fragment = config.path(_temp(config, "html", "main.js.html"))
    if not wrap_fragment(config.path(bundle), fragment, "script"):
        return BuildResult.failed("js", error=f"{bundle} was not written")
    return BuildResult.succeeded("js")


# ── Packaging ──────────────────────────────────────────────────────────


def archive_path(config):
    return config.path(os.path.join(config.output_dir, f"{config.name}.zip"))


async def package_outputs(config):
    """Bundle every format output into one zip archive."""
    outputs = [config.path(p.output) for p in config.profiles.values()]
    missing = [p for p in outputs if not os.path.exists(p)]
    if missing:
        for path in missing:
            logger.error("  ✗ %s not found", path)
        return BuildResult.failed("package", error=f"{len(missing)} output(s) missing")

    target = archive_path(config)
    with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as zout:
        for path in outputs:
            zout.write(path, os.path.join(config.name, os.path.basename(path)))

    logger.info("  ✓ %s", target)
    return BuildResult.succeeded("package")


# ── Analytics ──────────────────────────────────────────────────────────


def inject_analytics(html_path, link):
    """
    Insert the analytics link on its own line before </head>.

    Leaves the file alone if the link is already present.
    """
    if not os.path.exists(html_path):
        logger.error("  ✗ %s not found", html_path)
        return BuildResult.failed("analytics", error=f"{html_path} not found")

    with open(html_path, "r", encoding="utf-8") as f:
        lines = f.read().split("\n")

    if any(link in line for line in lines):
        logger.info("  Analytics already present in %s", html_path)
        return BuildResult.succeeded("analytics")

    for i, line in enumerate(lines):
        if "</head>" in line:
            lines.insert(i, link)
            break
    else:
        logger.error("  ✗ No </head> in %s", html_path)
        return BuildResult.failed("analytics", error="no </head> element")

    with open(html_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))

    logger.info("  ✓ Injected analytics into %s", html_path)
    return BuildResult.succeeded("analytics")
