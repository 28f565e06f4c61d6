"""
Tests for the document build coordinator.
"""
import asyncio
import os

import pytest

from bookbuild.config import FORMATS, ConfigError
from bookbuild.coordinator import Coordinator, filter_args
from bookbuild.process import BuildResult, BuildState


def test_pdf_command_layout(config):
    cmd = Coordinator(config).command("pdf")
    assert cmd == [
        "pandoc",
        f"--from={config.from_format}",
        *config.flags,
        "--output=dist/test-book.pdf",
        "--template=src/templates/template.tex",
        "--lua-filter=src/filters/pdf/callout.lua",
        "--lua-filter=src/filters/pdf/columns.lua",
        "--metadata-file=src/meta/metadata.yaml",
        "--metadata-file=src/meta/pdf.yaml",
        "--pdf-engine=xelatex",
        "src/pages/1-basics.md",
        "src/pages/2-selecting.md",
        "src/pages/10-appendix.md",
    ]


@pytest.mark.parametrize("fmt", FORMATS)
def test_command_matches_profile(config, fmt):
    profile = config.profiles[fmt]
    coordinator = Coordinator(config)
    cmd = coordinator.command(fmt)

    assert f"--output={profile.output}" in cmd
    assert f"--metadata-file={profile.metadata}" in cmd
    assert cmd[-len(config.sources):] == list(config.sources)
    if profile.template:
        assert f"--template={profile.template}" in cmd
    else:
        assert not any(arg.startswith("--template") for arg in cmd)
    assert [a for a in cmd if "filter=" in a] == filter_args(profile.filters)
    assert coordinator.command(fmt) == cmd


def test_global_flags_present(config):
    cmd = Coordinator(config).command("html")
    for flag in ["--number-sections", "--toc", "--standalone", "--embed-resources", "--citeproc"]:
        assert flag in cmd
    assert "+smart" in cmd[1]


def test_filter_args_by_extension():
    assert filter_args(["callout.lua", "tables.js"]) == [
        "--lua-filter=callout.lua",
        "--filter=tables.js",
    ]


def test_unknown_format_never_spawns(config, spawn):
    coordinator = Coordinator(config, spawn=spawn)
    with pytest.raises(ConfigError, match="Unsupported format 'docx'"):
        asyncio.run(coordinator.build("docx"))
    assert spawn.calls == []
    assert coordinator.state is BuildState.NOT_STARTED


def test_successful_build(config, spawn):
    coordinator = Coordinator(config, spawn=spawn)
    assert coordinator.state is BuildState.NOT_STARTED

    result = asyncio.run(coordinator.build("epub"))

    assert result == BuildResult.succeeded("epub")
    assert coordinator.state is BuildState.SUCCEEDED
    assert len(spawn.calls) == 1
    cmd, name, cwd = spawn.calls[0]
    assert name == "epub"
    assert cwd == config.root
    assert cmd == coordinator.command("epub")
    assert os.path.exists(config.path("dist/test-book.epub"))


def test_failed_build_carries_exit_code(config, spawn):
    spawn.fail.add("pdf")
    spawn.returncode = 43
    coordinator = Coordinator(config, spawn=spawn)

    result = asyncio.run(coordinator.build("pdf"))

    assert not result.ok
    assert result.returncode == 43
    assert coordinator.state is BuildState.FAILED
    assert len(spawn.calls) == 1


def test_output_directory_created(config, spawn):
    spawn.fail.add("json")
    asyncio.run(Coordinator(config, spawn=spawn).build("json"))
    assert os.path.isdir(config.path("dist"))


def test_builds_are_serialized(config):
    active = []
    peak = []

    async def slow_spawn(cmd, name, log=None, cwd=None):
        active.append(name)
        peak.append(len(active))
        await asyncio.sleep(0.01)
        active.remove(name)
        return BuildResult.succeeded(name)

    async def scenario():
        coordinator = Coordinator(config, spawn=slow_spawn)
        return await asyncio.gather(coordinator.build("pdf"), coordinator.build("html"))

    results = asyncio.run(scenario())
    assert all(r.ok for r in results)
    assert max(peak) == 1
