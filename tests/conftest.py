"""
Shared fixtures: a throwaway book project and a recording process spawner.
"""

import os

import pytest

from bookbuild.config import BuildConfig
from bookbuild.process import BuildResult


PAGES = ["1-basics.md", "2-selecting.md", "10-appendix.md"]


def write(path, content=""):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


class FakeSpawn:
    """
    Stands in for run_process. Records every command and, for steps
    that succeed, writes the files the real tool would have written.
    """

    def __init__(self):
        self.calls = []
        self.fail = set()
        self.returncode = 1

    async def __call__(self, cmd, name, log=None, cwd=None):
        self.calls.append((cmd, name, cwd))
        if name in self.fail:
            return BuildResult.failed(name, returncode=self.returncode)

        for arg in cmd:
            if arg.startswith("--output="):
                write(os.path.join(cwd, arg.split("=", 1)[1]), name)
        if "-o" in cmd:
            write(os.path.join(cwd, cmd[cmd.index("-o") + 1]), "console.log(1);")
        if name == "css":
            write(os.path.join(cwd, cmd[2]), "body { margin: 0; }")
        return BuildResult.succeeded(name)

    @property
    def names(self):
        return [name for _, name, _ in self.calls]

    @property
    def commands(self):
        return [cmd for cmd, _, _ in self.calls]


@pytest.fixture
def project(tmp_path):
    root = str(tmp_path)
    for page in PAGES:
        write(os.path.join(root, "src", "pages", page), f"# {page}\n")
    write(os.path.join(root, "book.yaml"), "name: test-book\n")
    return root


@pytest.fixture
def config(project, monkeypatch):
    monkeypatch.delenv("PANDOC", raising=False)
    return BuildConfig.load(project)


@pytest.fixture
def spawn():
    return FakeSpawn()


@pytest.fixture
def write_file():
    return write
