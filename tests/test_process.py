"""
Tests for run_process against real child processes.
"""
import asyncio
import logging
import sys

from bookbuild.process import BuildResult, BuildState, run_process


SCRIPT = (
    "import sys\n"
    "print('first line')\n"
    "print('second line')\n"
    "sys.stdout.flush()\n"
    "sys.stderr.write('something broke\\n')\n"
    "sys.exit({code})\n"
)


def _run(code, caplog):
    caplog.set_level(logging.DEBUG, logger="bookbuild")
    cmd = [sys.executable, "-c", SCRIPT.format(code=code)]
    return asyncio.run(run_process(cmd, "child"))


def test_zero_exit_succeeds(caplog):
    result = _run(0, caplog)
    assert result.ok
    assert result.state is BuildState.SUCCEEDED
    assert result.returncode == 0


def test_stdout_forwarded_at_info_in_order(caplog):
    _run(0, caplog)
    info = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
    assert info == ["first line", "second line"]


def test_stderr_forwarded_at_error(caplog):
    _run(0, caplog)
    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert errors == ["something broke"]


def test_nonzero_exit_fails_with_code(caplog):
    result = _run(3, caplog)
    assert not result.ok
    assert result.state is BuildState.FAILED
    assert result.returncode == 3
    assert result.error is None
    assert result.describe() == "child failed (exit 3)"


def test_missing_executable_is_invocation_failure(caplog):
    caplog.set_level(logging.ERROR, logger="bookbuild")
    result = asyncio.run(run_process(["definitely-not-a-real-tool-xyz"], "pdf"))
    assert result.state is BuildState.FAILED
    assert result.returncode is None
    assert "could not start definitely-not-a-real-tool-xyz" in result.error
    assert any("could not start" in r.getMessage() for r in caplog.records)


def test_custom_logger_receives_output():
    seen = []

    class Sink:
        def debug(self, *args):
            pass

        def info(self, msg, *args):
            seen.append(("info", msg))

        def error(self, msg, *args):
            seen.append(("error", msg))

    cmd = [sys.executable, "-c", "print('hello')"]
    result = asyncio.run(run_process(cmd, "child", log=Sink()))
    assert result.ok
    assert seen == [("info", "hello")]


def test_result_constructors():
    assert BuildResult.succeeded("pdf") == BuildResult("pdf", BuildState.SUCCEEDED, 0)
    failed = BuildResult.failed("html", error="boom")
    assert failed.describe() == "html failed: boom"


def test_line_longer_than_stream_limit(caplog):
    """A 200 KB stderr line is forwarded whole and the exit code survives."""
    caplog.set_level(logging.ERROR, logger="bookbuild")
    script = "import sys\nsys.stderr.write('x' * 200000 + '\\n')\nsys.exit(2)\n"

    result = asyncio.run(run_process([sys.executable, "-c", script], "pdf"))

    assert result.state is BuildState.FAILED
    assert result.returncode == 2
    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert errors == ["x" * 200000]


def test_unterminated_last_line_is_forwarded(caplog):
    caplog.set_level(logging.INFO, logger="bookbuild")
    script = "import sys\nsys.stdout.write('a\\n' + 'b' * 100000)\n"

    result = asyncio.run(run_process([sys.executable, "-c", script], "html"))

    assert result.ok
    info = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
    assert info == ["a", "b" * 100000]
