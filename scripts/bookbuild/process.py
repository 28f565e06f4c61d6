"""
Child process execution and build outcomes.

Every external tool (pandoc, lessc, browserify) runs through
run_process(), which streams the child's output into the log and
resolves to a BuildResult once the child exits.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class BuildState(enum.Enum):
    NOT_STARTED = "not started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildResult:
    """
    Outcome of one build step.

    A failure carries either the child's exit code (conversion failure)
    or the error that prevented it from starting (invocation failure).
    """

    name: str
    state: BuildState
    returncode: int = None
    error: str = None

    @classmethod
    def succeeded(cls, name):
        return cls(name, BuildState.SUCCEEDED, returncode=0)

    @classmethod
    def failed(cls, name, returncode=None, error=None):
        return cls(name, BuildState.FAILED, returncode=returncode, error=error)

    @property
    def ok(self):
        return self.state is BuildState.SUCCEEDED

    def describe(self):
        if self.ok:
            return f"{self.name} succeeded"
        if self.error:
            return f"{self.name} failed: {self.error}"
        return f"{self.name} failed (exit {self.returncode})"


CHUNK_SIZE = 64 * 1024


def _decode(line):
    return line.decode("utf-8", errors="replace").rstrip("\r")


async def _pump(stream, emit):
    """
    Forward each line of a child stream to emit, in arrival order.

    Reads fixed-size chunks rather than readline(), so a single line
    longer than the stream buffer limit is still forwarded whole.
    """
    pending = b""
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            emit(_decode(line))
    if pending:
        emit(_decode(pending))


async def run_process(cmd, name, log=None, cwd=None):
    """
    Run a command once and wait for it to exit.

    stdout lines are logged at INFO, stderr lines at ERROR.

    Returns: BuildResult
    """
    log = log or logger
    log.debug("  $ %s", " ".join(cmd))

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        log.error("  ✗ %s: could not start %s: %s", name, cmd[0], e)
        return BuildResult.failed(name, error=f"could not start {cmd[0]}: {e}")

    try:
        await asyncio.gather(
            _pump(proc.stdout, log.info),
            _pump(proc.stderr, log.error),
        )
    except BaseException:
        # The child must not outlive its pipes
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
        raise
    returncode = await proc.wait()

    if returncode != 0:
        return BuildResult.failed(name, returncode=returncode)
    return BuildResult.succeeded(name)
