"""
Document build coordinator.

Turns a format name into a single pandoc invocation, runs it, and
reports the outcome. Per-format differences live entirely in the
FormatProfile; the command layout is the same for every format:

    pandoc --from=... <global flags> --output=... [--template=...]
           <filters> --metadata-file=<shared> --metadata-file=<format>
           <format args> <sources...>
"""

import asyncio
import logging
import os

from bookbuild.process import BuildState, run_process
from bookbuild.resolve import missing_sources

logger = logging.getLogger(__name__)


def filter_args(filters):
    """Lua filters run in pandoc's embedded interpreter; anything else is an executable filter."""
    args = []
    for f in filters:
        if f.endswith(".lua"):
            args.append(f"--lua-filter={f}")
        else:
            args.append(f"--filter={f}")
    return args


class Coordinator:
    """
    Builds one output format per call.

    Usage:
        coordinator = Coordinator(config)
        result = await coordinator.build("pdf")
    """

    def __init__(self, config, spawn=run_process):
        self.config = config
        self.spawn = spawn
        self.state = BuildState.NOT_STARTED
        self._lock = None

    @property
    def lock(self):
        # Created lazily so it binds to the running event loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def command(self, fmt):
        """Compose the pandoc argument list for a format. Pure function of config."""
        config = self.config
        profile = config.profile(fmt)

        cmd = [config.pandoc, f"--from={config.from_format}"]
        cmd.extend(config.flags)
        cmd.append(f"--output={profile.output}")

        if profile.template:
            cmd.append(f"--template={profile.template}")

        cmd.extend(filter_args(profile.filters))

        if config.shared_metadata:
            cmd.append(f"--metadata-file={config.shared_metadata}")
        if profile.metadata:
            cmd.append(f"--metadata-file={profile.metadata}")

        cmd.extend(profile.args)
        cmd.extend(config.sources)
        return cmd

    async def build(self, fmt):
        """
        Build one format. Raises ConfigError for an unknown format
        before anything is spawned.

        Returns: BuildResult
        """
        cmd = self.command(fmt)
        profile = self.config.profiles[fmt]

        async with self.lock:
            for missing in missing_sources(self.config.root, self.config.sources):
                logger.warning("  Warning: source '%s' not found", missing)

            out_dir = os.path.dirname(self.config.path(profile.output))
            os.makedirs(out_dir, exist_ok=True)

            logger.info("Building %s: %s", fmt, profile.output)
            self.state = BuildState.RUNNING
            result = await self.spawn(cmd, fmt, cwd=self.config.root)
            self.state = result.state

        if result.ok:
            logger.info("  ✓ %s", profile.output)
        else:
            logger.error("  ✗ %s", result.describe())
        return result
