"""
Named build targets and fail-fast sequencing.

A target expands to an ordered list of steps. Steps are either output
formats (built by the coordinator) or asset tasks. Steps run one at a
time; the first failure ends the run.
"""

import logging

from bookbuild import assets
from bookbuild.config import FORMATS, STEPS, ConfigError
from bookbuild.coordinator import Coordinator
from bookbuild.process import BuildResult, run_process

logger = logging.getLogger(__name__)


# A name equal to its own target is the step of that name, not a recursion
TARGETS = {
    "json": ["json"],
    "pdf": ["pdf"],
    "html": ["css", "inline", "js", "html"],
    "epub": ["css", "epub"],
    "all": ["pdf", "html", "epub", "json"],
    "zip": ["all", "package"],
}

DEFAULT_TARGET = "all"


def expand(targets):
    """
    Expand target names into a flat step list.

    Duplicate steps keep their first position. Raises ConfigError for
    unknown targets.
    """
    steps = []
    for target in targets:
        for step in _expand(target, ()):
            if step not in steps:
                steps.append(step)
    return steps


def _expand(target, chain):
    if target not in TARGETS:
        raise ConfigError(
            f"Unknown target '{target}' (expected one of: {', '.join(TARGETS)})"
        )
    if target in chain:
        raise ConfigError(f"Target cycle: {' → '.join(chain + (target,))}")

    steps = []
    for name in TARGETS[target]:
        if name in TARGETS and name != target:
            steps.extend(_expand(name, chain + (target,)))
        else:
            steps.append(name)
    return steps


class Pipeline:
    """
    Runs targets against one configuration.

    Usage:
        pipeline = Pipeline(config)
        result = await pipeline.run(["pdf", "html"])
    """

    def __init__(self, config, coordinator=None, spawn=run_process):
        self.config = config
        self.spawn = spawn
        self.coordinator = coordinator or Coordinator(config, spawn=spawn)

    async def run(self, targets):
        """Expand targets and run the resulting steps fail-fast."""
        return await self.run_steps(expand(targets or [DEFAULT_TARGET]))

    async def run_steps(self, steps):
        """
        Run steps in order, without target expansion.

        Unknown steps are rejected before the first one starts.
        Returns the first failing BuildResult, or a success named
        after the last step.
        """
        unknown = [s for s in steps if s not in STEPS]
        if unknown:
            raise ConfigError(f"Unknown build step(s): {', '.join(unknown)}")

        result = BuildResult.succeeded("nothing")
        for step in steps:
            result = await self.run_step(step)
            if not result.ok:
                logger.error("Stopping: %s", result.describe())
                return result
        return result

    async def run_step(self, step):
        if step in FORMATS:
            return await self.coordinator.build(step)
        if step == "css":
            return await assets.compile_styles(self.config, spawn=self.spawn)
        if step == "inline":
            return await assets.inline_styles(self.config)
        if step == "js":
            return await assets.bundle_scripts(self.config, spawn=self.spawn)
        if step == "package":
            return await assets.package_outputs(self.config)
        raise ConfigError(f"Unknown build step '{step}'")
