"""
bookbuild — pandoc build toolchain for Essential Slick.

Public API:
    from bookbuild.config import BuildConfig, ConfigError
    from bookbuild.coordinator import Coordinator
    from bookbuild.pipeline import Pipeline, TARGETS
    from bookbuild.process import BuildResult, BuildState
    from bookbuild.watch import Watcher
"""
