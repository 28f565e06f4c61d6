"""
File-watch loop.

Each watch group pairs a set of path patterns with the steps to re-run
when a file matching them changes. Runs are serialized through a single
queue: a change for a group that is already queued is dropped, and a
change that arrives while its group is running queues one follow-up.
"""

import asyncio
import fnmatch
import logging
import os

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from bookbuild.process import BuildResult

logger = logging.getLogger(__name__)


class ChangeHandler(FileSystemEventHandler):
    """Forwards file events from the observer thread to a callback."""

    def __init__(self, callback):
        self.callback = callback

    def on_modified(self, event):
        if not event.is_directory:
            self.callback(event.src_path)

    def on_created(self, event):
        if not event.is_directory:
            self.callback(event.src_path)

    def on_deleted(self, event):
        if not event.is_directory:
            self.callback(event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self.callback(event.dest_path)


def watch_roots(patterns):
    """Directories to observe: the literal prefix of each pattern."""
    roots = []
    for pattern in patterns:
        parts = []
        for part in pattern.split("/"):
            if any(ch in part for ch in "*?["):
                break
            parts.append(part)
        root = "/".join(parts) or "."
        if root not in roots:
            roots.append(root)
    return roots


class Watcher:
    """
    Usage:
        watcher = Watcher(config, pipeline)
        await watcher.run()     # until cancelled
    """

    def __init__(self, config, pipeline):
        self.config = config
        self.pipeline = pipeline
        self.groups = config.watch
        self.queue = asyncio.Queue()
        self.pending = set()
        self.observer = None

    def relpath(self, path):
        if os.path.isabs(path):
            path = os.path.relpath(path, self.config.root)
        return path.replace(os.sep, "/")

    def groups_for(self, path):
        """Watch groups whose patterns match a path."""
        rel = self.relpath(path)
        return [
            group for group in self.groups
            if any(fnmatch.fnmatchcase(rel, p) for p in group.patterns)
        ]

    def notify(self, path):
        """
        Queue a run for every group matching path.

        Returns the names of the groups that were queued.
        """
        queued = []
        for group in self.groups_for(path):
            if group.name in self.pending:
                logger.debug("  %s already queued, ignoring %s", group.name, path)
                continue
            self.pending.add(group.name)
            self.queue.put_nowait(group)
            queued.append(group.name)
        return queued

    async def run_group(self, group):
        logger.info("Change in %s: running %s", group.name, ", ".join(group.tasks))
        result = await self.pipeline.run_steps(list(group.tasks))
        if result.ok:
            logger.info("  ✓ %s rebuilt", group.name)
        else:
            logger.error("  ✗ %s", result.describe())
        return result

    async def handle(self, path):
        """Run the matching groups' steps directly, bypassing the queue."""
        results = []
        for group in self.groups_for(path):
            results.append(await self.run_group(group))
        return results

    async def process_next(self):
        """Wait for the next queued group and run it."""
        group = await self.queue.get()
        # Cleared before running so a change mid-run queues a follow-up
        self.pending.discard(group.name)
        try:
            return await self.run_group(group)
        except Exception as e:
            logger.exception("  ✗ %s: rebuild raised", group.name)
            return BuildResult.failed(group.name, error=str(e))
        finally:
            self.queue.task_done()

    async def run(self):
        """Observe the watched directories and re-run groups until cancelled."""
        loop = asyncio.get_running_loop()
        handler = ChangeHandler(lambda path: loop.call_soon_threadsafe(self.notify, path))
        observer = self.observer = Observer()

        patterns = [p for group in self.groups for p in group.patterns]
        for root in watch_roots(patterns):
            path = self.config.path(root)
            if os.path.isdir(path):
                observer.schedule(handler, path, recursive=True)
                logger.info("Watching: %s/", root)

        observer.start()
        try:
            while True:
                await self.process_next()
        finally:
            observer.stop()
            observer.join()
