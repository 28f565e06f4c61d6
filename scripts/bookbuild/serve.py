"""
Preview server: build once, serve dist/ over HTTP, rebuild on change.
"""

import functools
import logging
import os
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer

from bookbuild.watch import Watcher

logger = logging.getLogger(__name__)


class QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format, *args):
        logger.debug("  http: " + format, *args)


def make_server(directory, port, host="localhost"):
    os.makedirs(directory, exist_ok=True)
    handler = functools.partial(QuietHandler, directory=directory)
    return ThreadingHTTPServer((host, port), handler)


async def serve(config, pipeline, target="html", port=None):
    """
    Build `target`, then serve the output directory and watch sources
    until cancelled. A failed initial build is logged, not fatal.
    """
    result = await pipeline.run([target])
    if not result.ok:
        logger.error("Initial build failed: %s", result.describe())

    if port is None:
        port = config.port
    httpd = make_server(config.path(config.output_dir), port)
    threading.Thread(target=httpd.serve_forever, daemon=True).start()
    logger.info(
        "Serving %s at http://localhost:%d/", config.output_dir, httpd.server_address[1]
    )

    try:
        await Watcher(config, pipeline).run()
    finally:
        httpd.shutdown()
        httpd.server_close()
