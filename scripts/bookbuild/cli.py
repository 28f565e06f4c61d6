"""
Command line entry point.

Usage:
    build.py                        Build every format (same as "build.py all")
    build.py pdf html epub          Build formats in order, stop on failure
    build.py all                    Build every format
    build.py zip                    Build everything, then zip dist/
    build.py serve                  Build html, serve on :4000, rebuild on change
    build.py analytics              Inject the analytics link into the html output

Requires: pandoc, PyYAML, watchdog
Optional: xelatex (PDF), lessc and browserify (html/epub assets)
"""

import argparse
import asyncio
import logging
import os
import sys
import traceback

from bookbuild.assets import inject_analytics
from bookbuild.config import BuildConfig, ConfigError
from bookbuild.pipeline import DEFAULT_TARGET, TARGETS, Pipeline, expand
from bookbuild.serve import serve

logger = logging.getLogger("bookbuild")


def setup_logging(verbose=False):
    """Send bookbuild logs (including forwarded tool output) to the console."""
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(handler)
    return logger


def load_config(args):
    return BuildConfig.load(args.root or os.getcwd())


# ── Build command ──────────────────────────────────────────────────────


def cmd_build(args):
    """Build one or more targets, fail-fast."""
    config = load_config(args)
    targets = args.targets or [DEFAULT_TARGET]
    steps = expand(targets)

    config.summary()
    print(f"  Steps:   {' → '.join(steps)}")

    result = asyncio.run(Pipeline(config).run(targets))

    print(f"\n{'─' * 60}")
    if not result.ok:
        print(f"  ✗ {result.describe()}")
        return 1
    print(f"  Done. {len(steps)} step(s) built successfully.")
    return 0


# ── Serve command ──────────────────────────────────────────────────────


def cmd_serve(args):
    config = load_config(args)
    config.summary()
    try:
        asyncio.run(serve(config, Pipeline(config), target=args.target, port=args.port))
    except KeyboardInterrupt:
        print("\nStopped.")
    return 0


# ── Analytics command ──────────────────────────────────────────────────


def cmd_analytics(args):
    config = load_config(args)
    html = args.html or config.path(config.profile("html").output)
    link = args.link or config.analytics_link
    result = inject_analytics(html, link)
    return 0 if result.ok else 1


# ── Argument Parser ────────────────────────────────────────────────────


def build_parser():
    parser = argparse.ArgumentParser(
        description="Essential Slick book build",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
targets: {', '.join(TARGETS)}

examples:
  %(prog)s pdf html epub       Build three formats
  %(prog)s zip                 Build all formats and package them
  %(prog)s serve --port 4000   Preview html with live rebuild
        """,
    )

    sub = parser.add_subparsers(dest="command")

    build_p = sub.add_parser("build", help="Build targets (default)")
    build_p.add_argument("targets", nargs="*", help=f"Targets (default: {DEFAULT_TARGET})")
    _add_common_args(build_p)

    serve_p = sub.add_parser("serve", help="Build, serve, and rebuild on change")
    serve_p.add_argument("--target", default="html", choices=sorted(TARGETS))
    serve_p.add_argument("--port", type=int, help="Override the preview port")
    _add_common_args(serve_p)

    an_p = sub.add_parser("analytics", help="Inject analytics into the html output")
    an_p.add_argument("--html", help="HTML file (default: the html profile output)")
    an_p.add_argument("--link", help="Markup to insert before </head>")
    _add_common_args(an_p)

    return parser


def _add_common_args(parser):
    parser.add_argument("--root", help="Project root containing book.yaml")
    parser.add_argument("--verbose", "-v", action="store_true")


# ── Main ───────────────────────────────────────────────────────────────


def run(argv=None):
    """Parse arguments and dispatch. Returns the process exit code."""
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()

    # "build" is the default subcommand: "build.py", "build.py pdf html"
    # and "build.py -v pdf" all build
    known_commands = {"build", "serve", "analytics"}
    if not argv or (argv[0] not in known_commands and argv[0] not in ("-h", "--help")):
        argv = ["build"] + argv

    args = parser.parse_args(argv)

    dispatch = {
        "build": cmd_build,
        "serve": cmd_serve,
        "analytics": cmd_analytics,
    }

    handler = dispatch[args.command]
    setup_logging(args.verbose)
    try:
        return handler(args)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1


def main():
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(1)
    except Exception as e:
        log_path = "build_error.log"
        with open(log_path, "w") as f:
            traceback.print_exc(file=f)
        print(f"\nUnexpected error: {e}")
        print(f"Full traceback written to {log_path}")
        sys.exit(1)


if __name__ == "__main__":
    main()
