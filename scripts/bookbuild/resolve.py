"""
Source file assembly.

Chapter order in every output format is the order returned here.
"""

import os
import re
import glob


def natural_sort_key(s):
    """Sort strings with embedded numbers naturally (2.md before 10.md)."""
    return [
        int(text) if text.isdigit() else text.lower()
        for text in re.split(r"(\d+)", s)
    ]


def find_sources(root, pages_dir, pages=None):
    """
    Resolve the ordered list of chapter files, relative to root.

    If `pages` is given it is taken as the chapter order, each entry
    relative to pages_dir. Otherwise every *.md under pages_dir is
    included in natural sort order.

    Returns: list of project-relative paths (posix separators).
    """
    if pages:
        return [_posix(os.path.join(pages_dir, page)) for page in pages]

    files = glob.glob(os.path.join(root, pages_dir, "**", "*.md"), recursive=True)
    rel = [_posix(os.path.relpath(f, root)) for f in files]
    rel.sort(key=natural_sort_key)
    return rel


def missing_sources(root, sources):
    """Return the sources that do not exist on disk."""
    return [s for s in sources if not os.path.exists(os.path.join(root, s))]


def _posix(path):
    return path.replace(os.sep, "/")
