# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Discovery of module source files on disk."""

from __future__ import annotations

import fnmatch
import os
from collections.abc import Iterable
from pathlib import Path

# ###############
# Public Interface
# ###############


def list_source_modules(
    root: Path,
    extensions: Iterable[str],
    exclude_patterns: Iterable[str] = (),
) -> list[str]:
    """Return the module source files below *root*.

    Args:
        root: Directory to walk. A missing directory yields no modules.
        extensions: File suffixes to include (``".ts"``, ``".css"``, ...).
        exclude_patterns: ``fnmatch`` patterns matched against each file's
            and each directory's path relative to *root* (``/``-separated)
            and against its bare name. An excluded directory is not walked.

    Returns:
        Sorted ``./``-prefixed paths relative to *root*.
    """
    suffixes = tuple(ext.lower() for ext in extensions)
    patterns = list(exclude_patterns)
    found: list[str] = []
    if not root.is_dir():
        return found

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"
        dirnames[:] = sorted(d for d in dirnames if not _excluded(prefix + d, d, patterns))
        for name in filenames:
            rel = prefix + name
            if not name.lower().endswith(suffixes) or _excluded(rel, name, patterns):
                continue
            found.append("./" + rel)
    return sorted(found)


# ################
# Implementation
# ################


def _excluded(rel: str, name: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatchcase(rel, p) or fnmatch.fnmatchcase(name, p) for p in patterns)
