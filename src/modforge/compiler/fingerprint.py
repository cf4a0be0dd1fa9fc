# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Content digests for source bytes and emitted module content."""

from __future__ import annotations

import hashlib

from modforge.model.module import FINGERPRINT_PREFIX_LENGTH

# ###############
# Public Interface
# ###############

PLACEHOLDER_TOKEN = "x" * FINGERPRINT_PREFIX_LENGTH
"""Version token reserved in a local import specifier until its target is compiled."""


def source_digest(data: bytes | str) -> str:
    """Return the SHA-1 hex digest of raw source bytes."""
    return hashlib.sha1(_as_bytes(data)).hexdigest()


def fingerprint(content: bytes | str) -> str:
    """Return the SHA-256 hex digest of emitted module content.

    The digest is a pure function of *content*, so identical output always
    maps to identical cache storage.
    """
    return hashlib.sha256(_as_bytes(content)).hexdigest()


def short_fingerprint(digest: str) -> str:
    """Truncate a fingerprint to the width embedded in file names and URLs."""
    return digest[:FINGERPRINT_PREFIX_LENGTH]


# ################
# Implementation
# ################


def _as_bytes(data: bytes | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data
