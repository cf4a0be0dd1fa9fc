# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Persistent compile cache keyed by module identity.

Each module owns a sidecar metadata file and an artifact named by its
fingerprint prefix, mirrored under the cache root::

    .cache/pages/index.meta.json
    .cache/pages/index.3f9a0c1d2.js
    .cache/pages/index.3f9a0c1d2.js.map
    .cache/-/esm.sh/react@17.meta.json
    .cache/-/esm.sh/react@17.js

The metadata file is written last, so it only ever references artifacts that
are already complete. Anything unreadable is a cache miss.
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modforge.compiler.errors import IntegrityError
from modforge.compiler.fingerprint import fingerprint, short_fingerprint
from modforge.model.module import Dependency, Module, SourceKind

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

CACHE_DIR_NAME = ".cache"
META_SUFFIX = ".meta.json"


class DependencyRecord(BaseModel):
    """Persisted form of one dependency edge."""

    model_config = ConfigDict(extra="ignore")

    path: str = Field(min_length=1)
    hash: str = ""
    specifier: str = ""
    external: bool = False
    cyclic: bool = False


class CacheMetadata(BaseModel):
    """Schema of a ``.meta.json`` sidecar file."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    source_file: str = Field(alias="sourceFile", default="")
    source_kind: SourceKind = Field(alias="sourceKind", default=SourceKind.SCRIPT)
    source_hash: str = Field(alias="sourceHash", min_length=1)
    hash: str = Field(min_length=1)
    deps: list[DependencyRecord] = Field(default_factory=list)


class CompileCache:
    """On-disk store of compiled modules.

    Attributes:
        root: Directory holding all cache files.
        write_count: Number of files written since construction.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.write_count = 0

    def meta_path(self, identity: str) -> Path:
        directory, name = self._location(identity)
        return directory / (name + META_SUFFIX)

    def artifact_path(self, identity: str, digest: str) -> Path:
        directory, name = self._location(identity)
        if _is_remote_identity(identity):
            return directory / (name + ".js")
        return directory / f"{name}.{short_fingerprint(digest)}.js"

    def lookup(self, identity: str) -> Module | None:
        """Load a cached module, or return None on any miss or corruption."""
        meta_file = self.meta_path(identity)
        if not meta_file.exists():
            return None
        try:
            meta = CacheMetadata.model_validate_json(meta_file.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable cache metadata '%s': %s", meta_file, exc)
            return None

        artifact = self.artifact_path(identity, meta.hash)
        try:
            content = artifact.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Cache miss for '%s': artifact unavailable (%s)", identity, exc)
            return None
        if fingerprint(content) != meta.hash:
            logger.warning("Ignoring cache entry for '%s': artifact does not match its fingerprint", identity)
            return None

        source_map = ""
        map_file = artifact.with_name(artifact.name + ".map")
        if map_file.exists():
            try:
                source_map = map_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                source_map = ""

        return Module(
            identity=identity,
            source_file=meta.source_file,
            is_remote=_is_remote_identity(identity),
            source_kind=meta.source_kind,
            source_digest=meta.source_hash,
            dependencies=[
                Dependency(
                    path=d.path, fingerprint=d.hash, specifier=d.specifier, external=d.external, cyclic=d.cyclic
                )
                for d in meta.deps
            ],
            emitted_content=content,
            emitted_source_map=source_map,
            fingerprint=meta.hash,
        )

    def store(self, module: Module) -> bool:
        """Persist *module*, writing only the files whose content changed.

        Returns:
            True if any file was written.

        Raises:
            IntegrityError: If the artifact slot of a local module holds
                different content whose fingerprint shares this prefix.
        """
        wrote = False
        artifact = self.artifact_path(module.identity, module.fingerprint)
        if not self._artifact_matches(artifact, module):
            self._write(artifact, module.emitted_content)
            wrote = True

        map_file = artifact.with_name(artifact.name + ".map")
        if module.emitted_source_map and _read_text(map_file) != module.emitted_source_map:
            self._write(map_file, module.emitted_source_map)
            wrote = True

        meta_file = self.meta_path(module.identity)
        meta_text = _serialize_meta(module)
        if _read_text(meta_file) != meta_text:
            self._write(meta_file, meta_text)
            wrote = True
        return wrote

    def clear(self) -> None:
        """Remove every cached file."""
        if self.root.exists():
            shutil.rmtree(self.root)

    def _location(self, identity: str) -> tuple[Path, str]:
        """Return the mirrored cache directory and base name for *identity*."""
        stem = identity.removesuffix(".js")
        directory, name = posixpath.split(stem)
        if directory.startswith("./"):
            directory = directory[2:]
        directory = directory.lstrip("/")
        if directory in ("", "."):
            return self.root, name
        return self.root / Path(*directory.split("/")), name

    def _artifact_matches(self, artifact: Path, module: Module) -> bool:
        """Return True if *artifact* already holds *module*'s emitted content."""
        try:
            existing = artifact.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return False
        if fingerprint(existing) == module.fingerprint:
            return True
        if module.is_remote:
            return False
        if short_fingerprint(fingerprint(existing)) == short_fingerprint(module.fingerprint):
            raise IntegrityError(
                f"Fingerprint prefix collision for '{module.identity}': '{artifact.name}' holds different content"
            )
        logger.warning("Replacing corrupt cache artifact '%s'", artifact)
        return False

    def _write(self, path: Path, text: str) -> None:
        _write_atomic(path, text)
        self.write_count += 1


# ################
# Implementation
# ################


def _is_remote_identity(identity: str) -> bool:
    return identity.startswith("/-/")


def _read_text(path: Path) -> str | None:
    """Return the text of *path*, or None if it is missing or unreadable."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def _serialize_meta(module: Module) -> str:
    meta = CacheMetadata(
        source_file=module.source_file,
        source_kind=module.source_kind,
        source_hash=module.source_digest,
        hash=module.fingerprint,
        deps=[
            DependencyRecord(
                path=d.path, hash=d.fingerprint, specifier=d.specifier, external=d.external, cyclic=d.cyclic
            )
            for d in module.dependencies
        ],
    )
    return meta.model_dump_json(by_alias=True, indent=4)


def _write_atomic(path: Path, text: str) -> None:
    """Write *text* to a temporary sibling of *path*, then rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
