# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Import specifier resolution and rewriting.

Two disjoint identity namespaces are used:

* **Local modules** are keyed by their source path relative to the source
  root, with a ``./`` prefix and the script extension replaced by ``.js``
  (``./pages/index.ts`` → ``./pages/index.js``).

* **Remote modules** are keyed by their URL rewritten under the reserved
  ``/-/`` prefix (``https://esm.sh/react@17`` → ``/-/esm.sh/react@17.js``).
  A port becomes its own path segment.

Rewritten local specifiers carry a fixed-width placeholder version token
(``./util.xxxxxxxxx.js``) that the driver replaces with the target's
fingerprint prefix once the target has been compiled.
"""

from __future__ import annotations

import hashlib
import posixpath
import re
from urllib.parse import urljoin, urlsplit

from modforge.compiler.errors import ResolveError
from modforge.compiler.fingerprint import PLACEHOLDER_TOKEN
from modforge.model.module import Dependency, Module, SourceKind
from modforge.workspace.import_map import ImportMap

# ###############
# Public Interface
# ###############

SCRIPT_EXTENSIONS = (".js", ".jsx", ".mjs", ".ts", ".tsx")
STYLE_EXTENSIONS = (".css",)
REMOTE_PREFIX = "/-/"

_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_SCRIPT_EXT_RE = re.compile(r"\.(m?jsx?|tsx?)$", re.IGNORECASE)
_COMPILED_REMOTE_RE = re.compile(r"\.(jsx|tsx?)$", re.IGNORECASE)


def is_http_url(specifier: str) -> bool:
    return bool(_HTTP_RE.match(specifier))


def strip_script_extension(path: str) -> str:
    return _SCRIPT_EXT_RE.sub("", path)


def source_kind_for(path: str) -> SourceKind:
    """Map a source path or URL to the compile path that handles it."""
    lower = urlsplit(path).path.lower() if is_http_url(path) else path.lower()
    if lower.endswith((".jsx", ".tsx")):
        return SourceKind.SCRIPT_WITH_MARKUP
    if lower.endswith(STYLE_EXTENSIONS):
        return SourceKind.STYLE
    return SourceKind.SCRIPT


def remote_path(url: str) -> str:
    """Rewrite a URL into its deterministic path under the ``/-/`` namespace.

    ``http://localhost:8080/mod.ts`` becomes ``/-/localhost/8080/mod.ts``. A
    query string is folded into a short digest suffix so that distinct
    queries map to distinct paths.
    """
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}/{parts.port}"
    path = parts.path or "/"
    if parts.query:
        stem = strip_script_extension(path)
        ext = path[len(stem) :]
        path = f"{stem}.q{hashlib.sha1(parts.query.encode('utf-8')).hexdigest()[:8]}{ext}"
    return posixpath.normpath(REMOTE_PREFIX + host + path)


def module_identity(source_file: str) -> str:
    """Return the canonical identity of a local source path or remote URL."""
    if is_http_url(source_file):
        return strip_script_extension(remote_path(source_file)) + ".js"
    path = "." + posixpath.normpath(posixpath.join("/", source_file))
    return strip_script_extension(path) + ".js"


def with_version_token(specifier: str, fingerprint: str) -> str:
    """Replace the version token of a rewritten local specifier.

    *specifier* must have the ``<stem>.<token>.js`` shape produced by
    :meth:`PathResolver.rewrite`; the token is located by position, not by
    its content.
    """
    stem = specifier.removesuffix(".js")
    head, _, _ = stem.rpartition(".")
    return f"{head}.{fingerprint[: len(PLACEHOLDER_TOKEN)]}.js"


class PathResolver:
    """Rewrites author-facing import specifiers into cacheable module paths.

    Args:
        import_map: Substitutions consulted before any other processing.
        cache_remote: When False, remote imports that need no compilation are
            passed through unrewritten and left as live network imports.
    """

    def __init__(self, import_map: ImportMap | None = None, *, cache_remote: bool = True) -> None:
        self.import_map = import_map if import_map is not None else ImportMap()
        self.cache_remote = cache_remote

    def canonical_source(self, source_file: str) -> str:
        """Apply the import map to a compile request when it maps to a URL."""
        if is_http_url(source_file):
            return source_file
        mapped = self.import_map.resolve(source_file)
        return mapped if is_http_url(mapped) else source_file

    def identity(self, source_file: str) -> str:
        return module_identity(self.canonical_source(source_file))

    def rewrite(self, owner: Module, raw_specifier: str) -> tuple[str, Dependency]:
        """Rewrite one import specifier found in *owner*'s source.

        The returned dependency record is also appended to
        ``owner.dependencies`` (once per distinct target).

        Returns:
            The specifier to emit and the dependency record for the target.

        Raises:
            ResolveError: If a bare specifier has no import map entry.
        """
        specifier = self.import_map.resolve(raw_specifier)
        owner_dir = _owner_directory(owner)

        if is_http_url(specifier):
            if not self.cache_remote and not _COMPILED_REMOTE_RE.search(urlsplit(specifier).path):
                return specifier, _record(owner, Dependency(path=specifier, specifier=specifier, external=True))
            rewritten = _served_relative(remote_path(specifier), owner_dir)
            return rewritten, _record(owner, Dependency(path=specifier, specifier=rewritten))

        if owner.is_remote:
            target_url = urljoin(owner.source_file, specifier)
            rewritten = _served_relative(remote_path(target_url), owner_dir)
            return rewritten, _record(owner, Dependency(path=target_url, specifier=rewritten))

        if not specifier.startswith((".", "/")):
            raise ResolveError(
                f"Cannot resolve import '{raw_specifier}' in '{owner.source_file}': "
                "bare specifiers need an import map entry"
            )
        target = posixpath.normpath(posixpath.join(owner_dir, specifier))
        rewritten = _served_relative(target, owner_dir, version_token=PLACEHOLDER_TOKEN)
        return rewritten, _record(owner, Dependency(path="." + target, specifier=rewritten))


# ################
# Implementation
# ################


def _owner_directory(owner: Module) -> str:
    """Return the directory of *owner*'s served location."""
    if owner.is_remote:
        return posixpath.dirname(remote_path(owner.source_file))
    return posixpath.dirname(posixpath.normpath(posixpath.join("/", owner.source_file)))


def _served_relative(target: str, owner_dir: str, *, version_token: str | None = None) -> str:
    """Return the emitted specifier for *target* as seen from *owner_dir*."""
    rel = posixpath.relpath(target, owner_dir)
    if not rel.startswith("."):
        rel = "./" + rel
    stem = strip_script_extension(rel)
    if version_token is not None:
        return f"{stem}.{version_token}.js"
    return f"{stem}.js"


def _record(owner: Module, dep: Dependency) -> Dependency:
    """Append *dep* to *owner* unless an edge to the same target already exists."""
    for existing in owner.dependencies:
        if existing.path == dep.path:
            return existing
    owner.dependencies.append(dep)
    return dep
