# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Build context and compiler driver.

The driver walks one module at a time through fetching its source, compiling
it, resolving its dependencies and persisting the result. A dependency whose
fingerprint changed is written back into the importer's emitted content by
swapping the version token of the matching import specifier, so a change to a
leaf module gives every ancestor a new fingerprint without recompiling it.

Cyclic imports are legal. Edges between modules of one strongly connected
component are found while the graph is walked and keep the placeholder
version token, so a module's output never depends on the fingerprint of a
module that depends on it. Every pass stays finite and the result does not
depend on which module a pass starts from.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

from modforge.compiler.cache import CACHE_DIR_NAME, CompileCache
from modforge.compiler.errors import CompileError, SourceNotFoundError, SourceTooLargeError
from modforge.compiler.fetcher import Opener, RemoteFetcher, urllib_open
from modforge.compiler.fingerprint import PLACEHOLDER_TOKEN, fingerprint, source_digest
from modforge.compiler.graph import ModuleGraph
from modforge.compiler.lexer import LexerError, rewrite_specifiers
from modforge.compiler.resolver import (
    PathResolver,
    is_http_url,
    module_identity,
    source_kind_for,
    with_version_token,
)
from modforge.compiler.transpile import CompileOptions, Compiler, DefaultCompiler, rewrite_raw_script
from modforge.model.module import Dependency, Module, SourceKind
from modforge.workspace.config import DEFAULT_MAX_SOURCE_SIZE
from modforge.workspace.import_map import ImportMap

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


@dataclass
class BuildContext:
    """Everything one build owns: graph, cache, resolver, fetcher and compiler.

    Independent contexts share nothing, so several builds can coexist in one
    process.

    Attributes:
        src_dir: Directory that local module identities are relative to.
        cache: Persistent compile cache.
        graph: In-memory module graph.
        resolver: Import specifier rewriter.
        fetcher: Remote module downloader.
        compiler: Compile function invoked for every (re)compiled module.
        mode: ``"development"`` or ``"production"``.
        max_source_size: Largest local source file accepted, in bytes.
    """

    src_dir: Path
    cache: CompileCache
    graph: ModuleGraph = field(default_factory=ModuleGraph)
    resolver: PathResolver = field(default_factory=PathResolver)
    fetcher: RemoteFetcher = field(default_factory=RemoteFetcher)
    compiler: Compiler = field(default_factory=DefaultCompiler)
    mode: str = "development"
    max_source_size: int = DEFAULT_MAX_SOURCE_SIZE

    @classmethod
    def create(
        cls,
        src_dir: Path,
        *,
        cache_dir: Path | None = None,
        import_map: ImportMap | None = None,
        cache_remote: bool = True,
        compiler: Compiler | None = None,
        opener: Opener = urllib_open,
        mode: str = "development",
        max_source_size: int = DEFAULT_MAX_SOURCE_SIZE,
    ) -> BuildContext:
        """Assemble a context with its collaborators wired to one import map.

        Args:
            src_dir: Source root.
            cache_dir: Cache directory; defaults to ``<src_dir>/.cache``.
            import_map: Substitutions shared by the resolver and the fetcher.
            cache_remote: See :class:`PathResolver`.
            compiler: Compile function; defaults to :class:`DefaultCompiler`.
            opener: Blocking HTTP GET used by the fetcher.
            mode: Build mode passed to the compiler.
            max_source_size: Size ceiling for local sources.
        """
        import_map = import_map if import_map is not None else ImportMap()
        return cls(
            src_dir=src_dir,
            cache=CompileCache(cache_dir if cache_dir is not None else src_dir / CACHE_DIR_NAME),
            resolver=PathResolver(import_map, cache_remote=cache_remote),
            fetcher=RemoteFetcher(import_map, opener=opener),
            compiler=compiler if compiler is not None else DefaultCompiler(),
            mode=mode,
            max_source_size=max_source_size,
        )

    def source_path(self, source_file: str) -> Path:
        """Return the file on disk backing a local module source path."""
        relative = module_relative(source_file)
        return self.src_dir.joinpath(*relative.split("/")) if relative else self.src_dir


@dataclass
class CompileRequest:
    """One entry module to compile.

    Attributes:
        source_file: Local source path (``./pages/index.ts``) or URL.
        source_code: In-memory source for synthetic modules; read from disk
            or the network when None.
        force: Recompile even when the source digest is unchanged.
    """

    source_file: str
    source_code: str | None = None
    force: bool = False


@dataclass
class BuildPass:
    """Bookkeeping for one serialized pass over the graph.

    Attributes:
        finalized: Modules already resolved in this pass, by identity.
        order: Discovery index of every module entered in this pass.
        low: Smallest discovery index reachable from each module.
        stack: Modules whose strongly connected component is still open.
        compiled: Identities that went through the compile function.
        stored: Identities persisted to the cache.
    """

    finalized: dict[str, Module] = field(default_factory=dict)
    order: dict[str, int] = field(default_factory=dict)
    low: dict[str, int] = field(default_factory=dict)
    stack: list[str] = field(default_factory=list)
    compiled: list[str] = field(default_factory=list)
    stored: list[str] = field(default_factory=list)

    def enter(self, identity: str) -> None:
        self.order[identity] = self.low[identity] = len(self.order)
        self.stack.append(identity)

    def leave(self, identity: str) -> None:
        """Close *identity*'s component if it is the component's root."""
        if self.low[identity] != self.order[identity]:
            return
        while self.stack.pop() != identity:
            pass


class CompilerDriver:
    """Compiles modules within a :class:`BuildContext`.

    Passes are serialized: a pass holds the context lock from its first
    module to its last. Concurrent :meth:`compile` calls for one identity share
    a single in-flight result.
    """

    def __init__(self, context: BuildContext) -> None:
        self.context = context
        self._lock = asyncio.Lock()
        self._inflight: dict[str, asyncio.Future[Module]] = {}

    async def compile(self, source_file: str, *, source_code: str | None = None, force: bool = False) -> Module:
        """Compile one module and everything it imports.

        Raises:
            CompilerError: If the module or any of its dependencies fails.
        """
        identity = self.context.resolver.identity(source_file)
        request = CompileRequest(source_file, source_code, force)
        return await self._single_flight(identity, lambda: self._run_one(request))

    async def build(self, requests: Sequence[CompileRequest]) -> list[Module]:
        """Compile several entry modules in one pass.

        A module shared by several entries is resolved once.
        """
        async with self.session() as build_pass:
            return [
                await self.compile_within(
                    build_pass, request.source_file, source_code=request.source_code, force=request.force
                )
                for request in requests
            ]

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[BuildPass]:
        """Hold the context lock for a pass and yield its bookkeeping."""
        async with self._lock:
            build_pass = BuildPass()
            started = time.perf_counter()
            try:
                yield build_pass
            finally:
                logger.debug(
                    "Pass finished in %.1fms: %d compiled, %d stored",
                    (time.perf_counter() - started) * 1000,
                    len(build_pass.compiled),
                    len(build_pass.stored),
                )

    async def compile_within(
        self,
        build_pass: BuildPass,
        source_file: str,
        *,
        source_code: str | None = None,
        force: bool = False,
    ) -> Module:
        """Compile one module as part of a pass opened with :meth:`session`."""
        return await self._compile(build_pass, source_file, source_code=source_code, force=force)

    async def commit(self, build_pass: BuildPass, module: Module) -> None:
        """Persist *module* and publish it in the graph."""
        if await asyncio.to_thread(self.context.cache.store, module):
            build_pass.stored.append(module.identity)
        self.context.graph.add(module)

    def remove(self, source_file: str) -> Module | None:
        """Drop a module from the graph; its importers keep their edges."""
        return self.context.graph.remove(self.context.resolver.identity(source_file))

    # ################
    # Implementation
    # ################

    async def _single_flight(self, key: str, factory: Callable[[], Awaitable[Module]]) -> Module:
        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)
        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    async def _run_one(self, request: CompileRequest) -> Module:
        async with self.session() as build_pass:
            return await self._compile(
                build_pass, request.source_file, source_code=request.source_code, force=request.force
            )

    async def _compile(
        self,
        build_pass: BuildPass,
        source_file: str,
        *,
        source_code: str | None = None,
        force: bool = False,
        importer: str | None = None,
    ) -> Module:
        ctx = self.context
        source_file = ctx.resolver.canonical_source(source_file)
        identity = module_identity(source_file)
        done = build_pass.finalized.get(identity)
        if done is not None:
            return done

        is_remote = is_http_url(source_file)
        current = ctx.graph.get(identity)
        if is_remote and current is not None and not force and not ctx.fetcher.is_revalidated(source_file):
            build_pass.enter(identity)
            build_pass.leave(identity)
            build_pass.finalized[identity] = current
            return current

        if current is not None:
            previous: Module | None = current.model_copy(deep=True)
        else:
            previous = await asyncio.to_thread(ctx.cache.lookup, identity)
            logger.debug("Cache %s for '%s'", "hit" if previous is not None else "miss", identity)

        if is_remote and previous is not None and not force and not ctx.fetcher.is_revalidated(source_file):
            module, changed = previous, False
        else:
            source = await self._read_source(source_file, source_code, importer)
            if previous is not None and not force and previous.source_digest == source.digest:
                module, changed = previous, False
            else:
                module = self._compile_source(identity, source_file, source)
                build_pass.compiled.append(identity)
                changed = True

        build_pass.enter(identity)
        for dep in module.dependencies:
            if dep.external:
                continue
            target_id = ctx.resolver.identity(dep.path)
            target = build_pass.finalized.get(target_id)
            if target_id not in build_pass.order:
                target = await self._compile(build_pass, dep.path, importer=module.source_file)
                build_pass.low[identity] = min(build_pass.low[identity], build_pass.low[target_id])
            elif target_id in build_pass.stack:
                build_pass.low[identity] = min(build_pass.low[identity], build_pass.order[target_id])

            if target_id in build_pass.stack:
                logger.debug("Cyclic edge %s -> %s", identity, target_id)
                changed = mark_cyclic(module, dep) or changed
            elif target is not None:
                changed = update_dependency(module, dep, target.fingerprint) or changed
        build_pass.leave(identity)

        if changed:
            await self.commit(build_pass, module)
        elif current is None:
            ctx.graph.add(module)
        build_pass.finalized[identity] = module
        return module

    async def _read_source(self, source_file: str, source_code: str | None, importer: str | None) -> _Source:
        if source_code is not None:
            return _Source(text=source_code, digest=source_digest(source_code))
        if is_http_url(source_file):
            result = await self.context.fetcher.fetch(source_file)
            return _Source(text=result.text, digest=source_digest(result.text), content_type=result.content_type)
        path = self.context.source_path(source_file)
        data = await asyncio.to_thread(_read_limited, path, source_file, self.context.max_source_size, importer)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CompileError(source_file, [f"source is not valid UTF-8: {exc}"]) from exc
        return _Source(text=text, digest=source_digest(data))

    def _compile_source(self, identity: str, source_file: str, source: _Source) -> Module:
        ctx = self.context
        module = Module(
            identity=identity,
            source_file=source_file,
            is_remote=is_http_url(source_file),
            source_kind=_source_kind(source_file, source.content_type),
            source_digest=source.digest,
        )

        def _rewrite(specifier: str) -> str:
            rewritten, _ = ctx.resolver.rewrite(module, specifier)
            return rewritten

        started = time.perf_counter()
        language = _remote_language(source_file, source.content_type) if module.is_remote else None
        if module.is_remote and module.source_kind == SourceKind.SCRIPT and language in (None, "js"):
            output, source_map = rewrite_raw_script(source.text, _rewrite), ""
        else:
            options = CompileOptions(
                mode=ctx.mode,
                source_kind=module.source_kind,
                rewrite_import_path=_rewrite,
                language=language,
            )
            result = ctx.compiler(source_file, source.text, options)
            if result.diagnostics:
                raise CompileError(source_file, result.diagnostics)
            output, source_map = result.output_text, result.source_map_text

        module.emitted_content = output
        module.emitted_source_map = source_map
        module.fingerprint = fingerprint(output)
        logger.debug("Compiled '%s' in %.1fms", identity, (time.perf_counter() - started) * 1000)
        return module


def update_dependency(module: Module, dep: Dependency, target_fingerprint: str) -> bool:
    """Record a new fingerprint for one of *module*'s dependencies.

    For a local importer of a local target, every import whose specifier is
    the one recorded for *dep* gets its version token replaced, and the
    module is re-fingerprinted.

    Returns:
        True if *module* changed.

    Raises:
        CompileError: If the emitted content can no longer be scanned.
    """
    if dep.fingerprint == target_fingerprint and not dep.cyclic:
        return False
    dep.fingerprint = target_fingerprint
    dep.cyclic = False
    if module.is_remote or is_http_url(dep.path) or not dep.specifier:
        return True

    old_specifier = dep.specifier
    new_specifier = with_version_token(old_specifier, target_fingerprint)
    if new_specifier != old_specifier:
        try:
            module.emitted_content = rewrite_specifiers(
                module.emitted_content,
                lambda spec: new_specifier if spec.value == old_specifier else None,
            )
        except LexerError as exc:
            raise CompileError(module.source_file, [str(exc)]) from exc
        dep.specifier = new_specifier
        module.fingerprint = fingerprint(module.emitted_content)
    logger.debug("Updated %s -> %s (%s)", module.identity, dep.path, new_specifier)
    return True


def mark_cyclic(module: Module, dep: Dependency) -> bool:
    """Mark one of *module*'s dependencies as part of an import cycle.

    The edge goes back to the placeholder version token and forgets the
    target's fingerprint.

    Returns:
        True if *module* changed.
    """
    if dep.cyclic:
        return False
    update_dependency(module, dep, PLACEHOLDER_TOKEN)
    dep.fingerprint = ""
    dep.cyclic = True
    return True


def module_relative(source_file: str) -> str:
    """Return a local module source path relative to the source root."""
    return source_file.removeprefix("./").lstrip("/")


# ################
# Implementation
# ################


@dataclass
class _Source:
    text: str
    digest: str
    content_type: str = ""


def _read_limited(path: Path, source_file: str, limit: int, importer: str | None) -> bytes:
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        raise SourceNotFoundError(source_file, importer) from None
    if size > limit:
        raise SourceTooLargeError(source_file, size, limit)
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise SourceNotFoundError(source_file, importer) from None


_CONTENT_TYPE_LANGUAGES = {
    "application/typescript": "ts",
    "text/typescript": "ts",
    "video/mp2t": "ts",
    "text/tsx": "tsx",
    "text/jsx": "jsx",
}
_URL_LANGUAGES = ((".tsx", "tsx"), (".ts", "ts"), (".jsx", "jsx"))


def _remote_language(url: str, content_type: str) -> str | None:
    """Pick the language of a remote module: content type first, then URL extension."""
    language = _CONTENT_TYPE_LANGUAGES.get(content_type.split(";", 1)[0].strip())
    if language is not None:
        return language
    path = urlsplit(url).path.lower()
    for ext, name in _URL_LANGUAGES:
        if path.endswith(ext):
            return name
    return None


def _source_kind(source_file: str, content_type: str) -> SourceKind:
    kind = source_kind_for(source_file)
    if kind == SourceKind.SCRIPT and is_http_url(source_file):
        if _remote_language(source_file, content_type) in ("tsx", "jsx"):
            return SourceKind.SCRIPT_WITH_MARKUP
    return kind
