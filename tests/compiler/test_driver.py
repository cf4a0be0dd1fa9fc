# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the compiler driver: freshness, propagation, cycles and failures."""

from __future__ import annotations

import asyncio
import json
import urllib.error
from pathlib import Path

import pytest

from modforge.compiler.cache import CompileCache
from modforge.compiler.driver import BuildContext, CompileRequest, CompilerDriver, mark_cyclic, update_dependency
from modforge.compiler.errors import (
    CompileError,
    CompilerError,
    FetchError,
    SourceNotFoundError,
    SourceTooLargeError,
)
from modforge.compiler.fetcher import HttpResponse
from modforge.compiler.fingerprint import PLACEHOLDER_TOKEN, fingerprint
from modforge.compiler.transpile import CompileOptions, CompileResult, rewrite_imports
from modforge.model.module import Dependency, Module

# ###############
# Helpers
# ###############


class FakeCompiler:
    """Drops blank lines and rewrites imports; fails on a marker comment."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.modes: list[str] = []

    def __call__(self, file_name: str, source_text: str, options: CompileOptions) -> CompileResult:
        self.calls.append(file_name)
        self.modes.append(options.mode)
        if "// SYNTAX ERROR" in source_text:
            return CompileResult(diagnostics=[f"{file_name}:1:1: unexpected token"])
        text = "\n".join(line for line in source_text.splitlines() if line.strip()) + "\n"
        return rewrite_imports(text, options)


class MappingCompiler(FakeCompiler):
    """Like FakeCompiler, with a source map recording the source line count."""

    def __call__(self, file_name: str, source_text: str, options: CompileOptions) -> CompileResult:
        result = super().__call__(file_name, source_text, options)
        result.source_map_text = json.dumps({"lines": len(source_text.splitlines())})
        return result


class FakeOpener:
    """Serves canned responses; unknown URLs fail like a refused connection."""

    def __init__(self, responses: dict[str, str] | None = None) -> None:
        self.responses = dict(responses or {})
        self.requested: list[str] = []

    def __call__(self, url: str) -> HttpResponse:
        self.requested.append(url)
        if url not in self.responses:
            raise urllib.error.URLError("connection refused")
        return HttpResponse(status=200, body=self.responses[url].encode("utf-8"))


def _write(src: Path, name: str, content: str) -> None:
    path = src / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _driver(
    tmp_path: Path,
    compiler: FakeCompiler | None = None,
    opener: FakeOpener | None = None,
    **kwargs: object,
) -> CompilerDriver:
    context = BuildContext.create(
        tmp_path / "src",
        cache_dir=tmp_path / ".cache",
        compiler=compiler if compiler is not None else FakeCompiler(),
        opener=opener if opener is not None else FakeOpener(),
        **kwargs,
    )
    return CompilerDriver(context)


def _chain(src: Path) -> None:
    """a.ts imports b.ts imports c.ts."""
    _write(src, "a.ts", 'import b from "./b.ts";\nexport default b;\n')
    _write(src, "b.ts", 'import c from "./c.ts";\nexport default c + 1;\n')
    _write(src, "c.ts", "export default 1;\n")


# ###############
# Single modules
# ###############


class TestSingleModule:
    def test_compile_and_store(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "pages/index.ts", "export default 1;\n")
        driver = _driver(tmp_path)

        module = asyncio.run(driver.compile("./pages/index.ts"))

        assert module.identity == "./pages/index.js"
        assert module.emitted_content == "export default 1;\n"
        assert module.fingerprint == fingerprint("export default 1;\n")
        assert driver.context.graph.get("./pages/index.js") is not None
        cache = driver.context.cache
        assert cache.meta_path(module.identity).exists()
        assert cache.artifact_path(module.identity, module.fingerprint).exists()

    def test_served_path_embeds_fingerprint(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "pages/index.ts", "export default 1;\n")
        module = asyncio.run(_driver(tmp_path).compile("./pages/index.ts"))
        assert module.served_path == f"/pages/index.{module.fingerprint[:9]}.js"

    def test_mode_is_passed_to_compiler(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", "export default 1;\n")
        compiler = FakeCompiler()
        asyncio.run(_driver(tmp_path, compiler, mode="production").compile("./a.ts"))
        assert compiler.modes == ["production"]

    def test_synthetic_module(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "pages/index.ts", "export default 1;\n")
        driver = _driver(tmp_path)

        main = asyncio.run(driver.compile("./main.js", source_code='import "./pages/index.ts";\n'))

        index = driver.context.graph.get("./pages/index.js")
        assert index is not None
        assert main.emitted_content == f'import "./pages/index.{index.fingerprint[:9]}.js";\n'
        assert not (tmp_path / "src" / "main.js").exists()


# ###############
# Idempotence
# ###############


class TestIdempotence:
    def test_second_compile_writes_nothing(self, tmp_path: Path) -> None:
        _chain(tmp_path / "src")
        compiler = FakeCompiler()
        driver = _driver(tmp_path, compiler)

        async def scenario() -> tuple[Module, Module, int]:
            first = await driver.compile("./a.ts")
            writes = driver.context.cache.write_count
            second = await driver.compile("./a.ts")
            return first, second, driver.context.cache.write_count - writes

        first, second, writes = asyncio.run(scenario())
        assert second.fingerprint == first.fingerprint
        assert writes == 0
        assert len(compiler.calls) == 3

    def test_fresh_context_reuses_cache(self, tmp_path: Path) -> None:
        _chain(tmp_path / "src")
        first = asyncio.run(_driver(tmp_path).compile("./a.ts"))

        compiler = FakeCompiler()
        driver = _driver(tmp_path, compiler)
        second = asyncio.run(driver.compile("./a.ts"))

        assert second.fingerprint == first.fingerprint
        assert second.emitted_content == first.emitted_content
        assert compiler.calls == []
        assert driver.context.cache.write_count == 0


# ###############
# Propagation
# ###############


class TestPropagation:
    def test_leaf_change_cascades_to_ancestors(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _chain(src)
        compiler = FakeCompiler()
        driver = _driver(tmp_path, compiler)
        graph = driver.context.graph

        async def scenario() -> tuple[dict[str, Module], dict[str, Module]]:
            await driver.compile("./a.ts")
            before = {i: graph.get(i).model_copy(deep=True) for i in ("./a.js", "./b.js", "./c.js")}
            _write(src, "c.ts", "export default 2;\n")
            await driver.compile("./a.ts")
            after = {i: graph.get(i) for i in ("./a.js", "./b.js", "./c.js")}
            return before, after

        compiler_calls_before = len(compiler.calls)
        before, after = asyncio.run(scenario())

        for identity in ("./a.js", "./b.js", "./c.js"):
            assert after[identity].fingerprint != before[identity].fingerprint
        assert after["./a.js"].source_digest == before["./a.js"].source_digest
        assert f'"./b.{after["./b.js"].fingerprint[:9]}.js"' in after["./a.js"].emitted_content
        assert f'"./c.{after["./c.js"].fingerprint[:9]}.js"' in after["./b.js"].emitted_content
        assert compiler.calls[compiler_calls_before + 3 :] == ["./c.ts"]

    def test_edges_carry_target_fingerprints(self, tmp_path: Path) -> None:
        _chain(tmp_path / "src")
        driver = _driver(tmp_path)
        asyncio.run(driver.compile("./a.ts"))
        assert driver.context.graph.stale_edges() == []

    def test_no_placeholder_left_in_acyclic_output(self, tmp_path: Path) -> None:
        _chain(tmp_path / "src")
        driver = _driver(tmp_path)
        asyncio.run(driver.compile("./a.ts"))
        for module in driver.context.graph:
            assert PLACEHOLDER_TOKEN not in module.emitted_content

    def test_diamond_compiles_each_module_once(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "a.ts", 'import "./b.ts";\nimport "./c.ts";\n')
        _write(src, "b.ts", 'import "./c.ts";\n')
        _write(src, "c.ts", "export default 1;\n")
        compiler = FakeCompiler()
        asyncio.run(_driver(tmp_path, compiler).compile("./a.ts"))
        assert sorted(compiler.calls) == ["./a.ts", "./b.ts", "./c.ts"]

    def test_repeated_import_is_updated_everywhere(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "a.ts", 'import x from "./b.ts";\nexport * from "./b.ts";\n')
        _write(src, "b.ts", "export const y = 1;\n")
        driver = _driver(tmp_path)
        a = asyncio.run(driver.compile("./a.ts"))
        b = driver.context.graph.get("./b.js")
        assert a.emitted_content.count(f"./b.{b.fingerprint[:9]}.js") == 2


# ###############
# Cycles
# ###############


class TestCycles:
    @staticmethod
    def _pair(src: Path) -> None:
        _write(src, "a.ts", 'import b from "./b.ts";\nexport default 1;\n')
        _write(src, "b.ts", 'import a from "./a.ts";\nexport default 2;\n')

    def test_cycle_terminates_and_is_stable(self, tmp_path: Path) -> None:
        self._pair(tmp_path / "src")
        driver = _driver(tmp_path)

        async def scenario() -> tuple[list[str], list[str], int]:
            await driver.compile("./a.ts")
            first = [m.fingerprint for m in driver.context.graph]
            writes = driver.context.cache.write_count
            await driver.compile("./a.ts")
            await driver.compile("./b.ts")
            second = [m.fingerprint for m in driver.context.graph]
            return first, second, driver.context.cache.write_count - writes

        first, second, writes = asyncio.run(scenario())
        assert len(first) == 2
        assert first == second
        assert writes == 0

    def test_cyclic_edges_keep_placeholder(self, tmp_path: Path) -> None:
        self._pair(tmp_path / "src")
        driver = _driver(tmp_path)
        asyncio.run(driver.compile("./a.ts"))
        for identity, target in (("./a.js", "./b"), ("./b.js", "./a")):
            module = driver.context.graph.get(identity)
            dep = module.dependencies[0]
            assert dep.cyclic
            assert dep.fingerprint == ""
            assert f"{target}.{PLACEHOLDER_TOKEN}.js" in module.emitted_content

    def test_result_does_not_depend_on_entry_module(self, tmp_path: Path) -> None:
        results = []
        for entry in ("./a.ts", "./b.ts"):
            root = tmp_path / entry[2]
            self._pair(root / "src")
            driver = _driver(root)
            asyncio.run(driver.compile(entry))
            results.append({m.identity: m.fingerprint for m in driver.context.graph})
        assert results[0] == results[1]

    def test_edge_into_cycle_carries_fingerprint(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        self._pair(src)
        _write(src, "main.ts", 'import a from "./a.ts";\nexport default a;\n')
        driver = _driver(tmp_path)
        main = asyncio.run(driver.compile("./main.ts"))
        a = driver.context.graph.get("./a.js")
        assert not main.dependencies[0].cyclic
        assert main.dependencies[0].fingerprint == a.fingerprint
        assert f"./a.{a.short_fingerprint}.js" in main.emitted_content
        assert driver.context.graph.stale_edges() == []

    def test_breaking_a_cycle_restores_version_tokens(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        self._pair(src)
        driver = _driver(tmp_path)

        async def scenario() -> Module:
            await driver.compile("./a.ts")
            _write(src, "b.ts", "export default 2;\n")
            await driver.compile("./b.ts", force=True)
            return await driver.compile("./a.ts")

        a = asyncio.run(scenario())
        b = driver.context.graph.get("./b.js")
        assert not a.dependencies[0].cyclic
        assert a.dependencies[0].fingerprint == b.fingerprint
        assert f"./b.{b.short_fingerprint}.js" in a.emitted_content
        assert PLACEHOLDER_TOKEN not in a.emitted_content

    def test_cyclic_flag_survives_the_cache(self, tmp_path: Path) -> None:
        self._pair(tmp_path / "src")
        asyncio.run(_driver(tmp_path).compile("./a.ts"))
        cached = _driver(tmp_path).context.cache.lookup("./a.js")
        assert cached is not None
        assert cached.dependencies[0].cyclic

    def test_self_import(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", 'import a from "./a.ts";\nexport default 1;\n')
        module = asyncio.run(_driver(tmp_path).compile("./a.ts"))
        assert module.dependencies[0].path == "./a.ts"
        assert module.dependencies[0].cyclic
        assert f"./a.{PLACEHOLDER_TOKEN}.js" in module.emitted_content


# ###############
# Remote modules
# ###############


class TestRemote:
    def test_same_url_fetched_once(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "a.ts", 'import React from "https://esm.sh/react";\n')
        _write(src, "b.ts", 'import React from "https://esm.sh/react";\n')
        opener = FakeOpener({"https://esm.sh/react": "export default {};\n"})
        driver = _driver(tmp_path, opener=opener)

        async def scenario() -> None:
            await driver.build([CompileRequest("./a.ts"), CompileRequest("./b.ts")])
            await driver.compile("./a.ts", force=True)

        asyncio.run(scenario())
        assert opener.requested == ["https://esm.sh/react"]
        react = driver.context.graph.get("/-/esm.sh/react.js")
        assert react is not None
        assert react.is_remote
        assert driver.context.cache.artifact_path(react.identity, react.fingerprint).name == "react.js"

    def test_raw_remote_script_skips_compiler(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", 'import "https://esm.sh/react-dom";\n')
        opener = FakeOpener(
            {
                "https://esm.sh/react-dom": 'import React from "https://esm.sh/react";\nexport default React;\n',
                "https://esm.sh/react": "export default {};\n",
            }
        )
        compiler = FakeCompiler()
        driver = _driver(tmp_path, compiler, opener)
        asyncio.run(driver.compile("./a.ts"))
        assert compiler.calls == ["./a.ts"]
        react_dom = driver.context.graph.get("/-/esm.sh/react-dom.js")
        assert 'from "./react.js"' in react_dom.emitted_content

    def test_remote_typescript_goes_through_compiler(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", 'import "https://deno.land/x/mod.ts";\n')
        opener = FakeOpener({"https://deno.land/x/mod.ts": "export const a: number = 1;\n"})
        compiler = FakeCompiler()
        asyncio.run(_driver(tmp_path, compiler, opener).compile("./a.ts"))
        assert compiler.calls == ["./a.ts", "https://deno.land/x/mod.ts"]

    def test_cached_remote_not_refetched_in_new_process(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", 'import "https://esm.sh/react";\n')
        asyncio.run(_driver(tmp_path, opener=FakeOpener({"https://esm.sh/react": "export {};\n"})).compile("./a.ts"))

        offline = FakeOpener()
        asyncio.run(_driver(tmp_path, opener=offline).compile("./a.ts"))
        assert offline.requested == []

    def test_loopback_module_is_revalidated(self, tmp_path: Path) -> None:
        url = "http://localhost:8080/mod.js"
        opener = FakeOpener({url: "export const v = 1;\n"})
        driver = _driver(tmp_path, opener=opener)

        async def scenario() -> tuple[Module, Module]:
            first = (await driver.compile(url)).model_copy()
            opener.responses[url] = "export const v = 2;\n"
            second = await driver.compile(url)
            return first, second

        first, second = asyncio.run(scenario())
        assert first.identity == "/-/localhost/8080/mod.js"
        assert second.fingerprint != first.fingerprint
        assert len(opener.requested) == 2

    def test_fetch_failure_fails_importer(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", 'import "https://esm.sh/missing";\n')
        driver = _driver(tmp_path)
        with pytest.raises(FetchError, match="https://esm.sh/missing"):
            asyncio.run(driver.compile("./a.ts"))
        assert "./a.js" not in driver.context.graph
        assert not driver.context.cache.meta_path("./a.js").exists()


# ###############
# Cache resilience
# ###############


class TestCacheResilience:
    def test_deleted_artifact_is_recompiled(self, tmp_path: Path) -> None:
        _chain(tmp_path / "src")
        first = _driver(tmp_path)
        asyncio.run(first.compile("./a.ts"))
        b = first.context.graph.get("./b.js")
        first.context.cache.artifact_path(b.identity, b.fingerprint).unlink()

        compiler = FakeCompiler()
        second = _driver(tmp_path, compiler)
        a = asyncio.run(second.compile("./a.ts"))

        assert compiler.calls == ["./b.ts"]
        assert second.context.graph.get("./b.js").fingerprint == b.fingerprint
        assert a.fingerprint == first.context.graph.get("./a.js").fingerprint

    def test_corrupt_metadata_is_recompiled(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", "export default 1;\n")
        first = _driver(tmp_path)
        asyncio.run(first.compile("./a.ts"))
        first.context.cache.meta_path("./a.js").write_text("{broken", encoding="utf-8")

        compiler = FakeCompiler()
        module = asyncio.run(_driver(tmp_path, compiler).compile("./a.ts"))
        assert compiler.calls == ["./a.ts"]
        assert module.emitted_content == "export default 1;\n"

    def test_overwritten_artifact_is_recompiled(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", "export default 1;\n")
        first = _driver(tmp_path)
        a = asyncio.run(first.compile("./a.ts"))
        artifact = first.context.cache.artifact_path(a.identity, a.fingerprint)
        artifact.write_text("garbage", encoding="utf-8")

        compiler = FakeCompiler()
        module = asyncio.run(_driver(tmp_path, compiler).compile("./a.ts"))
        assert compiler.calls == ["./a.ts"]
        assert module.fingerprint == a.fingerprint
        assert artifact.read_text(encoding="utf-8") == "export default 1;\n"

    def test_deleted_source_map_is_restored(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", "export default 1;\n")
        first = _driver(tmp_path, MappingCompiler())
        a = asyncio.run(first.compile("./a.ts"))
        artifact = first.context.cache.artifact_path(a.identity, a.fingerprint)
        map_file = artifact.with_name(artifact.name + ".map")
        map_file.unlink()

        asyncio.run(_driver(tmp_path, MappingCompiler()).compile("./a.ts", force=True))
        assert map_file.read_text(encoding="utf-8") == a.emitted_source_map


# ###############
# Source edits
# ###############


class TestSourceEdits:
    def test_whitespace_edit_keeps_fingerprint(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "pages/index.ts", "export default 1;\n")
        driver = _driver(tmp_path)

        async def scenario() -> tuple[Module, Module, Module]:
            first = (await driver.compile("./pages/index.ts")).model_copy()
            _write(src, "pages/index.ts", "export default 1;\n\n")
            blank = (await driver.compile("./pages/index.ts")).model_copy()
            _write(src, "pages/index.ts", "export default 2;\n")
            edited = await driver.compile("./pages/index.ts")
            return first, blank, edited

        first, blank, edited = asyncio.run(scenario())
        assert blank.source_digest != first.source_digest
        assert blank.fingerprint == first.fingerprint
        assert edited.fingerprint != first.fingerprint

    def test_whitespace_edit_refreshes_source_map(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "a.ts", "export default 1;\n")
        driver = _driver(tmp_path, MappingCompiler())

        async def scenario() -> tuple[Module, Module]:
            first = (await driver.compile("./a.ts")).model_copy()
            _write(src, "a.ts", "\n\nexport default 1;\n")
            return first, await driver.compile("./a.ts")

        first, second = asyncio.run(scenario())
        assert second.fingerprint == first.fingerprint
        cached = CompileCache(tmp_path / ".cache").lookup("./a.js")
        assert cached is not None
        assert cached.emitted_source_map == '{"lines": 3}'

    def test_force_recompiles_unchanged_source(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", "export default 1;\n")
        compiler = FakeCompiler()
        driver = _driver(tmp_path, compiler)

        async def scenario() -> None:
            await driver.compile("./a.ts")
            await driver.compile("./a.ts")
            await driver.compile("./a.ts", force=True)

        asyncio.run(scenario())
        assert compiler.calls == ["./a.ts", "./a.ts"]


# ###############
# Failures
# ###############


class TestFailures:
    def test_deleted_dependency_fails_importer(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "pages/about.ts", 'import { x } from "../shared/util.ts";\nexport default x;\n')
        _write(src, "shared/util.ts", "export const x = 1;\n")
        driver = _driver(tmp_path)

        async def scenario() -> None:
            await driver.compile("./pages/about.ts")
            (src / "shared" / "util.ts").unlink()
            await driver.compile("./pages/about.ts")

        with pytest.raises(SourceNotFoundError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.source_file == "./shared/util.ts"
        assert exc_info.value.importer == "./pages/about.ts"

    def test_missing_entry(self, tmp_path: Path) -> None:
        with pytest.raises(SourceNotFoundError):
            asyncio.run(_driver(tmp_path).compile("./nope.ts"))

    def test_diagnostics_are_fatal(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        _write(src, "a.ts", 'import "./b.ts";\n')
        _write(src, "b.ts", "// SYNTAX ERROR\n")
        driver = _driver(tmp_path)
        with pytest.raises(CompileError) as exc_info:
            asyncio.run(driver.compile("./a.ts"))
        assert exc_info.value.diagnostics == ["./b.ts:1:1: unexpected token"]
        assert "./a.js" not in driver.context.graph
        assert "./b.js" not in driver.context.graph

    def test_oversized_source_is_rejected(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "big.ts", "x" * 100)
        with pytest.raises(SourceTooLargeError, match="big.ts"):
            asyncio.run(_driver(tmp_path, max_source_size=10).compile("./big.ts"))

    def test_bare_import_fails(self, tmp_path: Path) -> None:
        _write(tmp_path / "src", "a.ts", 'import React from "react";\n')
        with pytest.raises(CompilerError, match="import map"):
            asyncio.run(_driver(tmp_path).compile("./a.ts"))


# ###############
# Concurrency
# ###############


def test_concurrent_requests_share_one_compile(tmp_path: Path) -> None:
    _chain(tmp_path / "src")
    compiler = FakeCompiler()
    driver = _driver(tmp_path, compiler)

    async def scenario() -> list[Module]:
        return await asyncio.gather(*(driver.compile("./a.ts") for _ in range(4)))

    results = asyncio.run(scenario())
    assert all(r is results[0] for r in results)
    assert sorted(compiler.calls) == ["./a.ts", "./b.ts", "./c.ts"]


def test_independent_contexts_do_not_share_state(tmp_path: Path) -> None:
    _write(tmp_path / "one" / "src", "a.ts", "export default 1;\n")
    _write(tmp_path / "two" / "src", "a.ts", "export default 2;\n")
    one = _driver(tmp_path / "one")
    two = _driver(tmp_path / "two")
    a1 = asyncio.run(one.compile("./a.ts"))
    a2 = asyncio.run(two.compile("./a.ts"))
    assert a1.fingerprint != a2.fingerprint
    assert one.context.graph.get("./a.js") is a1


# ###############
# Dependency updates
# ###############


def test_update_dependency_rewrites_matching_specifiers_only() -> None:
    spec = f"./b.{PLACEHOLDER_TOKEN}.js"
    content = f'import b from "{spec}";\nexport * from "{spec}";\nconst s = "{spec}";\n'
    dep = Dependency(path="./b.ts", specifier=spec)
    module = Module(
        identity="./a.js",
        source_file="./a.ts",
        dependencies=[dep],
        emitted_content=content,
        fingerprint=fingerprint(content),
    )

    assert update_dependency(module, dep, "123456789abcdef")

    assert module.emitted_content.count("./b.123456789.js") == 2
    assert f'const s = "{spec}";' in module.emitted_content
    assert dep.specifier == "./b.123456789.js"
    assert dep.fingerprint == "123456789abcdef"
    assert module.fingerprint == fingerprint(module.emitted_content)
    assert not update_dependency(module, dep, "123456789abcdef")


def test_update_dependency_on_remote_edge_keeps_content() -> None:
    dep = Dependency(path="https://esm.sh/react", specifier="./-/esm.sh/react.js")
    module = Module(identity="./a.js", source_file="./a.ts", dependencies=[dep], emitted_content="x", fingerprint="f")
    assert update_dependency(module, dep, "abc")
    assert module.emitted_content == "x"
    assert module.fingerprint == "f"


def test_mark_cyclic_resets_version_token() -> None:
    spec = "./b.123456789.js"
    content = f'import b from "{spec}";\n'
    dep = Dependency(path="./b.ts", specifier=spec, fingerprint="123456789abcdef")
    module = Module(identity="./a.js", source_file="./a.ts", dependencies=[dep], emitted_content=content)

    assert mark_cyclic(module, dep)

    assert dep.cyclic
    assert dep.fingerprint == ""
    assert dep.specifier == f"./b.{PLACEHOLDER_TOKEN}.js"
    assert module.emitted_content == f'import b from "./b.{PLACEHOLDER_TOKEN}.js";\n'
    assert module.fingerprint == fingerprint(module.emitted_content)
    assert not mark_cyclic(module, dep)
