# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""The compile-function boundary and the built-in compilers.

A compiler turns one module's source text into emitted JavaScript, calling
``options.rewrite_import_path`` for every import specifier it meets and
emitting whatever that callback returns. A non-empty ``diagnostics`` list
marks the compile as failed.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urlsplit

from modforge.compiler.lexer import LexerError, rewrite_specifiers
from modforge.model.module import SourceKind

# ###############
# Public Interface
# ###############


@dataclass
class CompileOptions:
    """Per-call compile settings.

    Attributes:
        mode: ``"development"`` or ``"production"``.
        source_kind: The compile path selected for the module.
        rewrite_import_path: Maps an author-facing specifier to the one to emit.
        language: Overrides the language inferred from the file extension
            (``"ts"``, ``"tsx"``, ``"jsx"`` or ``"js"``), e.g. from a response
            content type.
    """

    mode: str = "development"
    source_kind: SourceKind = SourceKind.SCRIPT
    rewrite_import_path: Callable[[str], str] | None = None
    language: str | None = None


@dataclass
class CompileResult:
    output_text: str = ""
    source_map_text: str = ""
    diagnostics: list[str] = field(default_factory=list)


class Compiler(Protocol):
    """Signature shared by every compile function."""

    def __call__(self, file_name: str, source_text: str, options: CompileOptions) -> CompileResult: ...


def rewrite_imports(source_text: str, options: CompileOptions) -> CompileResult:
    """Rewrite every import specifier of JavaScript text through the options callback."""
    rewrite = options.rewrite_import_path
    if rewrite is None:
        return CompileResult(output_text=source_text)
    try:
        output = rewrite_specifiers(source_text, lambda spec: rewrite(spec.value))
    except LexerError as exc:
        return CompileResult(diagnostics=[str(exc)])
    return CompileResult(output_text=output)


def rewrite_raw_script(source_text: str, rewrite_import_path: Callable[[str], str]) -> str:
    """Rewrite ``from "x"`` and ``import "x"`` specifiers of unparsed JavaScript.

    Used only for remote plain-JavaScript modules, which are cached without
    being run through a compiler. Matching is textual.
    """
    rewritten: dict[str, str] = {}

    def _replace(match: re.Match[str]) -> str:
        keyword, quote, specifier = match.group(1), match.group(2), match.group(3)
        if specifier not in rewritten:
            rewritten[specifier] = rewrite_import_path(specifier)
        return f"{keyword}{quote}{rewritten[specifier]}{quote}"

    return _RAW_IMPORT_RE.sub(_replace, source_text)


class ScriptCompiler:
    """Plain JavaScript: emitted as written, with import specifiers rewritten."""

    def __call__(self, file_name: str, source_text: str, options: CompileOptions) -> CompileResult:
        return rewrite_imports(source_text, options)


class StyleCompiler:
    """CSS: emitted as an ES module whose default export is the stylesheet text.

    ``@import`` rules become side-effect module imports so that imported
    stylesheets are tracked as dependencies.
    """

    def __call__(self, file_name: str, source_text: str, options: CompileOptions) -> CompileResult:
        lines: list[str] = []

        def _collect(match: re.Match[str]) -> str:
            specifier = match.group(2)
            if options.rewrite_import_path is not None:
                specifier = options.rewrite_import_path(specifier)
            lines.append(f"import {json.dumps(specifier)};")
            return ""

        css = _CSS_IMPORT_RE.sub(_collect, source_text)
        lines.append(f"export default {json.dumps(css.strip())};")
        return CompileResult(output_text="\n".join(lines) + "\n")


class EsbuildCompiler:
    """TypeScript and JSX transpilation through the ``esbuild`` executable.

    Args:
        executable: Name or path of the esbuild binary.
        target: JavaScript language target passed to esbuild.
        timeout: Seconds allowed per transform.
    """

    def __init__(self, executable: str = "esbuild", *, target: str = "es2020", timeout: int = 60) -> None:
        self.executable = executable
        self.target = target
        self.timeout = timeout

    def __call__(self, file_name: str, source_text: str, options: CompileOptions) -> CompileResult:
        args = [
            self.executable,
            f"--loader={options.language or _loader_for(file_name, options.source_kind)}",
            "--format=esm",
            f"--target={self.target}",
            "--sourcemap=inline",
            f"--sourcefile={file_name}",
            "--jsx=transform",
            "--log-level=error",
        ]
        if options.mode == "production":
            args.append('--define:process.env.NODE_ENV="production"')
        try:
            proc = subprocess.run(
                args,
                input=source_text,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return CompileResult(diagnostics=[f"{self.executable} executable not found on PATH"])
        except subprocess.TimeoutExpired:
            return CompileResult(diagnostics=[f"{self.executable} timed out after {self.timeout}s"])
        if proc.returncode != 0:
            diagnostics = [line for line in proc.stderr.strip().splitlines() if line.strip()]
            return CompileResult(diagnostics=diagnostics or [f"{self.executable} exited with code {proc.returncode}"])

        output, source_map = _split_inline_source_map(proc.stdout)
        result = rewrite_imports(output, options)
        result.source_map_text = source_map
        return result


class DefaultCompiler:
    """Dispatches each module to the built-in compiler for its source kind."""

    def __init__(self, esbuild: EsbuildCompiler | None = None) -> None:
        self.script = ScriptCompiler()
        self.style = StyleCompiler()
        self.esbuild = esbuild if esbuild is not None else EsbuildCompiler()

    def __call__(self, file_name: str, source_text: str, options: CompileOptions) -> CompileResult:
        if options.source_kind == SourceKind.STYLE:
            return self.style(file_name, source_text, options)
        if options.language in (None, "js") and options.source_kind == SourceKind.SCRIPT and _path_of(
            file_name
        ).lower().endswith((".js", ".mjs")):
            return self.script(file_name, source_text, options)
        return self.esbuild(file_name, source_text, options)


# ################
# Implementation
# ################

_RAW_IMPORT_RE = re.compile(r"""((?:\s|^)from\s*|(?:\s|^)import\s*)(["'])([^"'\n]+)\2""", re.MULTILINE)
_CSS_IMPORT_RE = re.compile(r"""@import\s+(?:url\(\s*)?(["'])([^"']+)\1\s*\)?[^;]*;""")
_SOURCE_MAP_RE = re.compile(r"//# sourceMappingURL=data:application/json;base64,([A-Za-z0-9+/=]+)\s*$")

_LOADERS = {".ts": "ts", ".tsx": "tsx", ".jsx": "jsx", ".js": "js", ".mjs": "js", ".css": "css"}


def _path_of(file_name: str) -> str:
    if file_name.startswith(("http://", "https://")):
        return urlsplit(file_name).path
    return file_name


def _loader_for(file_name: str, source_kind: SourceKind) -> str:
    path = _path_of(file_name).lower()
    for ext, loader in _LOADERS.items():
        if path.endswith(ext):
            return loader
    if source_kind == SourceKind.SCRIPT_WITH_MARKUP:
        return "tsx"
    return "ts"


def _split_inline_source_map(output: str) -> tuple[str, str]:
    """Separate esbuild's trailing inline source map comment from the code."""
    match = _SOURCE_MAP_RE.search(output)
    if match is None:
        return output, ""
    try:
        source_map = base64.b64decode(match.group(1)).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return output, ""
    return output[: match.start()].rstrip("\n") + "\n", source_map
