# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Module compilation: resolution, fingerprinting, caching and the build driver."""

from modforge.compiler.cache import CompileCache
from modforge.compiler.driver import (
    BuildContext,
    BuildPass,
    CompileRequest,
    CompilerDriver,
    mark_cyclic,
    update_dependency,
)
from modforge.compiler.errors import (
    CompileError,
    CompilerError,
    FetchError,
    IntegrityError,
    ResolveError,
    SourceNotFoundError,
    SourceTooLargeError,
)
from modforge.compiler.fetcher import RemoteFetcher
from modforge.compiler.graph import ModuleGraph
from modforge.compiler.resolver import PathResolver, module_identity
from modforge.compiler.sources import list_source_modules
from modforge.compiler.transpile import CompileOptions, CompileResult, Compiler, DefaultCompiler

__all__ = [
    "BuildContext",
    "BuildPass",
    "CompileCache",
    "CompileError",
    "CompileOptions",
    "CompileRequest",
    "CompileResult",
    "Compiler",
    "CompilerDriver",
    "CompilerError",
    "DefaultCompiler",
    "FetchError",
    "IntegrityError",
    "ModuleGraph",
    "PathResolver",
    "RemoteFetcher",
    "ResolveError",
    "SourceNotFoundError",
    "SourceTooLargeError",
    "list_source_modules",
    "mark_cyclic",
    "module_identity",
    "update_dependency",
]
