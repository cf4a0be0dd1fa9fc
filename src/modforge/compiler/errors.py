# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Exception taxonomy for module compilation.

Every error here is fatal for the module it names and for every importer
that tries to resolve it. Cache corruption is deliberately absent: a damaged
cache entry is a cache miss, not an error.
"""

# ###############
# Public Interface
# ###############


class CompilerError(Exception):
    """Base class for all per-module compilation failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class SourceNotFoundError(CompilerError):
    """Raised when a local source file referenced by an import does not exist."""

    def __init__(self, source_file: str, importer: str | None = None) -> None:
        message = f"Module '{source_file}' not found"
        if importer is not None:
            message += f" (imported by '{importer}')"
        super().__init__(message)
        self.source_file = source_file
        self.importer = importer


class SourceTooLargeError(CompilerError):
    """Raised when a source file exceeds the configured size ceiling."""

    def __init__(self, source_file: str, size: int, limit: int) -> None:
        super().__init__(
            f"Ignored module '{source_file}': too large ({size / (1 << 20):.2f}MiB, limit {limit / (1 << 20):.2f}MiB)"
        )
        self.source_file = source_file
        self.size = size
        self.limit = limit


class FetchError(CompilerError):
    """Raised when a remote module cannot be downloaded."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Download {url}: {reason}")
        self.url = url
        self.reason = reason


class CompileError(CompilerError):
    """Raised when the compile function reports diagnostics for a module."""

    def __init__(self, source_file: str, diagnostics: list[str]) -> None:
        lines = "\n".join(f"  {d}" for d in diagnostics)
        super().__init__(f"Compile errors in '{source_file}':\n{lines}")
        self.source_file = source_file
        self.diagnostics = diagnostics


class ResolveError(CompilerError):
    """Raised when an import specifier cannot be mapped to a module."""


class IntegrityError(CompilerError):
    """Raised when two different artifacts of one module share a fingerprint prefix."""
