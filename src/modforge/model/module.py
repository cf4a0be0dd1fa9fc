# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Compiled module entities shared by the compiler, the cache and the watcher."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic import Field as _Field

# ###############
# Public Interface
# ###############

FINGERPRINT_PREFIX_LENGTH = 9
"""Width of the fingerprint prefix embedded in artifact names and served URLs."""


class SourceKind(Enum):
    """Selects the compile path used for a module."""

    SCRIPT = "script"
    SCRIPT_WITH_MARKUP = "script-with-markup"
    STYLE = "style"


class ChangeKind(Enum):
    """Kinds of change reported to watcher listeners."""

    ADD = "add"
    MODIFY = "modify"
    REMOVE = "remove"


class Dependency(BaseModel):
    """One import edge from an owning module to a target module.

    Attributes:
        path: The pre-rewrite target: a fully-qualified URL for remote targets,
            or the root-resolved source path (``./shared/util.ts``) for local ones.
        fingerprint: Last-known fingerprint of the target; empty until resolved.
        specifier: The exact specifier text currently emitted for this edge.
        external: True when the import is left as a live network import and
            the target is never compiled.
        cyclic: True when the target imports the owner back, directly or
            through other modules. A cyclic edge keeps the placeholder token.
    """

    path: str
    fingerprint: str = ""
    specifier: str = ""
    external: bool = False
    cyclic: bool = False


class Module(BaseModel):
    """A compiled unit: one local source file, synthetic entry, or remote URL."""

    identity: str
    source_file: str
    is_remote: bool = False
    source_kind: SourceKind = SourceKind.SCRIPT
    source_digest: str = ""
    dependencies: list[Dependency] = _Field(default_factory=list)
    emitted_content: str = ""
    emitted_source_map: str = ""
    fingerprint: str = ""

    @property
    def short_fingerprint(self) -> str:
        return self.fingerprint[:FINGERPRINT_PREFIX_LENGTH]

    @property
    def served_path(self) -> str:
        """The URL path under which the dev server exposes this module."""
        if self.is_remote:
            return self.identity
        stem = self.identity[1:].removesuffix(".js")
        return f"{stem}.{self.short_fingerprint}.js"


class ChangeEvent(BaseModel):
    """Notification emitted to watcher listeners after a module changed."""

    module_id: str
    kind: ChangeKind
    fingerprint: str | None = None


class AppModule(BaseModel):
    """Manifest entry for the optional application shell module."""

    hash: str


class PageModule(BaseModel):
    """Manifest entry for one routable page."""

    model_config = ConfigDict(populate_by_name=True)

    module_id: str = _Field(alias="moduleId")
    hash: str


class BuildManifest(BaseModel):
    """Manifest consumed by the client bootstrap."""

    model_config = ConfigDict(populate_by_name=True)

    base_url: str = _Field(alias="baseUrl", default="/")
    default_locale: str = _Field(alias="defaultLocale", default="en")
    app_module: AppModule | None = _Field(alias="appModule", default=None)
    page_modules: dict[str, PageModule] = _Field(alias="pageModules", default_factory=dict)
