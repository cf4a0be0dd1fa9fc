# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Data model for compiled modules and the build manifest."""

from modforge.model.module import (
    FINGERPRINT_PREFIX_LENGTH,
    AppModule,
    BuildManifest,
    ChangeEvent,
    ChangeKind,
    Dependency,
    Module,
    PageModule,
    SourceKind,
)

__all__ = [
    "FINGERPRINT_PREFIX_LENGTH",
    "AppModule",
    "BuildManifest",
    "ChangeEvent",
    "ChangeKind",
    "Dependency",
    "Module",
    "PageModule",
    "SourceKind",
]
