# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Project configuration and import map loading."""

from modforge.workspace.config import (
    CONFIG_FILE_NAME,
    DEFAULT_MAX_SOURCE_SIZE,
    ProjectConfig,
    ProjectConfigError,
    clean_path,
    load_project_config,
)
from modforge.workspace.import_map import (
    IMPORT_MAP_NAME,
    ImportMap,
    ImportMapError,
    load_import_map,
)

__all__ = [
    "CONFIG_FILE_NAME",
    "DEFAULT_MAX_SOURCE_SIZE",
    "IMPORT_MAP_NAME",
    "ImportMap",
    "ImportMapError",
    "ProjectConfig",
    "ProjectConfigError",
    "clean_path",
    "load_import_map",
    "load_project_config",
]
