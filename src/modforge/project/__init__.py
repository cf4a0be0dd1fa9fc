# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Application projects: discovery, builds and the build manifest."""

from modforge.project.project import APP_MODULE, DIST_PREFIX, MAIN_MODULE, Project, page_route

__all__ = [
    "APP_MODULE",
    "DIST_PREFIX",
    "MAIN_MODULE",
    "Project",
    "page_route",
]
