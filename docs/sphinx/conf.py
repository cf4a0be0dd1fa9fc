# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Sphinx configuration for modforge documentation."""

project = "modforge"
author = "modforge Contributors"
release = "0.1.0"

extensions: list[str] = ["sphinx.ext.autodoc", "sphinx.ext.napoleon"]

html_theme = "alabaster"
