# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Data model and YAML parser for the modforge project configuration file."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

# ###############
# Public Interface
# ###############

CONFIG_FILE_NAME = "modforge.yaml"

DEFAULT_MAX_SOURCE_SIZE = 10 * (1 << 20)


class ProjectConfigError(Exception):
    """Raised when a project configuration file is invalid or cannot be loaded."""


@dataclass
class ProjectConfig:
    """The parsed configuration for a modforge project.

    Attributes:
        src_directory: Source root, relative to the project root, as a clean
            leading-slash path (``/`` is the project root itself).
        base_url: URL prefix under which the application is served.
        default_locale: Locale used when a request names none.
        cache_remote: When False, remote imports that need no compilation are
            left as live network imports instead of being cached locally.
        bootstrap_module: Optional specifier imported by the synthetic
            ``./main.js`` entry to boot the client.
        max_source_size: Largest source file accepted, in bytes.
    """

    src_directory: str = "/"
    base_url: str = "/"
    default_locale: str = "en"
    cache_remote: bool = True
    bootstrap_module: str | None = None
    max_source_size: int = DEFAULT_MAX_SOURCE_SIZE


def load_project_config(path: Path) -> ProjectConfig:
    """Load and parse a modforge project configuration file.

    Args:
        path: Path to the ``modforge.yaml`` file.

    Returns:
        A ProjectConfig instance populated from the file.

    Raises:
        ProjectConfigError: If the file cannot be read or the configuration is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ProjectConfigError(f"Project config file not found: {path}") from None
    except OSError as exc:
        raise ProjectConfigError(f"Cannot read project config file: {exc}") from exc

    return _parse_project_config(text, source_label=str(path))


def clean_path(path: str) -> str:
    """Normalize *path* to a leading-slash form without ``.``/``..``/empty segments."""
    segments: list[str] = []
    for part in path.split("/"):
        part = part.strip()
        if part in ("", "."):
            continue
        if part == "..":
            if segments:
                segments.pop()
            continue
        segments.append(part)
    return "/" + "/".join(segments)


# ################
# Implementation
# ################


def _parse_project_config(text: str, source_label: str = "<string>") -> ProjectConfig:
    """Parse project config YAML text into a ProjectConfig.

    An empty document yields the defaults.

    Raises:
        ProjectConfigError: If the YAML is invalid or a field has the wrong type.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ProjectConfigError(f"Invalid YAML in {source_label}: {exc}") from exc

    if data is None:
        return ProjectConfig()
    if not isinstance(data, dict):
        raise ProjectConfigError(f"{source_label}: project config must be a YAML mapping")

    config = ProjectConfig()
    src_directory = _optional_string(data, "src-directory", source_label)
    if src_directory is not None:
        config.src_directory = clean_path(src_directory)
    base_url = _optional_string(data, "base-url", source_label)
    if base_url is not None:
        config.base_url = clean_path(base_url)
    default_locale = _optional_string(data, "default-locale", source_label)
    if default_locale is not None:
        config.default_locale = default_locale
    config.bootstrap_module = _optional_string(data, "bootstrap-module", source_label)

    if "cache-remote" in data:
        value = data["cache-remote"]
        if not isinstance(value, bool):
            raise ProjectConfigError(f"{source_label}: 'cache-remote' must be a boolean")
        config.cache_remote = value

    if "max-source-size" in data:
        value = data["max-source-size"]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ProjectConfigError(f"{source_label}: 'max-source-size' must be a positive integer")
        config.max_source_size = value

    return config


def _optional_string(mapping: dict[str, object], key: str, source_label: str) -> str | None:
    """Extract an optional non-empty string field, raising ProjectConfigError on a bad type."""
    if key not in mapping:
        return None
    value = mapping[key]
    if not isinstance(value, str) or not value:
        raise ProjectConfigError(f"{source_label}: '{key}' must be a non-empty string")
    return value
