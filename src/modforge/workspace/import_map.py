# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Import map model: configured substitutions applied to import specifiers."""

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# ###############
# Public Interface
# ###############

IMPORT_MAP_NAME = "import_map.json"


class ImportMapError(Exception):
    """Raised when the import map file cannot be read or is invalid."""


class ImportMap(BaseModel):
    """A table of specifier substitutions.

    Exact entries replace the whole specifier. Entries whose key ends in ``/``
    replace a matching prefix; the longest matching prefix wins.
    """

    model_config = ConfigDict(extra="ignore")

    imports: dict[str, str] = Field(default_factory=dict)

    def resolve(self, specifier: str) -> str:
        """Return *specifier* after applying the substitution table."""
        if specifier in self.imports:
            return self.imports[specifier]
        best = ""
        for key in self.imports:
            if key.endswith("/") and specifier.startswith(key) and len(key) > len(best):
                best = key
        if not best:
            return specifier
        return self.imports[best].removesuffix("/") + "/" + specifier[len(best) :]


def load_import_map(path: Path) -> ImportMap:
    """Load and validate an import map file.

    Args:
        path: Path to the ``import_map.json`` file.

    Returns:
        A validated ImportMap instance.

    Raises:
        ImportMapError: If the file cannot be read, is not valid JSON, or does
            not conform to ``{"imports": {specifier: replacement}}``.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ImportMapError(f"Cannot read import map '{path}': {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ImportMapError(f"Invalid JSON in import map '{path}': {exc}") from exc

    try:
        return ImportMap.model_validate(data)
    except ValidationError as exc:
        raise ImportMapError(f"Invalid import map '{path}': {exc}") from exc
