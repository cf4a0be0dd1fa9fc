# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""In-memory module graph with a reverse (importer) index."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from modforge.compiler.resolver import module_identity
from modforge.model.module import Dependency, Module

# ###############
# Public Interface
# ###############


class ModuleGraph:
    """Directed graph of compiled modules.

    Nodes are keyed by module identity; edges are the non-external entries of
    each module's ``dependencies``. Removing a node leaves edges that point at
    it from other modules in place (they dangle until those modules are
    resolved again).
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Module] = {}
        self._importers: dict[str, set[str]] = {}

    def __contains__(self, identity: object) -> bool:
        return identity in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Module]:
        return iter(list(self._nodes.values()))

    def get(self, identity: str) -> Module | None:
        return self._nodes.get(identity)

    def identities(self) -> list[str]:
        return sorted(self._nodes)

    def add(self, module: Module) -> None:
        """Insert or replace *module* and re-index its outgoing edges."""
        previous = self._nodes.get(module.identity)
        if previous is not None:
            self._unindex(previous)
        self._nodes[module.identity] = module
        for target in edge_targets(module):
            self._importers.setdefault(target, set()).add(module.identity)

    def remove(self, identity: str) -> Module | None:
        """Remove a node; edges pointing at it from other modules are kept."""
        module = self._nodes.pop(identity, None)
        if module is not None:
            self._unindex(module)
        return module

    def importers(self, identity: str) -> list[Module]:
        """Return the modules with an edge to *identity*, ordered by identity."""
        return [self._nodes[i] for i in sorted(self._importers.get(identity, ())) if i in self._nodes]

    def stale_edges(self) -> list[tuple[Module, Dependency]]:
        """Return every acyclic edge whose recorded fingerprint differs from its target's."""
        stale: list[tuple[Module, Dependency]] = []
        for module in self._nodes.values():
            for dep in module.dependencies:
                if dep.external or dep.cyclic:
                    continue
                target = self._nodes.get(module_identity(dep.path))
                if target is not None and dep.fingerprint != target.fingerprint:
                    stale.append((module, dep))
        return stale

    def reaches(self, source: str, target: str) -> bool:
        """Return True if a path of one or more edges leads from *source* to *target*."""
        seen: set[str] = set()
        queue = deque([source])
        while queue:
            module = self._nodes.get(queue.popleft())
            if module is None:
                continue
            for identity in edge_targets(module):
                if identity == target:
                    return True
                if identity not in seen:
                    seen.add(identity)
                    queue.append(identity)
        return False

    def _unindex(self, module: Module) -> None:
        for target in edge_targets(module):
            importers = self._importers.get(target)
            if importers is not None:
                importers.discard(module.identity)
                if not importers:
                    del self._importers[target]


def edge_targets(module: Module) -> list[str]:
    """Return the identities *module* has compiled-import edges to."""
    return [module_identity(dep.path) for dep in module.dependencies if not dep.external]
