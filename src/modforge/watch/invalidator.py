# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Cascading invalidation of compiled modules after a source change.

A changed module is force-recompiled; every module that transitively imports
it then receives the new fingerprints of its dependencies without being
recompiled. Listeners are told about each module whose fingerprint moved.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable

from modforge.compiler.driver import BuildPass, CompilerDriver, mark_cyclic, update_dependency
from modforge.model.module import ChangeEvent, ChangeKind, Module

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

Listener = Callable[[ChangeEvent], None]


class Invalidator:
    """Applies file changes to a driver's module graph.

    Each change is handled inside one driver session, so at most one
    invalidation is in flight per build context.
    """

    def __init__(self, driver: CompilerDriver) -> None:
        self.driver = driver
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def handle_change(self, source_file: str, *, exists: bool) -> list[ChangeEvent]:
        """Recompile or drop *source_file* and propagate to its importers.

        Args:
            source_file: Local module source path (``./shared/util.ts``).
            exists: False when the backing file was deleted.

        Returns:
            The emitted change events, changed module first.

        Raises:
            CompilerError: If the changed module fails to compile. Nothing is
                propagated in that case.
        """
        graph = self.driver.context.graph
        identity = self.driver.context.resolver.identity(source_file)
        events: list[ChangeEvent] = []

        async with self.driver.session() as build_pass:
            if not exists:
                if self.driver.remove(source_file) is not None:
                    logger.info("Module %s removed", identity)
                    events.append(ChangeEvent(module_id=identity, kind=ChangeKind.REMOVE))
            else:
                before = {m.identity: m.fingerprint for m in graph}
                current = graph.get(identity)
                kind = ChangeKind.ADD if current is None else ChangeKind.MODIFY
                module = await self.driver.compile_within(build_pass, source_file, force=True)
                if current is None or current.fingerprint != module.fingerprint:
                    logger.info("Module %s %s", identity, "added" if kind == ChangeKind.ADD else "modified")
                    events.append(ChangeEvent(module_id=identity, kind=kind, fingerprint=module.fingerprint))
                    events.extend(await self.propagate(build_pass, module))
                events.extend(self._side_effects(before, {identity} | {e.module_id for e in events}))

        for event in events:
            self._emit(event)
        return events

    async def propagate(self, build_pass: BuildPass, changed: Module) -> list[ChangeEvent]:
        """Push *changed*'s fingerprint into every module that transitively imports it.

        Returns:
            One MODIFY event per importer whose fingerprint changed.
        """
        affected = self._importer_closure(changed.identity)
        finalized: dict[str, Module] = {changed.identity: changed}
        events: list[ChangeEvent] = []
        for identity in sorted(affected):
            await self._refresh(build_pass, identity, affected, finalized, events)
        return events

    # ################
    # Implementation
    # ################

    def _importer_closure(self, identity: str) -> set[str]:
        graph = self.driver.context.graph
        seen: set[str] = {identity}
        queue = deque([identity])
        while queue:
            for importer in graph.importers(queue.popleft()):
                if importer.identity not in seen:
                    seen.add(importer.identity)
                    queue.append(importer.identity)
        seen.discard(identity)
        return seen

    async def _refresh(
        self,
        build_pass: BuildPass,
        identity: str,
        affected: set[str],
        finalized: dict[str, Module],
        events: list[ChangeEvent],
    ) -> Module | None:
        done = finalized.get(identity)
        if done is not None:
            return done
        graph = self.driver.context.graph
        current = graph.get(identity)
        if current is None:
            return None

        module = current.model_copy(deep=True)
        changed = False
        for dep in module.dependencies:
            if dep.external:
                continue
            target_id = self.driver.context.resolver.identity(dep.path)
            if graph.reaches(target_id, identity):
                changed = mark_cyclic(module, dep) or changed
                continue
            if target_id in affected:
                target = await self._refresh(build_pass, target_id, affected, finalized, events)
            else:
                target = finalized.get(target_id) or graph.get(target_id)
            if target is not None and update_dependency(module, dep, target.fingerprint):
                logger.debug("Propagated %s into %s", target_id, identity)
                changed = True

        if changed:
            await self.driver.commit(build_pass, module)
            if module.fingerprint != current.fingerprint:
                events.append(ChangeEvent(module_id=identity, kind=ChangeKind.MODIFY, fingerprint=module.fingerprint))
        finalized[identity] = module
        return module

    def _side_effects(self, before: dict[str, str], reported: set[str]) -> list[ChangeEvent]:
        """Report modules the pass added or rewrote besides the ones already reported."""
        events: list[ChangeEvent] = []
        for module in sorted(self.driver.context.graph, key=lambda m: m.identity):
            if module.identity in reported:
                continue
            if module.identity not in before:
                events.append(ChangeEvent(module_id=module.identity, kind=ChangeKind.ADD, fingerprint=module.fingerprint))
            elif module.fingerprint != before[module.identity]:
                events.append(
                    ChangeEvent(module_id=module.identity, kind=ChangeKind.MODIFY, fingerprint=module.fingerprint)
                )
        return events

    def _emit(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Change listener failed for %s", event.module_id)
