# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Application project: module discovery, builds, manifest and URL lookup.

A project directory holds an optional ``modforge.yaml`` and
``import_map.json`` next to the source tree. Within the source root, the
application shell is ``app.*``, routable pages live under ``pages/`` and API
handlers under ``api/``. A synthetic ``./main.js`` entry carries the build
manifest to the client.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path

from modforge.compiler.cache import CACHE_DIR_NAME
from modforge.compiler.driver import BuildContext, CompileRequest, CompilerDriver, module_relative
from modforge.compiler.fetcher import Opener, urllib_open
from modforge.compiler.resolver import REMOTE_PREFIX, SCRIPT_EXTENSIONS, strip_script_extension
from modforge.compiler.sources import list_source_modules
from modforge.compiler.transpile import Compiler
from modforge.model.module import AppModule, BuildManifest, ChangeEvent, ChangeKind, Module, PageModule
from modforge.watch.invalidator import Invalidator
from modforge.watch.watcher import FileWatcher
from modforge.workspace.config import (
    CONFIG_FILE_NAME,
    ProjectConfig,
    ProjectConfigError,
    load_project_config,
)
from modforge.workspace.import_map import IMPORT_MAP_NAME, ImportMap, ImportMapError, load_import_map

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

MAIN_MODULE = "./main.js"
APP_MODULE = "./app.js"
DIST_PREFIX = "/_dist"

_EXCLUDES = ("*.d.ts", ".cache", "node_modules")
_VERSIONED_RE = re.compile(r"\.(?:[0-9a-f]{9}|x{9})\.js$")


def page_route(source_file: str) -> str:
    """Return the route a page module is served under.

    ``./pages/index.tsx`` is ``/``; ``./pages/blog/My Post.ts`` is
    ``/blog/My-Post``.
    """
    rel = strip_script_extension(module_relative(source_file).removeprefix("pages/"))
    route = "/" + re.sub(r"\s+", "-", rel)
    route = re.sub(r"/index$", "", route, flags=re.IGNORECASE)
    return route or "/"


class Project:
    """A modforge application rooted at a directory.

    Args:
        root_dir: Project directory.
        mode: ``"development"`` or ``"production"``.
        config: Overrides ``modforge.yaml``.
        import_map: Overrides ``import_map.json``.
        compiler: Compile function; defaults to the built-in dispatcher.
        opener: Blocking HTTP GET used for remote modules.
    """

    def __init__(
        self,
        root_dir: Path,
        *,
        mode: str = "development",
        config: ProjectConfig | None = None,
        import_map: ImportMap | None = None,
        compiler: Compiler | None = None,
        opener: Opener = urllib_open,
    ) -> None:
        self.root_dir = root_dir.resolve()
        self.mode = mode
        self.config = config if config is not None else self._load_config()
        self.import_map = import_map if import_map is not None else self._load_import_map()
        self.context = BuildContext.create(
            self.src_dir,
            cache_dir=self.root_dir / CACHE_DIR_NAME,
            import_map=self.import_map,
            cache_remote=self.config.cache_remote,
            compiler=compiler,
            opener=opener,
            mode=mode,
            max_source_size=self.config.max_source_size,
        )
        self.driver = CompilerDriver(self.context)
        self.invalidator = Invalidator(self.driver)
        self.page_modules: dict[str, str] = {}

    @property
    def src_dir(self) -> Path:
        relative = self.config.src_directory.strip("/")
        return self.root_dir / relative if relative else self.root_dir

    @property
    def is_dev(self) -> bool:
        return self.mode == "development"

    @property
    def api_paths(self) -> list[str]:
        """Served paths of the compiled API modules (``/api/hello``)."""
        identities = self.context.graph.identities()
        return [identity[1:].removesuffix(".js") for identity in identities if identity.startswith("./api/")]

    @property
    def manifest(self) -> BuildManifest:
        graph = self.context.graph
        manifest = BuildManifest(base_url=self.config.base_url, default_locale=self.config.default_locale)
        app = graph.get(APP_MODULE)
        if app is not None:
            manifest.app_module = AppModule(hash=app.fingerprint)
        for route, identity in sorted(self.page_modules.items()):
            module = graph.get(identity)
            if module is not None:
                manifest.page_modules[route] = PageModule(module_id=identity, hash=module.fingerprint)
        return manifest

    def discover(self) -> list[str]:
        """Return the app, API and page source files, in build order."""
        src = self.src_dir
        apps = [
            f
            for f in list_source_modules(src, SCRIPT_EXTENSIONS, ("*/*",) + _EXCLUDES)
            if strip_script_extension(f) == "./app"
        ]
        apis = [f"./api/{f[2:]}" for f in list_source_modules(src / "api", SCRIPT_EXTENSIONS, _EXCLUDES)]
        pages = [f"./pages/{f[2:]}" for f in list_source_modules(src / "pages", SCRIPT_EXTENSIONS, _EXCLUDES)]
        return apps + apis + pages

    def main_module_source(self) -> str:
        """Return the source of the synthetic entry module."""
        manifest_json = self.manifest.model_dump_json(by_alias=True)
        bootstrap = self.config.bootstrap_module
        if bootstrap is None:
            return f"export default {manifest_json};\n"
        return f"import {{ bootstrap }} from {json.dumps(bootstrap)};\nbootstrap({manifest_json});\n"

    async def build(self) -> list[Module]:
        """Compile every discovered module and the entry module.

        Raises:
            CompilerError: If any module fails to compile.
        """
        sources = self.discover()
        modules = await self.driver.build([CompileRequest(source_file) for source_file in sources])
        self.page_modules = {
            page_route(source_file): module.identity
            for source_file, module in zip(sources, modules)
            if source_file.startswith("./pages/")
        }
        main = await self.driver.compile(MAIN_MODULE, source_code=self.main_module_source())
        return modules + [main]

    def get_module(self, identity: str) -> Module | None:
        return self.context.graph.get(identity)

    def get_module_by_path(self, pathname: str) -> Module | None:
        """Map a served URL path (artifact or ``.map``) back to its module."""
        path = pathname
        base_url = self.config.base_url
        if base_url != "/" and path.startswith(base_url + "/"):
            path = path[len(base_url) :]
        if path.startswith(DIST_PREFIX + "/"):
            path = path[len(DIST_PREFIX) :]
        path = path.removesuffix(".map")
        if path.startswith(REMOTE_PREFIX):
            return self.get_module(path)
        identity = "." + path
        if _VERSIONED_RE.search(identity):
            identity = identity[: -len(".xxxxxxxxx.js")] + ".js"
        return self.get_module(identity)

    def create_watcher(self) -> FileWatcher:
        return FileWatcher(self.src_dir, self.invalidator, on_change=self._after_change)

    async def develop(self, stop_event: asyncio.Event | None = None) -> None:
        """Build once, then rebuild on source changes until *stop_event* is set."""
        await self.build()
        await self.create_watcher().run(stop_event)

    # ################
    # Implementation
    # ################

    def _load_config(self) -> ProjectConfig:
        path = self.root_dir / CONFIG_FILE_NAME
        if not path.exists():
            return ProjectConfig()
        try:
            return load_project_config(path)
        except ProjectConfigError as exc:
            logger.warning("%s; using default configuration", exc)
            return ProjectConfig()

    def _load_import_map(self) -> ImportMap:
        path = self.root_dir / IMPORT_MAP_NAME
        if not path.exists():
            return ImportMap()
        try:
            return load_import_map(path)
        except ImportMapError as exc:
            logger.warning("%s; using an empty import map", exc)
            return ImportMap()

    async def _after_change(self, events: list[ChangeEvent]) -> None:
        """Track added and removed pages, then refresh the entry module.

        The page table is replaced rather than mutated, since the web UI
        iterates it from another thread.
        """
        touched = False
        pages = dict(self.page_modules)
        for event in events:
            if event.module_id == MAIN_MODULE:
                continue
            if event.module_id.startswith("./pages/"):
                route = page_route(event.module_id)
                if event.kind == ChangeKind.REMOVE:
                    pages.pop(route, None)
                else:
                    pages[route] = event.module_id
                touched = True
            elif event.module_id == APP_MODULE:
                touched = True
        self.page_modules = pages
        if touched:
            await self.driver.compile(MAIN_MODULE, source_code=self.main_module_source())
