# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Entry point for the modforge command-line interface."""

import argparse
import asyncio
import logging
import sys
import threading
from pathlib import Path

from yachalk import chalk

from modforge.compiler.cache import CACHE_DIR_NAME, CompileCache
from modforge.compiler.errors import CompilerError
from modforge.project.project import Project
from modforge.workspace.config import CONFIG_FILE_NAME

# ###############
# Public Interface
# ###############


def main() -> None:
    """Run the modforge CLI."""
    parser = argparse.ArgumentParser(
        prog="modforge",
        description="modforge - content-addressed ES module compiler and dev server",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log compile and cache details",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # init subcommand
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize a new modforge project",
        description="Write a starter modforge.yaml into a project directory.",
    )
    init_parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="Directory to initialize the project in (default: current directory)",
    )

    # build subcommand
    build_parser = subparsers.add_parser(
        "build",
        help="Compile every module of the project",
        description="Compile the app, API and page modules and everything they import.",
    )
    build_parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="Directory containing the modforge project (default: current directory)",
    )
    build_parser.add_argument(
        "--production",
        action="store_true",
        help="Compile in production mode",
    )

    # manifest subcommand
    manifest_parser = subparsers.add_parser(
        "manifest",
        help="Print the build manifest",
        description="Build the project and print its build manifest as JSON.",
    )
    manifest_parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="Directory containing the modforge project (default: current directory)",
    )
    manifest_parser.add_argument(
        "--production",
        action="store_true",
        help="Compile in production mode",
    )

    # dev subcommand
    dev_parser = subparsers.add_parser(
        "dev",
        help="Build, serve and recompile on change",
        description="Build the project, serve compiled modules and watch the sources for changes.",
    )
    dev_parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="Directory containing the modforge project (default: current directory)",
    )
    dev_parser.add_argument(
        "--port",
        type=int,
        default=8050,
        help="Port to run the server on (default: 8050)",
    )
    dev_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind the server to (default: 127.0.0.1)",
    )

    # clean subcommand
    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove the compile cache",
        description="Delete the project's .cache directory.",
    )
    clean_parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="Directory containing the modforge project (default: current directory)",
    )

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    _configure_logging(args.verbose)
    sys.exit(_dispatch(args))


# ################
# Implementation
# ################

_STARTER_CONFIG = (
    "# modforge project configuration\n"
    "src-directory: /\n"
    "base-url: /\n"
    "default-locale: en\n"
    "cache-remote: true\n"
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch to the appropriate subcommand handler."""
    if args.command == "init":
        return _cmd_init(args)
    if args.command == "build":
        return _cmd_build(args)
    if args.command == "manifest":
        return _cmd_manifest(args)
    if args.command == "dev":
        return _cmd_dev(args)
    if args.command == "clean":
        return _cmd_clean(args)
    return 0


def _project_directory(args: argparse.Namespace) -> Path | None:
    directory = Path(args.directory).resolve()
    if not directory.is_dir():
        print(f"Error: directory '{directory}' does not exist.", file=sys.stderr)
        return None
    return directory


def _cmd_init(args: argparse.Namespace) -> int:
    """Handle the init subcommand."""
    directory = _project_directory(args)
    if directory is None:
        return 1

    config_file = directory / CONFIG_FILE_NAME
    if config_file.exists():
        print(f"Error: project already exists at '{config_file}'.", file=sys.stderr)
        return 1

    config_file.write_text(_STARTER_CONFIG, encoding="utf-8")
    (directory / "pages").mkdir(exist_ok=True)
    print(f"Initialized modforge project at '{config_file}'.")
    return 0


def _cmd_build(args: argparse.Namespace) -> int:
    """Handle the build subcommand."""
    directory = _project_directory(args)
    if directory is None:
        return 1

    project = Project(directory, mode="production" if args.production else "development")
    try:
        modules = asyncio.run(project.build())
    except CompilerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Compiled {len(modules)} module(s), {len(project.context.graph)} in graph.")
    _print_routes(project)
    return 0


def _cmd_manifest(args: argparse.Namespace) -> int:
    """Handle the manifest subcommand."""
    directory = _project_directory(args)
    if directory is None:
        return 1

    project = Project(directory, mode="production" if args.production else "development")
    try:
        asyncio.run(project.build())
    except CompilerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(project.manifest.model_dump_json(by_alias=True, indent=2))
    return 0


def _cmd_dev(args: argparse.Namespace) -> int:
    """Handle the dev subcommand."""
    directory = _project_directory(args)
    if directory is None:
        return 1

    project = Project(directory, mode="development")
    try:
        asyncio.run(_develop(project, args.host, args.port))
    except CompilerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Stopped.")
    return 0


def _cmd_clean(args: argparse.Namespace) -> int:
    """Handle the clean subcommand."""
    directory = _project_directory(args)
    if directory is None:
        return 1

    cache_dir = directory / CACHE_DIR_NAME
    if not cache_dir.exists():
        print("Nothing to clean.")
        return 0
    CompileCache(cache_dir).clear()
    print(f"Removed '{cache_dir}'.")
    return 0


async def _develop(project: Project, host: str, port: int) -> None:
    """Build once, start the HTTP server thread, then watch for changes."""
    from modforge.webui.app import create_app

    await project.build()
    _print_routes(project)

    app = create_app(project)
    server = threading.Thread(
        target=app.run,
        kwargs={"host": host, "port": port, "debug": False},
        name="modforge-http",
        daemon=True,
    )
    server.start()
    print(f"Serving modules at http://{host}:{port}/ (viewer at /_viewer/)")
    await project.create_watcher().run()


def _print_routes(project: Project) -> None:
    print(chalk.bold("Pages"))
    for route in sorted(project.page_modules):
        suffix = chalk.dim(" (index)") if route == "/" else ""
        print(f"  {chalk.green('○')} {route}{suffix}")
    for path in project.api_paths:
        print(f"  {chalk.cyan('λ')} {path}")
