#!/usr/bin/env python3
# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Run the CI checks locally: style, types, tests, a smoke build and packaging."""

import argparse
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from yachalk import chalk

# ###############
# Public Interface
# ###############

REPO_ROOT = Path(__file__).resolve().parent.parent

_SMOKE_PAGE = "import { title } from '../lib/title.js';\nexport default title;\n"
_SMOKE_LIB = "export const title = 'modforge';\n"


@dataclass
class Step:
    """One named CI step; *commands* run in order and stop at the first failure."""

    name: str
    commands: list[list[str]]
    needs_project: bool = False


STEPS: list[Step] = [
    Step("format", [["uv", "run", "ruff", "format", "--check", "src/", "tests/", "tools/"]]),
    Step("lint", [["uv", "run", "ruff", "check", "src/", "tests/", "tools/"]]),
    Step("types", [["uv", "run", "ty", "check", "src/"]]),
    Step("tests", [["uv", "run", "pytest", "--cov=modforge", "--cov-report=term-missing"]]),
    Step(
        "smoke",
        [
            ["uv", "run", "modforge", "init", "{project}"],
            ["uv", "run", "modforge", "build", "{project}"],
            ["uv", "run", "modforge", "build", "{project}"],
            ["uv", "run", "modforge", "clean", "{project}"],
        ],
        needs_project=True,
    ),
    Step("package", [["uv", "build"]]),
]


def main() -> int:
    """Run the selected CI steps and print a summary."""
    parser = argparse.ArgumentParser(description="Run modforge CI checks locally.")
    parser.add_argument(
        "--only",
        action="append",
        choices=[step.name for step in STEPS],
        help="Run only the named step (repeatable)",
    )
    args = parser.parse_args()

    selected = [step for step in STEPS if not args.only or step.name in args.only]
    results = [(step.name, *_run_step(step)) for step in selected]

    print(f"\n{chalk.blue('=' * 60)}")
    for name, passed, elapsed in results:
        status = chalk.green("PASS") if passed else chalk.red("FAIL")
        print(f"  {status}  {name} ({elapsed:.1f}s)")
    print()
    return 0 if all(passed for _, passed, _ in results) else 1


# ################
# Implementation
# ################


def _run_step(step: Step) -> tuple[bool, float]:
    print(f"\n{chalk.blue('=' * 60)}\n{chalk.blue(step.name)}")
    start = time.monotonic()
    with tempfile.TemporaryDirectory(prefix="modforge-smoke-") as tmp:
        project = Path(tmp)
        if step.needs_project:
            _write_smoke_project(project)
        for command in step.commands:
            command = [part.replace("{project}", str(project)) for part in command]
            if subprocess.run(command, cwd=REPO_ROOT).returncode != 0:
                return False, time.monotonic() - start
    return True, time.monotonic() - start


def _write_smoke_project(project: Path) -> None:
    (project / "pages").mkdir()
    (project / "lib").mkdir()
    (project / "pages" / "index.js").write_text(_SMOKE_PAGE, encoding="utf-8")
    (project / "lib" / "title.js").write_text(_SMOKE_LIB, encoding="utf-8")


if __name__ == "__main__":
    sys.exit(main())
