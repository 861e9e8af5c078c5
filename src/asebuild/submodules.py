"""Checks that every git submodule of the checkout is populated."""

import re
from pathlib import Path
from typing import Callable, Optional

from asebuild.common import error, hint, info, run_cmd
from asebuild.prompts import Prompter


GITMODULES_FILE = ".gitmodules"
NESTED_PROJECT = "laf"
BUILD_METADATA_FILES = ("CMakeLists.txt", "Makefile", "makefile", "Makefile.am")
SUBMODULE_UPDATE_CMD = ("git", "submodule", "update", "--init", "--recursive")

SECTION_PATTERN = re.compile(r'^\[submodule\s+"(?P<name>[^"]*)"\]')
PATH_PATTERN = re.compile(r"^\s*path\s*=\s*(?P<path>.+?)\s*$")

type Updater = Callable[[Path], int]


def parse_gitmodules(text: str, prefix: str = "") -> list[str]:
    """Return module paths declared in a .gitmodules file.

    The ``path`` entry wins over the section name when present.
    """
    modules: list[str] = []
    for line in text.splitlines():
        section = SECTION_PATTERN.match(line)
        if section:
            modules.append(f"{prefix}{section.group('name')}")
            continue
        path = PATH_PATTERN.match(line)
        if path and modules:
            modules[-1] = f"{prefix}{path.group('path')}"
    return modules


def _read_gitmodules(path: Path, prefix: str = "") -> list[str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return []
    return parse_gitmodules(contents, prefix)


def declared_modules(root: Path) -> list[str]:
    modules = _read_gitmodules(root / GITMODULES_FILE)
    modules.extend(
        _read_gitmodules(
            root / NESTED_PROJECT / GITMODULES_FILE, prefix=f"{NESTED_PROJECT}/"
        )
    )
    return modules


def module_is_present(root: Path, module: str) -> bool:
    module_dir = root / module
    return any((module_dir / name).is_file() for name in BUILD_METADATA_FILES)


def find_missing_module(root: Path) -> Optional[str]:
    for module in declared_modules(root):
        if not module_is_present(root, module):
            return module
    return None


def update_submodules(root: Path) -> int:
    """Fetch and check out every submodule recursively."""
    info("running:")
    hint(" ".join(SUBMODULE_UPDATE_CMD))
    result = run_cmd(list(SUBMODULE_UPDATE_CMD), cwd=root)
    if result != 0:
        error("failed to update submodules, try again")
        return 1
    info("done")
    return 0


def verify_submodules(
    root: Path, prompter: Prompter, updater: Optional[Updater] = None
) -> int:
    """Make sure all submodules are checked out before configuring.

    Unattended runs fetch once and trust the result; interactive runs stop and
    tell the operator which command to run.
    """
    missing = find_missing_module(root)
    if missing is None:
        return 0
    info(f"module {missing} doesn't exist")
    if not prompter.unattended:
        error("submodules are not checked out. Run:")
        hint(" ".join(SUBMODULE_UPDATE_CMD))
        return 1
    update = updater if updater is not None else update_submodules
    return update(root)
