"""Selection of the builds root and of the active build directory."""

import difflib
import os
import re
from pathlib import Path
from typing import Literal, Mapping, Optional, TypedDict

from asebuild import store as config
from asebuild.common import (
    PathResult,
    StringValidationResult,
    ValidationResult,
    append_log,
    error,
    hint,
    info,
)
from asebuild.host import Host, is_windows
from asebuild.prompts import Prompter
from asebuild.store import ConfigStore


PROJECT_NAME = "aseprite"
CMAKE_CACHE_FILE_NAME = "CMakeCache.txt"
PROJECT_MARKER = f"CMAKE_PROJECT_NAME:STATIC={PROJECT_NAME}"
BUILD_TYPE_KEY = "CMAKE_BUILD_TYPE"
SOURCE_DIR_KEY = f"{PROJECT_NAME}_SOURCE_DIR"

RELEASE = "RelWithDebInfo"
DEBUG = "Debug"

USER_BUILD_NAME = "build"
RELEASE_BUILD_NAME = "aseprite-release"
DEBUG_BUILD_NAME = "aseprite-debug"
DEFAULT_DEVELOPER_BUILDS_DIR = Path("~/builds")
BUILDS_DIR_ENV = "ASEPRITE_BUILD"

VC_TOOLS_ENV = "VCToolsInstallDir"
VC_TOOLS_VERSION = re.compile(r"[\\/](?P<version>[0-9.]+)[\\/]?$")
VC_TOOLS_PATH = re.compile(r"^(?P<head>.*/VC/Tools/MSVC/)[0-9.]*(?P<tail>.*)$")
SDK_BACKUP_SUFFIX = "-old"

type Action = Literal["build", "update_sdk"]


class BuildSelection(TypedDict):
    action: Action
    build_dir: Optional[Path]
    build_type: str
    is_new: bool


def read_cache_value(cache_path: Path, key: str) -> Optional[str]:
    """Return the value of ``KEY:TYPE=value`` from a CMake cache."""
    try:
        with cache_path.open("r", encoding="utf-8", errors="replace") as handle:
            for line in handle:
                name, sep, value = line.partition("=")
                if sep and name.split(":", 1)[0] == key:
                    return value.strip()
    except OSError:
        return None
    return None


def is_project_cache(cache_path: Path) -> bool:
    try:
        with cache_path.open("r", encoding="utf-8", errors="replace") as handle:
            return any(line.rstrip() == PROJECT_MARKER for line in handle)
    except OSError:
        return False


def list_builds(builds_dir: Path) -> list[Path]:
    """Build directories directly under ``builds_dir`` that configure Aseprite."""
    caches = sorted(builds_dir.glob(f"*/{CMAKE_CACHE_FILE_NAME}"), key=str)
    return [cache.parent for cache in caches if is_project_cache(cache)]


def resolve_user_kind(store: ConfigStore, prompter: Prompter) -> StringValidationResult:
    current = store.get(config.USER_KIND)
    if current:
        return (0, current)
    if prompter.unattended:
        kind = config.USER
    else:
        print("")
        print("Select what kind of user you are (press U or D keys):")
        print("")
        print("  [U]ser: give a try to Aseprite")
        print("  [D]eveloper: develop/modify Aseprite")
        print("")
        answer = prompter.ask("[U/D]? ").lower()
        if answer == "d":
            kind = config.DEVELOPER
        elif answer == "u":
            kind = config.USER
        else:
            error("use U or D keys to select kind of user/build process")
            return (1, None)
    stored = store.set(config.USER_KIND, kind)
    if stored is None:
        return (1, None)
    return (0, stored)


def _developer_builds_dir(
    prompter: Prompter, environ: Mapping[str, str]
) -> PathResult:
    override = environ.get(BUILDS_DIR_ENV)
    if override:
        builds_dir = Path(override).expanduser()
        if builds_dir.is_dir():
            info(f"using {BUILDS_DIR_ENV} environment variable for builds directory")
            return (0, builds_dir)
        try:
            builds_dir.mkdir()
        except OSError:
            error(
                f"{BUILDS_DIR_ENV} is defined but we weren't able to create the directory:"
            )
            hint(f"{BUILDS_DIR_ENV}={builds_dir}")
            error(
                f"to solve this issue delete the {BUILDS_DIR_ENV} variable "
                "or point it to a valid path"
            )
            return (1, None)
        return (0, builds_dir)

    default = DEFAULT_DEVELOPER_BUILDS_DIR.expanduser()
    print("")
    print("Select a folder where to leave all builds:")
    print("  builds_dir/")
    print("    release-x64/...")
    print("    debug-x64/...")
    print("")
    answer = prompter.ask(f"builds_dir [{default}]? ", str(default))
    return (0, Path(answer).expanduser())


def resolve_builds_dir(
    store: ConfigStore,
    user_kind: str,
    prompter: Prompter,
    environ: Optional[Mapping[str, str]] = None,
) -> PathResult:
    """Return the persisted builds root, choosing and storing it on first use."""
    current = store.get(config.BUILDS_DIR)
    if current:
        return (0, Path(current))
    if user_kind == config.DEVELOPER:
        result, builds_dir = _developer_builds_dir(
            prompter, environ if environ is not None else os.environ
        )
        if result or builds_dir is None:
            return (1, None)
    else:
        builds_dir = store.root
        info(f"we'll build Aseprite in {builds_dir / USER_BUILD_NAME} directory")
    stored = store.set(config.BUILDS_DIR, str(builds_dir))
    if stored is None:
        return (1, None)
    return (0, Path(stored))


def first_build_name(user_kind: str) -> str:
    return RELEASE_BUILD_NAME if user_kind == config.DEVELOPER else USER_BUILD_NAME


def _selection(
    build_dir: Optional[Path], build_type: str = RELEASE, is_new: bool = False
) -> BuildSelection:
    return {
        "action": "build",
        "build_dir": build_dir,
        "build_type": build_type,
        "is_new": is_new,
    }


def _existing_selection(build_dir: Path) -> BuildSelection:
    cache = build_dir / CMAKE_CACHE_FILE_NAME
    build_type = read_cache_value(cache, BUILD_TYPE_KEY) or RELEASE
    return _selection(build_dir, build_type)


def _new_build_selection(builds_dir: Path, prompter: Prompter) -> BuildSelection:
    answer = prompter.ask("Select build type [RELEASE/debug]? ").lower()
    if answer == "debug":
        build_type, default_name = DEBUG, DEBUG_BUILD_NAME
    else:
        build_type, default_name = RELEASE, RELEASE_BUILD_NAME
    name = prompter.ask(f"Select a name [{default_name}]? ", default_name)
    return _selection(builds_dir / name, build_type, is_new=True)


def print_builds(builds: list[Path]) -> None:
    if not builds:
        return
    print("-- AVAILABLE BUILDS --")
    for index, build_dir in enumerate(builds, start=1):
        print(f"{index}. {build_dir / CMAKE_CACHE_FILE_NAME}")


def choose_build(
    builds_dir: Path,
    builds: list[Path],
    user_kind: str,
    prompter: Prompter,
) -> ValidationResult[BuildSelection]:
    """Decide which build directory and build type this run uses."""
    if not builds:
        print("-- FIRST BUILD --")
        build_dir = builds_dir / first_build_name(user_kind)
        info(f"first build directory: {build_dir}")
        return (0, _selection(build_dir, is_new=True))

    if prompter.unattended:
        return (0, _existing_selection(builds[0]))

    print("N. New build (N key)")
    print("U. Update Visual Studio/Windows Kit/macOS SDK version (U key)")
    answer = prompter.ask("Select an option or number to build? ")
    if answer.lower() == "n":
        return (0, _new_build_selection(builds_dir, prompter))
    if answer.lower() == "u":
        return (
            0,
            {"action": "update_sdk", "build_dir": None, "build_type": RELEASE, "is_new": False},
        )
    if answer.isdigit() and 1 <= int(answer) <= len(builds):
        return (0, _existing_selection(builds[int(answer) - 1]))
    error("no build selected")
    return (1, None)


def activate_build(selection: BuildSelection, prompter: Prompter) -> int:
    """Create a new build directory up front in unattended runs."""
    build_dir = selection["build_dir"]
    if build_dir is None:
        error("no build selected")
        return 1
    if prompter.unattended and selection["is_new"] and not build_dir.is_dir():
        try:
            build_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            error(f"failed to create {build_dir}: {exc}")
            return 1
    return 0


def source_dir_for(build_dir: Path, root: Path) -> Path:
    cache = build_dir / CMAKE_CACHE_FILE_NAME
    if cache.is_file():
        recorded = read_cache_value(cache, SOURCE_DIR_KEY)
        if recorded:
            return Path(recorded)
    return root


def _sdk_files(build_dir: Path) -> list[Path]:
    files = [
        build_dir / CMAKE_CACHE_FILE_NAME,
        build_dir / "CMakeFiles" / "rules.ninja",
    ]
    files.extend(sorted((build_dir / "CMakeFiles").glob("*/*.cmake")))
    files.append(build_dir / "third_party" / "libpng" / "scripts" / "genout.cmake")
    return [path for path in files if path.is_file()]


def rewrite_vc_tools_version(text: str, version: str) -> str:
    lines = []
    for line in text.split("\n"):
        match = VC_TOOLS_PATH.match(line)
        if match:
            line = f"{match.group('head')}{version}{match.group('tail')}"
        lines.append(line)
    return "\n".join(lines)


def _update_sdk_file(path: Path, version: str, log_path: Optional[Path]) -> int:
    append_log(log_path, f"--- Updating {path} ---")
    old_path = path.with_name(path.name + SDK_BACKUP_SUFFIX)
    try:
        path.replace(old_path)
        original = old_path.read_text(encoding="utf-8", errors="surrogateescape")
        updated = rewrite_vc_tools_version(original, version)
        path.write_text(updated, encoding="utf-8", errors="surrogateescape")
    except OSError as exc:
        error(f"failed to update {path}: {exc}")
        return 1
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        updated.splitlines(keepends=True),
        fromfile=str(old_path),
        tofile=str(path),
        n=3,
    )
    append_log(log_path, "".join(diff))
    append_log(log_path, f"--- End {path} ---")
    return 0


def update_sdk(
    builds: list[Path],
    host: Host,
    log_path: Optional[Path],
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    """Point existing build directories at the currently installed MSVC tools."""
    info("update SDK dirs...")
    if is_windows(host):
        environ = environ if environ is not None else os.environ
        match = VC_TOOLS_VERSION.search(environ.get(VC_TOOLS_ENV, ""))
        if not match:
            error(f"{VC_TOOLS_ENV} is not defined; run from a developer command prompt")
            return 1
        version = match.group("version")
        info(f"new VC version: {version}")
        for build_dir in builds:
            info(f"updating {build_dir}")
            for path in _sdk_files(build_dir):
                result = _update_sdk_file(path, version, log_path)
                if result != 0:
                    return result
    info("done")
    return 0
