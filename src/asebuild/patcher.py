"""Raises cmake_minimum_required() in vendored third-party CMake files.

Recent CMake releases refuse projects that declare very old minimum versions,
so the vendored libraries are rewritten in place (a ``.bak`` copy of each file
is kept next to it).
"""

import re
import shutil
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

from asebuild import store as config
from asebuild.common import (
    StringValidationResult,
    error,
    info,
    run_capture,
    warning,
)
from asebuild.host import Host, is_macos
from asebuild.store import ConfigStore
from asebuild.submodules import SUBMODULE_UPDATE_CMD, Updater, update_submodules


DEFAULT_MIN_CMAKE = "3.10"
MIN_CMAKE_FLOOR = (3, 10)
BACKUP_SUFFIX = ".bak"

VERSION_PATTERN = re.compile(r"^[0-9]+\.[0-9]+(\.[0-9]+)?$")
CMAKE_VERSION_OUTPUT = re.compile(r"^cmake version (?P<version>\S+)")

type Rule = Tuple[re.Pattern[str], str]
type VersionDetector = Callable[[], StringValidationResult]

MINIMUM_REQUIRED_RULE: Rule = (
    re.compile(r"cmake_minimum_required.*VERSION"),
    "cmake_minimum_required(VERSION {version})",
)
POLICY_RULE: Rule = (
    re.compile(r"cmake_policy.*VERSION"),
    "cmake_policy(VERSION {version})",
)
UPPERCASE_MINIMUM_REQUIRED_RULE: Rule = (
    re.compile(r"CMAKE_MINIMUM_REQUIRED.*VERSION"),
    "CMAKE_MINIMUM_REQUIRED(VERSION {version} FATAL_ERROR)",
)

DEFAULT_RULES: Tuple[Rule, ...] = (MINIMUM_REQUIRED_RULE, POLICY_RULE)

PATCH_TARGETS: Tuple[Tuple[str, Tuple[Rule, ...]], ...] = (
    ("third_party/libpng/CMakeLists.txt", DEFAULT_RULES),
    ("third_party/TinyEXIF/CMakeLists.txt", DEFAULT_RULES),
    ("third_party/giflib/CMakeLists.txt", DEFAULT_RULES),
    ("third_party/cmark/CMakeLists.txt", DEFAULT_RULES),
    (
        "third_party/libarchive/CMakeLists.txt",
        (UPPERCASE_MINIMUM_REQUIRED_RULE,) + DEFAULT_RULES,
    ),
)


def validate_version(value: str) -> StringValidationResult:
    """Accept MAJOR.MINOR or MAJOR.MINOR.PATCH."""
    if VERSION_PATTERN.match(value):
        return (0, value)
    error(f"invalid CMake version format: {value}")
    error("version should be in format like '3.10' or '3.12.4'")
    return (1, None)


def _major_minor(version: str) -> Tuple[int, int]:
    major, minor = version.split(".")[:2]
    return (int(major), int(minor))


def detect_cmake_version() -> StringValidationResult:
    """Read the version of the cmake found in PATH."""
    code, output = run_capture(["cmake", "--version"])
    if code != 0:
        return (1, None)
    first_line = output.splitlines()[0] if output else ""
    match = CMAKE_VERSION_OUTPUT.match(first_line)
    if not match:
        return (1, None)
    version = match.group("version").split("-", 1)[0]
    if not VERSION_PATTERN.match(version):
        return (1, None)
    return (0, version)


def resolve_min_version(
    requested: Optional[str], detector: Optional[VersionDetector] = None
) -> StringValidationResult:
    """Pick the version written into the vendored files.

    An explicit value must be well formed; otherwise the installed cmake's
    major.minor is used when it is at least 3.10, and 3.10 in every other case.
    """
    if requested is not None:
        result, version = validate_version(requested)
        if result:
            return (1, None)
        info(f"using specified CMake version: {version}")
        return (0, version)

    detect = detector if detector is not None else detect_cmake_version
    result, detected = detect()
    if result or detected is None:
        return (0, DEFAULT_MIN_CMAKE)
    major, minor = _major_minor(detected)
    if (major, minor) < MIN_CMAKE_FLOOR:
        warning(
            f"detected CMake version {detected} is too low, "
            f"using minimum recommended version {DEFAULT_MIN_CMAKE}"
        )
        return (0, DEFAULT_MIN_CMAKE)
    version = f"{major}.{minor}"
    info(f"using detected CMake version: {version} (from system CMake {detected})")
    return (0, version)


def _split_terminator(line: str) -> Tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def rewrite_line(line: str, version: str, rules: Sequence[Rule] = DEFAULT_RULES) -> str:
    """Replace a version declaration line; any other line is returned as is."""
    body, terminator = _split_terminator(line)
    for pattern, template in rules:
        if pattern.search(body):
            indent = body[: len(body) - len(body.lstrip())]
            return f"{indent}{template.format(version=version)}{terminator}"
    return line


def rewrite_text(text: str, version: str, rules: Sequence[Rule] = DEFAULT_RULES) -> str:
    return "\n".join(rewrite_line(line, version, rules) for line in text.split("\n"))


def patch_file(path: Path, version: str, rules: Sequence[Rule] = DEFAULT_RULES) -> int:
    """Back up ``path`` to ``path.bak`` and rewrite it from the backup."""
    if not path.is_file():
        warning(f"{path} not found, skipping")
        return 0
    info(f"updating {path}")
    backup = path.with_name(path.name + BACKUP_SUFFIX)
    try:
        shutil.copyfile(path, backup)
        with backup.open("r", encoding="utf-8", errors="surrogateescape", newline="") as handle:
            original = handle.read()
        with path.open("w", encoding="utf-8", errors="surrogateescape", newline="") as handle:
            handle.write(rewrite_text(original, version, rules))
    except OSError as exc:
        error(f"failed to update {path}: {exc}")
        return 1
    return 0


def apply_patches(root: Path, version: str) -> int:
    info(f"updating CMake minimum versions to {version} in third-party libraries")
    for relative, rules in PATCH_TARGETS:
        result = patch_file(root / relative, version, rules)
        if result != 0:
            return result
    return 0


def _third_party_dirs(root: Path) -> list[Path]:
    return [root / Path(relative).parent for relative, _ in PATCH_TARGETS]


def fix_cmake(
    root: Path,
    store: ConfigStore,
    host: Host,
    requested: Optional[str] = None,
    detector: Optional[VersionDetector] = None,
    updater: Optional[Updater] = None,
) -> int:
    """Patch-only mode: always runs, regardless of the marker."""
    result, version = resolve_min_version(requested, detector)
    if result or version is None:
        return 1

    info("checking for submodules")
    if any(not path.is_dir() for path in _third_party_dirs(root)):
        info("some submodules are missing, updating submodules")
        update = updater if updater is not None else update_submodules
        if update(root) != 0:
            error("failed to update submodules. Please run the following command manually:")
            error(f"  {' '.join(SUBMODULE_UPDATE_CMD)}")
            return 1
    else:
        info("all submodules appear to be present")

    result = apply_patches(root, version)
    if result != 0:
        return result
    info(f"CMake versions have been updated to {version}")
    if is_macos(host):
        return store.mark(config.CMAKE_FIXED)
    return 0


def auto_fix_cmake(
    root: Path,
    store: ConfigStore,
    host: Host,
    detector: Optional[VersionDetector] = None,
) -> int:
    """Patch once per checkout on macOS, guarded by the cmake_fixed marker."""
    if not is_macos(host) or store.has(config.CMAKE_FIXED):
        return 0
    info("macOS detected: fixing CMake minimum versions in third-party libraries")
    _, version = resolve_min_version(None, detector)
    version = version or DEFAULT_MIN_CMAKE
    result = apply_patches(root, version)
    if result != 0:
        return result
    result = store.mark(config.CMAKE_FIXED)
    if result != 0:
        return result
    info(f"done updating CMake versions to {version}")
    return 0
