"""macOS app bundle / DMG packaging and launcher scripts."""

import os
import plistlib
import shutil
from pathlib import Path
from typing import Callable, Optional

from asebuild import store as config
from asebuild.builds import RELEASE_BUILD_NAME, USER_BUILD_NAME
from asebuild.common import PathResult, error, info, run_cmd, warning
from asebuild.host import Host, is_macos
from asebuild.store import ConfigStore


DEV_VERSION = "1.x-dev"
APP_NAME = "Aseprite"
EXECUTABLE_NAME = "aseprite"
BUNDLE_IDENTIFIER = "org.aseprite.Aseprite"
ICON_SIZES = (16, 32, 64, 128, 256)
DEFAULT_BUILD_NAMES = (USER_BUILD_NAME, RELEASE_BUILD_NAME)

type Packager = Callable[[Path, str], int]

WINDOWS_LAUNCHER = """@echo off
rem Run Aseprite from the build directory
echo Running Aseprite...
cd "%~dp0"
bin\\aseprite.exe %*
"""

LINUX_LAUNCHER = """#!/bin/bash
# Run Aseprite from the build directory
echo "Running Aseprite..."
cd "$(dirname "$0")"
./bin/aseprite "$@"
"""

MACOS_LAUNCHER = """#!/bin/bash
# Run Aseprite from the build directory on macOS
echo "Running Aseprite..."
cd "$(dirname "$0")"
./bin/aseprite "$@"
"""

LAUNCHERS = (
    ("run_aseprite.bat", WINDOWS_LAUNCHER, "Windows"),
    ("run_aseprite.sh", LINUX_LAUNCHER, "Linux"),
    ("run_aseprite_mac.sh", MACOS_LAUNCHER, "macOS"),
)


def dmg_path(build_dir: Path, version: str = DEV_VERSION) -> Path:
    return build_dir / f"{APP_NAME}-{version}.dmg"


def executable_path(build_dir: Path, suffix: str = "") -> Path:
    return build_dir / "bin" / f"{EXECUTABLE_NAME}{suffix}"


def info_plist(version: str) -> dict[str, object]:
    return {
        "CFBundleExecutable": EXECUTABLE_NAME,
        "CFBundleIconFile": f"{APP_NAME}.icns",
        "CFBundleIdentifier": BUNDLE_IDENTIFIER,
        "CFBundleInfoDictionaryVersion": "6.0",
        "CFBundleName": APP_NAME,
        "CFBundlePackageType": "APPL",
        "CFBundleVersion": version,
        "CFBundleShortVersionString": version,
        "NSHighResolutionCapable": True,
    }


def _write_iconset(data_dir: Path, iconset: Path) -> None:
    iconset.mkdir(parents=True, exist_ok=True)
    for size in ICON_SIZES:
        icon = data_dir / "icons" / f"ase{size}.png"
        if not icon.is_file():
            warning(f"icon {icon} not found, skipping")
            continue
        shutil.copyfile(icon, iconset / f"icon_{size}x{size}.png")


def create_dmg(build_dir: Path, version: str = DEV_VERSION) -> int:
    """Bundle ``bin/aseprite`` and ``bin/data`` into Aseprite-<version>.dmg."""
    version = version or DEV_VERSION
    info("creating DMG installer for macOS")
    app_dir = build_dir / f"{APP_NAME}.app"
    contents = app_dir / "Contents"
    resources = contents / "Resources"
    iconset = resources / f"{APP_NAME}.iconset"
    staging = build_dir / "dmg_temp"
    data_dir = build_dir / "bin" / "data"

    info(f"setting up app bundle at {app_dir}")
    try:
        (contents / "MacOS").mkdir(parents=True, exist_ok=True)
        resources.mkdir(parents=True, exist_ok=True)
        with (contents / "Info.plist").open("wb") as handle:
            plistlib.dump(info_plist(version), handle)
        (contents / "PkgInfo").write_text("APPL????\n", encoding="ascii")

        info("copying executable and data files")
        bundled_exe = contents / "MacOS" / EXECUTABLE_NAME
        shutil.copyfile(executable_path(build_dir), bundled_exe)
        bundled_exe.chmod(0o755)
        shutil.copytree(data_dir, resources / "data", dirs_exist_ok=True)

        info("creating app icon")
        _write_iconset(data_dir, iconset)
    except OSError as exc:
        error(f"failed to create app bundle: {exc}")
        return 1

    result = run_cmd(
        ["iconutil", "-c", "icns", "-o", str(resources / f"{APP_NAME}.icns"), str(iconset)]
    )
    if result != 0:
        warning("iconutil failed, icon may not be created")

    info("creating DMG file")
    try:
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        shutil.copytree(app_dir, staging / app_dir.name, symlinks=True)
        os.symlink("/Applications", staging / "Applications")
    except OSError as exc:
        error(f"failed to prepare DMG contents: {exc}")
        return 1

    output = dmg_path(build_dir, version)
    result = run_cmd(
        [
            "hdiutil",
            "create",
            "-volname",
            f"{APP_NAME} {version}",
            "-srcfolder",
            str(staging),
            "-ov",
            "-format",
            "UDZO",
            str(output),
        ]
    )
    shutil.rmtree(staging, ignore_errors=True)
    shutil.rmtree(iconset, ignore_errors=True)
    if result != 0:
        error("failed to create the DMG, try again")
        return 1
    info(f"DMG created at {output}")
    return 0


def should_package(host: Host, build_dir: Path) -> bool:
    if not is_macos(host):
        return False
    return executable_path(build_dir).is_file() and not dmg_path(build_dir).exists()


def package_after_build(
    host: Host, build_dir: Path, packager: Optional[Packager] = None
) -> int:
    """Create the dev DMG once, right after the first successful macOS build."""
    if not should_package(host, build_dir):
        return 0
    info("macOS build detected: creating DMG installer")
    package = packager if packager is not None else create_dmg
    result = package(build_dir, DEV_VERSION)
    if result != 0:
        return result
    print("")
    print("You can distribute Aseprite using the DMG file at:")
    print(f"  {dmg_path(build_dir)}")
    print("")
    return 0


def find_default_build_dir(store: ConfigStore) -> PathResult:
    """Locate the build directory used by --create-dmg and --create-scripts."""
    builds_dir = store.get(config.BUILDS_DIR)
    if not builds_dir:
        error("you need to build Aseprite first")
        return (1, None)
    for name in DEFAULT_BUILD_NAMES:
        candidate = Path(builds_dir) / name
        if candidate.is_dir():
            return (0, candidate)
    error("cannot find build directory. Make sure you've built Aseprite first")
    return (1, None)


def create_dmg_command(
    store: ConfigStore,
    host: Host,
    version: Optional[str] = None,
    packager: Optional[Packager] = None,
) -> int:
    if not is_macos(host):
        error("--create-dmg option is only available on macOS")
        return 1
    result, build_dir = find_default_build_dir(store)
    if result or build_dir is None:
        return 1
    package = packager if packager is not None else create_dmg
    return package(build_dir, version or DEV_VERSION)


def create_run_scripts(build_dir: Path) -> int:
    info("creating platform-specific run scripts")
    for name, contents, _ in LAUNCHERS:
        path = build_dir / name
        try:
            path.write_text(contents, encoding="utf-8", newline="\n")
            path.chmod(0o755)
        except OSError as exc:
            error(f"failed to write {path}: {exc}")
            return 1
    info(f"run scripts created in {build_dir}")
    for name, _, platform_name in LAUNCHERS:
        print(f" - {platform_name + ':':9s}{name}")
    return 0
