"""Host platform detection and environment preconditions."""

import os
import platform
import shutil
from pathlib import Path
from typing import Optional, TypedDict

from asebuild.common import error, hint, run_capture


WINDOWS = "windows"
LINUX = "linux"
MACOS = "macos"

X64 = "x64"
ARM64 = "arm64"

WINDOWS_SYSTEM_PREFIXES = ("Windows", "MINGW32", "MINGW64", "MSYS_NT", "CYGWIN_NT")
CHECKOUT_MARKERS = ("EULA.txt", ".gitmodules")
MSVC_COMPILER = "cl.exe"

CMAKE_DOWNLOAD_URL = "https://cmake.org/download/"
NINJA_DOWNLOAD_URL = "https://github.com/ninja-build/ninja/releases"


class Host(TypedDict):
    os: str
    cpu: str


def detect_host(system: Optional[str] = None, machine: Optional[str] = None) -> Host:
    """Classify the host OS family and CPU tag.

    Only macOS reports arm64; every other platform builds x64.
    """
    system = system if system is not None else platform.system()
    machine = machine if machine is not None else platform.machine()
    if system.startswith(WINDOWS_SYSTEM_PREFIXES):
        return {"os": WINDOWS, "cpu": X64}
    if system == "Darwin":
        cpu = ARM64 if machine.lower() in {"arm64", "aarch64"} else X64
        return {"os": MACOS, "cpu": cpu}
    return {"os": LINUX, "cpu": X64}


def is_windows(host: Host) -> bool:
    return host["os"] == WINDOWS


def is_macos(host: Host) -> bool:
    return host["os"] == MACOS


def is_linux(host: Host) -> bool:
    return host["os"] == LINUX


def exe_suffix(host: Host) -> str:
    return ".exe" if is_windows(host) else ""


def check_checkout(root: Path) -> int:
    for name in CHECKOUT_MARKERS:
        if not (root / name).is_file():
            error("run the build script from the Aseprite directory")
            return 1
    return 0


def check_compiler(host: Host) -> int:
    """On Windows the MSVC compiler must be reachable from PATH."""
    if not is_windows(host):
        return 0
    if shutil.which(MSVC_COMPILER) is None:
        error(f"MSVC compiler ({MSVC_COMPILER}) not found in PATH")
        hint(f"PATH={os.environ.get('PATH', '')}")
        return 1
    return 0


def check_build_tools() -> int:
    code, _ = run_capture(["cmake", "--version"])
    if code != 0:
        error("cmake utility is not available. You can get cmake from:")
        hint(CMAKE_DOWNLOAD_URL)
        return 1
    code, _ = run_capture(["ninja", "--version"])
    if code != 0:
        error("ninja utility is not available. You can get ninja from:")
        hint(NINJA_DOWNLOAD_URL)
        return 1
    return 0
