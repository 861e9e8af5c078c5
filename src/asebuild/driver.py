"""CMake/Ninja configure and compile steps."""

from pathlib import Path
from typing import Optional, Protocol, Sequence

from asebuild.common import error, info, run_logged
from asebuild.host import Host, is_macos
from asebuild.prompts import Prompter


CMAKE_GENERATOR = "Ninja"
CONFIGURED_MARKER = "build.ninja"
BUILD_TARGET = "aseprite"
LAF_BACKEND = "skia"
OSX_DEPLOYMENT_TARGET = "11.0"


class BuildTool(Protocol):
    def run(self, cmd: Sequence[str]) -> int: ...


class LoggedBuildTool:
    """Runs cmake, teeing its output into the build log."""

    def __init__(self, log_path: Optional[Path]):
        self._log_path = log_path

    def run(self, cmd: Sequence[str]) -> int:
        return run_logged(cmd, self._log_path)


def is_configured(build_dir: Path) -> bool:
    return (build_dir / CONFIGURED_MARKER).is_file()


def configure_command(
    build_dir: Path,
    source_dir: Path,
    build_type: str,
    host: Host,
    skia_dir: Path,
    skia_library_dir: Path,
) -> list[str]:
    command = [
        "cmake",
        "-B",
        str(build_dir),
        "-S",
        str(source_dir),
        "-G",
        CMAKE_GENERATOR,
        f"-DCMAKE_BUILD_TYPE={build_type}",
    ]
    if is_macos(host):
        command.append(f"-DCMAKE_OSX_DEPLOYMENT_TARGET={OSX_DEPLOYMENT_TARGET}")
    command.extend(
        [
            f"-DLAF_BACKEND={LAF_BACKEND}",
            f"-DSKIA_DIR={skia_dir}",
            f"-DSKIA_LIBRARY_DIR={skia_library_dir}",
        ]
    )
    return command


def build_command(build_dir: Path) -> list[str]:
    return ["cmake", "--build", str(build_dir), "--", BUILD_TARGET]


def cmake_configure(
    tool: BuildTool,
    prompter: Prompter,
    build_dir: Path,
    source_dir: Path,
    build_type: str,
    host: Host,
    skia_dir: Path,
    skia_library_dir: Path,
) -> int:
    """Configure ``build_dir`` unless a previous run already did.

    A configured directory is reused as is, even if the Skia paths changed.
    """
    if is_configured(build_dir):
        return 0
    print("")
    print("We are going to run cmake and then build the project.")
    print("This will take some minutes.")
    print("")
    prompter.pause("Press Enter to continue. ")
    info("configuring Aseprite")
    result = tool.run(
        configure_command(
            build_dir, source_dir, build_type, host, skia_dir, skia_library_dir
        )
    )
    if result != 0:
        error("error running cmake")
        return 1
    return 0


def cmake_build(tool: BuildTool, build_dir: Path) -> int:
    result = tool.run(build_command(build_dir))
    if result != 0:
        error("error building Aseprite")
        return 1
    return 0
