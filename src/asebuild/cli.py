#!/usr/bin/env python3
"""Build helper for Aseprite source checkouts (CMake + Ninja + prebuilt Skia)."""

import importlib.metadata
import sys
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from asebuild import branches, builds, driver, packaging, patcher, skia, submodules
from asebuild.common import banner, error, info, log_diagnostics, run_cmd
from asebuild.host import Host, check_build_tools, check_checkout, check_compiler
from asebuild.host import detect_host, exe_suffix
from asebuild.prompts import InteractivePrompter, Prompter, UnattendedPrompter
from asebuild.store import DEVELOPER, ConfigStore


DEFAULT_VERSION = "0.1.0"

type ScmFactory = Callable[[Path], branches.SourceControl]


def usage() -> None:
    print("usage: asebuild [OPTIONS]")
    print("")
    print("options:")
    print("  --auto                    build with default settings (release mode)")
    print("  --norun                   with --auto, don't run Aseprite after building")
    print("  --reset                   delete all configuration and start over")
    print("  --fix-cmake [version]     update CMake minimum versions in third-party libraries")
    print("  --create-dmg [version]    create a DMG installer for macOS builds")
    print("  --create-scripts          write launcher scripts into the build directory")
    print("  --init-submodules         initialize and update all git submodules")
    print("  --version, -v             show the helper version")
    print("  --help, -h                show this help text")
    print("")
    print("examples:")
    print("  asebuild                      interactive build with step-by-step guidance")
    print("  asebuild --auto               automatic build with default settings")
    print("  asebuild --auto --norun       automatic build without running Aseprite")
    print("  asebuild --fix-cmake 3.12     use CMake 3.12 as minimum in third-party libraries")
    print("  asebuild --create-dmg         (macOS) create a DMG after building")
    print("")
    print("recommended workflow for new clones:")
    print("  1. asebuild --init-submodules")
    print("  2. asebuild --fix-cmake")
    print("  3. asebuild --auto --norun")
    print("  4. asebuild --create-dmg      (macOS only)")
    print("")
    print(f"environment: {builds.BUILDS_DIR_ENV} sets the developer builds directory")


def _version() -> str:
    try:
        return importlib.metadata.version("asebuild")
    except importlib.metadata.PackageNotFoundError:
        return DEFAULT_VERSION


def _print_configuration(
    build_type: str, build_dir: Path, source_dir: Path, family: str, branch: str
) -> None:
    banner("CONFIGURATION")
    print(f"Build type: {build_type}")
    print(f'Build dir: "{build_dir}"')
    print(f'Source dir: "{source_dir}"')
    print(f"Branch name: {branches.describe_branch(family, branch)}")


def _run_build(
    root: Path,
    store: ConfigStore,
    prompter: Prompter,
    host: Optional[Host] = None,
    norun: bool = False,
    detector: Optional[patcher.VersionDetector] = None,
    updater: Optional[submodules.Updater] = None,
    scm_factory: Optional[ScmFactory] = None,
    fetcher: Optional[skia.ArchiveFetcher] = None,
    tool: Optional[driver.BuildTool] = None,
    packager: Optional[packaging.Packager] = None,
) -> int:
    host = host if host is not None else detect_host()
    if check_compiler(host) != 0:
        return 1

    result = patcher.auto_fix_cmake(root, store, host, detector)
    if result != 0:
        return result
    if check_build_tools() != 0:
        return 1
    result = submodules.verify_submodules(root, prompter, updater)
    if result != 0:
        return result
    if store.ensure_directory() != 0:
        return 1

    result, user_kind = builds.resolve_user_kind(store, prompter)
    if result or user_kind is None:
        return 1
    banner("BUILDING FOR DEVELOPER" if user_kind == DEVELOPER else "BUILDING FOR USER")

    result, builds_dir = builds.resolve_builds_dir(store, user_kind, prompter)
    if result or builds_dir is None:
        return 1
    existing = builds.list_builds(builds_dir)
    builds.print_builds(existing)
    result, selection = builds.choose_build(builds_dir, existing, user_kind, prompter)
    if result or selection is None:
        return 1
    if selection["action"] == "update_sdk":
        return builds.update_sdk(existing, host, store.log_path)
    if builds.activate_build(selection, prompter) != 0:
        return 1
    build_dir = selection["build_dir"]
    build_type = selection["build_type"]
    assert build_dir is not None

    source_dir = builds.source_dir_for(build_dir, root)
    scm = (scm_factory or branches.Git)(source_dir)
    result, branch = scm.current_branch()
    if result or branch is None:
        return 1
    result, family = branches.resolve_branch_family(branch, scm)
    if result or family is None:
        return 1
    _print_configuration(build_type, build_dir, source_dir, family, branch)
    store.log(
        f"building {build_dir} ({build_type}) from {source_dir}, "
        f"branch {branches.describe_branch(family, branch)}"
    )

    release = branches.skia_release(family)
    result, skia_dir = skia.resolve_skia_dir(store, release, host, prompter)
    if result or skia_dir is None:
        return 1
    result, library_dir = skia.ensure_skia_library(
        skia_dir, release, host, build_type, prompter, fetcher
    )
    if result or library_dir is None:
        return 1

    build_tool = tool if tool is not None else driver.LoggedBuildTool(store.log_path)
    banner("CMAKE")
    result = driver.cmake_configure(
        build_tool, prompter, build_dir, source_dir, build_type, host, skia_dir, library_dir
    )
    if result != 0:
        return result
    banner("BUILDING")
    result = driver.cmake_build(build_tool, build_dir)
    if result != 0:
        return result

    banner("DONE")
    executable = packaging.executable_path(build_dir, exe_suffix(host))
    print("Run Aseprite with the following command:")
    print("")
    print(f"  {executable}")
    print("")

    result = packaging.package_after_build(host, build_dir, packager)
    if result != 0:
        return result

    if prompter.unattended and not norun:
        return run_cmd([str(executable)])
    return 0


def run_build(root: Path, store: ConfigStore, prompter: Prompter, **options: Any) -> int:
    """Full workflow: patch, verify, select build, fetch Skia, configure, build.

    Warnings and errors raised along the way are also kept in the build log.
    """
    with log_diagnostics(store.log_path):
        return _run_build(root, store, prompter, **options)


def _dispatch(root: Path, store: ConfigStore, args: list[str]) -> int:
    command = args[0] if args else None
    if command == "--init-submodules":
        info("initializing and updating git submodules")
        return submodules.update_submodules(root)
    if command == "--create-dmg":
        version = args[1] if len(args) > 1 else None
        return packaging.create_dmg_command(store, detect_host(), version)
    if command == "--fix-cmake":
        version = args[1] if len(args) > 1 else None
        return patcher.fix_cmake(root, store, detect_host(), version)
    if command == "--create-scripts":
        result, build_dir = packaging.find_default_build_dir(store)
        if result or build_dir is None:
            return 1
        return packaging.create_run_scripts(build_dir)

    auto = False
    norun = False
    for arg in args:
        if arg == "--auto":
            auto = True
        elif arg == "--norun":
            norun = True
        else:
            error(f"unknown option '{arg}'")
            usage()
            return 1

    prompter: Prompter = UnattendedPrompter() if auto else InteractivePrompter()
    return run_build(root, store, prompter, norun=norun)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    banner("BUILD ASEPRITE HELPER")

    root = Path.cwd()
    if check_checkout(root) != 0:
        return 1
    store = ConfigStore(root)

    command = args[0] if args else None
    if command in {"--help", "-h"}:
        usage()
        return 0
    if command in {"--version", "-v"}:
        print(f"asebuild {_version()}")
        return 0
    if command == "--reset":
        return store.reset()
    with log_diagnostics(store.log_path):
        return _dispatch(root, store, args)


if __name__ == "__main__":
    raise SystemExit(main())
