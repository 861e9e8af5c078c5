"""Locates the prebuilt Skia package, downloading it when it is missing."""

import urllib.error
import urllib.request
import zipfile
from pathlib import Path
from typing import Optional, Protocol

from asebuild.branches import SkiaRelease
from asebuild.builds import DEBUG
from asebuild.common import PathResult, banner, error, hint, info
from asebuild.host import Host, is_macos, is_windows
from asebuild.prompts import Prompter
from asebuild.store import ConfigStore


SKIA_URL_TEMPLATE = "https://github.com/aseprite/skia/releases/download/{tag}/{file}"
SKIA_MANUAL_BUILD_URL = (
    "https://github.com/aseprite/skia?tab=readme-ov-file#skia-for-aseprite-and-laf"
)
WINDOWS_DEPS_DIR = Path("C:/deps")
DEFAULT_DEPS_DIR = Path("~/deps")


class ArchiveFetcher(Protocol):
    def download(self, url: str, destination: Path) -> int: ...

    def unpack(self, archive: Path, destination: Path) -> int: ...


class UrlArchiveFetcher:
    """Downloads with urllib and unpacks zip files without overwriting."""

    def download(self, url: str, destination: Path) -> int:
        info(f"downloading {url}")
        try:
            urllib.request.urlretrieve(url, destination)
        except (urllib.error.URLError, OSError) as exc:
            error(f"failed to download {url}: {exc}")
            return 1
        return 0

    def unpack(self, archive: Path, destination: Path) -> int:
        info(f"unpacking {archive}")
        try:
            with zipfile.ZipFile(archive) as package:
                for member in package.infolist():
                    target = destination / member.filename
                    if target.exists():
                        continue
                    package.extract(member, destination)
                    mode = member.external_attr >> 16
                    if mode and not member.is_dir():
                        target.chmod(mode & 0o777)
        except (zipfile.BadZipFile, OSError) as exc:
            error(f"failed to unpack {archive}: {exc}")
            error("remove the archive and try again")
            return 1
        return 0


def default_skia_dir(host: Host, release: SkiaRelease) -> Path:
    base = WINDOWS_DEPS_DIR if is_windows(host) else DEFAULT_DEPS_DIR.expanduser()
    return base / release["dir_name"]


def resolve_skia_dir(
    store: ConfigStore,
    release: SkiaRelease,
    host: Host,
    prompter: Prompter,
    default: Optional[Path] = None,
) -> PathResult:
    """Return the persisted Skia directory for this release, creating it."""
    key = release["cache_key"]
    current = store.get(key)
    if not current:
        skia_dir = default if default is not None else default_skia_dir(host, release)
        if not skia_dir.is_dir():
            info("Skia directory wasn't found")
            answer = prompter.ask(
                f"Select Skia directory to create [{skia_dir}]? ", str(skia_dir)
            )
            skia_dir = Path(answer).expanduser()
            try:
                skia_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                error(f"failed to create {skia_dir}: {exc}")
                return (1, None)
        current = store.set(key, str(skia_dir))
        if current is None:
            return (1, None)
    skia_dir = Path(current)
    if not skia_dir.is_dir():
        try:
            skia_dir.mkdir(parents=True)
        except OSError as exc:
            error(f"failed to create {skia_dir}: {exc}")
            return (1, None)
    return (0, skia_dir)


def skia_variant(host: Host, build_type: str) -> str:
    """Only Windows links a separate Debug Skia into Debug builds."""
    return "Debug" if is_windows(host) and build_type == DEBUG else "Release"


def skia_library_dir(skia_dir: Path, host: Host, build_type: str) -> Path:
    return skia_dir / "out" / f"{skia_variant(host, build_type)}-{host['cpu']}"


def skia_package_name(host: Host, build_type: str) -> str:
    variant = skia_variant(host, build_type)
    cpu = host["cpu"]
    if is_windows(host):
        return f"Skia-Windows-{variant}-{cpu}.zip"
    if is_macos(host):
        return f"Skia-macOS-{variant}-{cpu}.zip"
    return f"Skia-Linux-{variant}-{cpu}-libstdc++.zip"


def skia_package_url(release: SkiaRelease, file_name: str) -> str:
    return SKIA_URL_TEMPLATE.format(tag=release["tag"], file=file_name)


def _manual_build_instructions() -> None:
    error("please follow these instructions to compile Skia manually:")
    hint(SKIA_MANUAL_BUILD_URL)


def ensure_skia_library(
    skia_dir: Path,
    release: SkiaRelease,
    host: Host,
    build_type: str,
    prompter: Prompter,
    fetcher: Optional[ArchiveFetcher] = None,
) -> PathResult:
    """Make sure the Skia library directory exists and return it."""
    library_dir = skia_library_dir(skia_dir, host, build_type)
    if not library_dir.is_dir():
        info("Skia library wasn't found")
        if not prompter.confirm("Download pre-compiled Skia automatically [Y/n]? "):
            _manual_build_instructions()
            return (1, None)
        fetch = fetcher if fetcher is not None else UrlArchiveFetcher()
        file_name = skia_package_name(host, build_type)
        archive = skia_dir / file_name
        info(f"downloading Skia from {skia_package_url(release, file_name)}")
        if not archive.is_file():
            if fetch.download(skia_package_url(release, file_name), archive) != 0:
                error("download failed, try again")
                return (1, None)
        if not library_dir.is_dir():
            if fetch.unpack(archive, skia_dir) != 0:
                return (1, None)

    banner("SKIA")
    print(f'Skia directory: "{skia_dir}"')
    print(f'Skia library directory: "{library_dir}"')
    if not library_dir.is_dir():
        error("the Skia library directory wasn't found")
        _manual_build_instructions()
        return (1, None)
    return (0, library_dir)
