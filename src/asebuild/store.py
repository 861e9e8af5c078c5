"""Persisted build helper configuration (one file per key under .build/)."""

from pathlib import Path
from typing import Optional

from asebuild.common import append_log, error, info, warning


CONFIG_DIR_NAME = ".build"

BUILDS_DIR = "builds_dir"
USER_KIND = "userkind"
MAIN_SKIA_DIR = "main_skia_dir"
BETA_SKIA_DIR = "beta_skia_dir"
CMAKE_FIXED = "cmake_fixed"
LOG = "log"

KNOWN_KEYS = (BUILDS_DIR, USER_KIND, MAIN_SKIA_DIR, BETA_SKIA_DIR, CMAKE_FIXED)

USER = "user"
DEVELOPER = "developer"
USER_KINDS = (USER, DEVELOPER)


class ConfigStore:
    """Key/value store rooted at ``<checkout>/.build``.

    Every key lives in its own text file. Values are filled lazily and are
    never overwritten once present; only ``reset()`` removes them.
    """

    def __init__(self, root: Path):
        self._root = root
        self._directory = root / CONFIG_DIR_NAME

    @property
    def root(self) -> Path:
        return self._root

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def log_path(self) -> Path:
        return self._directory / LOG

    def path_for(self, key: str) -> Path:
        if key not in KNOWN_KEYS:
            raise KeyError(f"unknown config key: {key}")
        return self._directory / key

    def has(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.is_file():
            return None
        try:
            value = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            error(f"failed to read {path}: {exc}")
            return None
        # a blank file counts as unset so set() can fill it
        return value or None

    def ensure_directory(self) -> int:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            error(f"failed to create {self._directory}: {exc}")
            return 1
        return 0

    def set(self, key: str, value: str) -> Optional[str]:
        """Persist ``value`` unless the key already holds a non-blank one.

        Returns the persisted value, or None when the store cannot be written.
        """
        current = self.get(key)
        if current is not None:
            return current
        if self.ensure_directory() != 0:
            return None
        path = self.path_for(key)
        try:
            path.write_text(f"{value}\n", encoding="utf-8")
        except OSError as exc:
            error(f"failed to write {path}: {exc}")
            return None
        return value

    def mark(self, key: str) -> int:
        """Create an empty marker file for a one-shot flag."""
        if self.ensure_directory() != 0:
            return 1
        try:
            self.path_for(key).touch()
        except OSError as exc:
            error(f"failed to write {self.path_for(key)}: {exc}")
            return 1
        return 0

    def log(self, text: str) -> None:
        if not self._directory.is_dir():
            return
        append_log(self.log_path, text)

    def reset(self) -> int:
        """Delete every known key, the log and the store directory."""
        info(f"resetting {self._directory} directory")
        for path in [self.path_for(key) for key in KNOWN_KEYS] + [self.log_path]:
            if not path.is_file():
                continue
            try:
                path.unlink()
            except OSError as exc:
                error(f"failed to remove {path}: {exc}")
                return 1
        if self._directory.is_dir():
            try:
                self._directory.rmdir()
            except OSError as exc:
                warning(f"{self._directory} was left in place: {exc}")
        info("done")
        return 0
