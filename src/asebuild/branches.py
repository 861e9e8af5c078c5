"""Maps the checked out branch to the Skia release it must be built with."""

from pathlib import Path
from typing import Optional, Protocol, TypedDict

from asebuild import store as config
from asebuild.common import StringValidationResult, error, run_capture


MAIN = "main"
BETA = "beta"
DEFAULT_REMOTE = "origin"
# Ancestry is tested in this order; the first containing remote branch wins.
ANCESTRY_ORDER = (BETA, MAIN)


class SkiaRelease(TypedDict):
    tag: str
    cache_key: str
    dir_name: str


SKIA_RELEASES: dict[str, SkiaRelease] = {
    BETA: {
        "tag": "m124-08a5439a6b",
        "cache_key": config.BETA_SKIA_DIR,
        "dir_name": "skia-m124",
    },
    MAIN: {
        "tag": "m102-861e4743af",
        "cache_key": config.MAIN_SKIA_DIR,
        "dir_name": "skia",
    },
}


class SourceControl(Protocol):
    def current_branch(self) -> StringValidationResult: ...

    def remotes(self) -> list[str]: ...

    def head_contains(self, ref: str, branch: str) -> bool: ...


class Git:
    """Queries a checkout through ``git --git-dir=<source>/.git``."""

    def __init__(self, source_dir: Path):
        self._git_dir = source_dir / ".git"

    def _git(self, *args: str) -> tuple[int, str]:
        return run_capture(["git", f"--git-dir={self._git_dir}", *args])

    def current_branch(self) -> StringValidationResult:
        code, output = self._git("rev-parse", "--abbrev-ref", "HEAD")
        branch = output.strip()
        if code != 0 or not branch:
            error(f"failed to read the current branch from {self._git_dir}")
            return (1, None)
        return (0, branch)

    def remotes(self) -> list[str]:
        code, output = self._git("remote")
        if code != 0:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def head_contains(self, ref: str, branch: str) -> bool:
        """True when ``branch`` is checked out and has ``ref`` in its history."""
        code, output = self._git("branch", "--contains", ref)
        if code != 0:
            return False
        return any(line.rstrip() == f"* {branch}" for line in output.splitlines())


def pick_remote(remotes: list[str]) -> Optional[str]:
    if DEFAULT_REMOTE in remotes:
        return DEFAULT_REMOTE
    return remotes[0] if remotes else None


def resolve_branch_family(branch: str, scm: SourceControl) -> StringValidationResult:
    """Return "main" or "beta" for ``branch``; never guesses."""
    if branch in SKIA_RELEASES:
        return (0, branch)
    remote = pick_remote(scm.remotes())
    if remote is not None:
        for family in ANCESTRY_ORDER:
            if scm.head_contains(f"{remote}/{family}", branch):
                return (0, family)
    error(f"branch {branch} looks like doesn't belong to {MAIN} or {BETA}")
    return (1, None)


def skia_release(family: str) -> SkiaRelease:
    return SKIA_RELEASES.get(family, SKIA_RELEASES[MAIN])


def describe_branch(family: str, branch: str) -> str:
    return family if family == branch else f"{family} > {branch}"
