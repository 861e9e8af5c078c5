"""Console output and external command helpers shared by every step."""

import contextlib
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Iterator, Mapping, Optional, Sequence


BANNER_WIDTH = 70
COMMAND_NOT_FOUND = 127

# Log that warnings and errors are copied into while a run is active.
_diagnostics_log: Optional[Path] = None

type ValidationResult[T] = tuple[int, Optional[T]]
type StringValidationResult = tuple[int, Optional[str]]
type PathResult = tuple[int, Optional[Path]]
type CaptureResult = tuple[int, str]


def info(message: str) -> None:
    """Print a standard informational message."""
    print(f"[asebuild] {message}")


@contextlib.contextmanager
def log_diagnostics(log_path: Path) -> Iterator[None]:
    """Copy warnings, errors and hints into ``log_path`` inside the block.

    Lines are only appended once the log's directory exists, so nothing is
    written before the configuration store has been created.
    """
    global _diagnostics_log
    previous = _diagnostics_log
    _diagnostics_log = log_path
    try:
        yield
    finally:
        _diagnostics_log = previous


def _record(text: str) -> None:
    log_path = _diagnostics_log
    if log_path is None or not log_path.parent.is_dir():
        return
    append_log(log_path, text)


def warning(message: str) -> None:
    """Print a warning to stderr; the run continues."""
    print(f"warning: {message}", file=sys.stderr)
    _record(f"warning: {message}")


def error(message: str) -> None:
    """Print a standardized error message to stderr."""
    print(f"error: {message}", file=sys.stderr)
    _record(f"error: {message}")


def hint(*lines: str) -> None:
    """Print indented remediation lines (commands or URLs) after an error."""
    print("", file=sys.stderr)
    for line in lines:
        print(f"  {line}", file=sys.stderr)
        _record(f"  {line}")
    print("", file=sys.stderr)


def banner(title: str) -> None:
    text = f" {title} " if title else ""
    print(text.center(BANNER_WIDTH, "="))


def format_cmd(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in cmd)


def run_cmd(
    cmd: Sequence[str],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Run a subprocess command and return the exit code."""
    print("+", format_cmd(cmd))
    try:
        subprocess.run(
            [str(part) for part in cmd],
            cwd=str(cwd) if cwd else None,
            check=True,
            env=env,
        )
    except subprocess.CalledProcessError as exc:
        error(f"command failed with exit code {exc.returncode}")
        return exc.returncode
    except FileNotFoundError:
        error(f"command not found: {cmd[0]}")
        return COMMAND_NOT_FOUND
    return 0


def run_capture(cmd: Sequence[str], cwd: Optional[Path] = None) -> CaptureResult:
    """Run a command quietly and return its exit code and stdout."""
    try:
        result = subprocess.run(
            [str(part) for part in cmd],
            cwd=str(cwd) if cwd else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            check=False,
        )
    except (FileNotFoundError, OSError):
        return (COMMAND_NOT_FOUND, "")
    return (result.returncode, result.stdout)


def append_log(log_path: Optional[Path], text: str) -> None:
    if log_path is None:
        return
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(text)
            if text and not text.endswith("\n"):
                handle.write("\n")
    except OSError as exc:
        print(f"warning: failed to append to {log_path}: {exc}", file=sys.stderr)


def _logged_error(log_path: Optional[Path], message: str) -> None:
    error(message)
    if log_path != _diagnostics_log:
        append_log(log_path, message)


def run_logged(
    cmd: Sequence[str],
    log_path: Optional[Path],
    cwd: Optional[Path] = None,
) -> int:
    """Run a command, echoing its output and appending it to the build log."""
    print("+", format_cmd(cmd))
    append_log(log_path, f"+ {format_cmd(cmd)}")
    try:
        process = subprocess.Popen(
            [str(part) for part in cmd],
            cwd=str(cwd) if cwd else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except FileNotFoundError:
        _logged_error(log_path, f"command not found: {cmd[0]}")
        return COMMAND_NOT_FOUND

    handle = None
    if log_path is not None:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handle = log_path.open("a", encoding="utf-8")
        except OSError as exc:
            warning(f"failed to open {log_path}: {exc}")
    try:
        assert process.stdout is not None
        for line in process.stdout:
            sys.stdout.write(line)
            if handle is not None:
                handle.write(line)
        returncode = process.wait()
    finally:
        if handle is not None:
            handle.close()
    if returncode != 0:
        _logged_error(log_path, f"command failed with exit code {returncode}")
    return returncode
