import sys
from pathlib import Path

from asebuild import common, driver

MACOS = {"os": "macos", "cpu": "arm64"}
LINUX = {"os": "linux", "cpu": "x64"}


class RecordingTool:
    def __init__(self, results=()):
        self.results = list(results)
        self.commands = []

    def run(self, cmd):
        self.commands.append(list(cmd))
        return self.results.pop(0) if self.results else 0


def test_configure_command_macos_includes_deployment_target():
    command = driver.configure_command(
        Path("/b"), Path("/s"), "RelWithDebInfo", MACOS, Path("/skia"), Path("/skia/out/Release-arm64")
    )

    assert command == [
        "cmake",
        "-B",
        "/b",
        "-S",
        "/s",
        "-G",
        "Ninja",
        "-DCMAKE_BUILD_TYPE=RelWithDebInfo",
        "-DCMAKE_OSX_DEPLOYMENT_TARGET=11.0",
        "-DLAF_BACKEND=skia",
        "-DSKIA_DIR=/skia",
        "-DSKIA_LIBRARY_DIR=/skia/out/Release-arm64",
    ]


def test_configure_command_linux_has_no_deployment_target():
    command = driver.configure_command(
        Path("/b"), Path("/s"), "Debug", LINUX, Path("/skia"), Path("/skia/out/Release-x64")
    )

    assert not any(part.startswith("-DCMAKE_OSX") for part in command)
    assert "-DCMAKE_BUILD_TYPE=Debug" in command


def test_configure_skipped_when_already_configured(tmp_path, prompter_factory):
    (tmp_path / "build.ninja").write_text("", encoding="utf-8")
    tool = RecordingTool()
    prompter = prompter_factory()

    result = driver.cmake_configure(
        tool, prompter, tmp_path, tmp_path, "Debug", LINUX, tmp_path, tmp_path
    )

    assert result == 0
    assert tool.commands == []
    assert prompter.asked == []


def test_configure_runs_once_for_fresh_directory(tmp_path, prompter_factory):
    tool = RecordingTool()

    result = driver.cmake_configure(
        tool, prompter_factory(), tmp_path, tmp_path, "Debug", LINUX, tmp_path, tmp_path
    )

    assert result == 0
    assert len(tool.commands) == 1
    assert tool.commands[0][:3] == ["cmake", "-B", str(tmp_path)]


def test_configure_failure(tmp_path, prompter_factory, capsys):
    tool = RecordingTool(results=[2])

    result = driver.cmake_configure(
        tool, prompter_factory(), tmp_path, tmp_path, "Debug", LINUX, tmp_path, tmp_path
    )

    assert result == 1
    assert "error running cmake" in capsys.readouterr().err


def test_build_command_and_failure(tmp_path, capsys):
    tool = RecordingTool(results=[0, 1])

    assert driver.cmake_build(tool, tmp_path) == 0
    assert tool.commands[0] == ["cmake", "--build", str(tmp_path), "--", "aseprite"]
    assert driver.cmake_build(tool, tmp_path) == 1
    assert "error building Aseprite" in capsys.readouterr().err


def test_run_logged_tees_output_into_log(tmp_path, capsys):
    log = tmp_path / ".build" / "log"
    command = [sys.executable, "-c", "print('hello from tool')"]

    assert common.run_logged(command, log) == 0

    assert "hello from tool" in capsys.readouterr().out
    assert "hello from tool" in log.read_text(encoding="utf-8")


def test_run_logged_failure_is_logged(tmp_path):
    log = tmp_path / "log"
    command = [sys.executable, "-c", "import sys; print('boom'); sys.exit(3)"]

    assert common.run_logged(command, log) == 3

    contents = log.read_text(encoding="utf-8")
    assert "boom" in contents
    assert "command failed with exit code 3" in contents


def test_run_logged_missing_tool(tmp_path):
    assert common.run_logged(["definitely-not-a-real-tool-xyz"], tmp_path / "log") == 127
