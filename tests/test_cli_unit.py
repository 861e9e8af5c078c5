from pathlib import Path

import pytest

from asebuild import cli, packaging
from asebuild import store as config
from asebuild.store import ConfigStore

MACOS_ARM = {"os": "macos", "cpu": "arm64"}
LINUX = {"os": "linux", "cpu": "x64"}


class FakeScm:
    def __init__(self, branch="main"):
        self.branch = branch

    def current_branch(self):
        return (0, self.branch)

    def remotes(self):
        return ["origin"]

    def head_contains(self, ref, branch):
        return False


class FakeFetcher:
    def __init__(self):
        self.downloads = []

    def download(self, url, destination):
        self.downloads.append((url, destination))
        destination.write_bytes(b"zip")
        return 0

    def unpack(self, archive, destination):
        (destination / "out" / "Release-arm64").mkdir(parents=True)
        return 0


class BuildingTool:
    """Pretends to configure and compile, leaving the outputs cmake would."""

    def __init__(self):
        self.commands = []

    def run(self, cmd):
        self.commands.append(list(cmd))
        if cmd[1] == "-B":
            build_dir = Path(cmd[2])
            (build_dir / "build.ninja").write_text("", encoding="utf-8")
            (build_dir / "CMakeCache.txt").write_text(
                "CMAKE_BUILD_TYPE:STRING=RelWithDebInfo\n"
                "CMAKE_PROJECT_NAME:STATIC=aseprite\n",
                encoding="utf-8",
            )
        else:
            exe = Path(cmd[2]) / "bin" / "aseprite"
            exe.parent.mkdir(parents=True, exist_ok=True)
            exe.write_bytes(b"bin")
        return 0


@pytest.fixture
def fresh_checkout(checkout, tmp_path, monkeypatch):
    (checkout / ".gitmodules").write_text(
        '[submodule "laf"]\n\tpath = laf\n\turl = https://example.invalid/laf.git\n',
        encoding="utf-8",
    )
    libpng = checkout / "third_party" / "libpng" / "CMakeLists.txt"
    libpng.parent.mkdir(parents=True)
    libpng.write_text("cmake_minimum_required(VERSION 3.1)\n", encoding="utf-8")
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(cli, "check_build_tools", lambda: 0)
    return checkout


def test_help(checkout, monkeypatch, capsys):
    monkeypatch.chdir(checkout)

    assert cli.main(["--help"]) == 0
    out = capsys.readouterr().out
    assert "BUILD ASEPRITE HELPER" in out
    assert "--create-dmg [version]" in out


def test_version(checkout, monkeypatch, capsys):
    monkeypatch.chdir(checkout)

    assert cli.main(["-v"]) == 0
    assert "asebuild " in capsys.readouterr().out


def test_wrong_directory(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)

    assert cli.main(["--help"]) == 1
    assert "from the Aseprite directory" in capsys.readouterr().err


def test_reset_twice(checkout, monkeypatch):
    monkeypatch.chdir(checkout)
    store = ConfigStore(checkout)
    store.set(config.USER_KIND, config.USER)
    store.mark(config.CMAKE_FIXED)

    assert cli.main(["--reset"]) == 0
    assert not (checkout / ".build").exists()
    assert cli.main(["--reset"]) == 0


def test_unknown_option(checkout, monkeypatch, capsys):
    monkeypatch.chdir(checkout)

    assert cli.main(["--auto", "--fast"]) == 1
    captured = capsys.readouterr()
    assert "unknown option '--fast'" in captured.err
    assert "usage: asebuild" in captured.out


def test_fix_cmake_rejects_bad_version(checkout, monkeypatch, capsys):
    monkeypatch.chdir(checkout)

    assert cli.main(["--fix-cmake", "3"]) == 1
    assert "invalid CMake version format" in capsys.readouterr().err


def test_create_dmg_off_macos(checkout, monkeypatch):
    monkeypatch.chdir(checkout)
    monkeypatch.setattr(cli, "detect_host", lambda: LINUX)

    assert cli.main(["--create-dmg"]) == 1


def test_create_scripts_needs_a_build(checkout, monkeypatch, capsys):
    monkeypatch.chdir(checkout)

    assert cli.main(["--create-scripts"]) == 1
    assert "build Aseprite first" in capsys.readouterr().err


def test_create_scripts_writes_launchers(checkout, monkeypatch):
    monkeypatch.chdir(checkout)
    ConfigStore(checkout).set(config.BUILDS_DIR, str(checkout))
    (checkout / "build").mkdir()

    assert cli.main(["--create-scripts"]) == 0
    assert (checkout / "build" / "run_aseprite.sh").is_file()


def test_auto_dispatches_unattended(checkout, monkeypatch):
    seen = {}

    def fake_run_build(root, store, prompter, norun=False):
        seen.update(root=root, unattended=prompter.unattended, norun=norun)
        return 0

    monkeypatch.chdir(checkout)
    monkeypatch.setattr(cli, "run_build", fake_run_build)

    assert cli.main(["--norun", "--auto"]) == 0
    assert seen["root"].resolve() == checkout.resolve()
    assert seen["unattended"] is True
    assert seen["norun"] is True


def test_fresh_checkout_unattended_macos(fresh_checkout, prompter_factory, tmp_path):
    checkout = fresh_checkout
    store = ConfigStore(checkout)
    updates = []
    packaged = []

    def updater(root):
        updates.append(root)
        (root / "laf").mkdir()
        (root / "laf" / "CMakeLists.txt").write_text("", encoding="utf-8")
        return 0

    def packager(build_dir, version):
        packaged.append((build_dir, version))
        packaging.dmg_path(build_dir).write_bytes(b"dmg")
        return 0

    fetcher = FakeFetcher()
    tool = BuildingTool()

    result = cli.run_build(
        checkout,
        store,
        prompter_factory(unattended=True),
        host=MACOS_ARM,
        norun=True,
        detector=lambda: (0, "3.28.1"),
        updater=updater,
        scm_factory=lambda source_dir: FakeScm("main"),
        fetcher=fetcher,
        tool=tool,
        packager=packager,
    )

    assert result == 0
    assert store.has(config.CMAKE_FIXED)
    assert (checkout / "third_party" / "libpng" / "CMakeLists.txt").read_text(
        encoding="utf-8"
    ) == "cmake_minimum_required(VERSION 3.28)\n"
    assert updates == [checkout]
    assert store.get(config.USER_KIND) == config.USER
    assert store.get(config.BUILDS_DIR) == str(checkout)

    build_dir = checkout / "build"
    skia_dir = tmp_path / "home" / "deps" / "skia"
    assert store.get(config.MAIN_SKIA_DIR) == str(skia_dir)
    assert fetcher.downloads[0][0].endswith("m102-861e4743af/Skia-macOS-Release-arm64.zip")
    assert tool.commands[0][:5] == ["cmake", "-B", str(build_dir), "-S", str(checkout)]
    assert "-DCMAKE_BUILD_TYPE=RelWithDebInfo" in tool.commands[0]
    assert f"-DSKIA_LIBRARY_DIR={skia_dir / 'out' / 'Release-arm64'}" in tool.commands[0]
    assert tool.commands[1] == ["cmake", "--build", str(build_dir), "--", "aseprite"]
    assert packaged == [(build_dir, "1.x-dev")]


def test_second_run_reuses_everything(fresh_checkout, prompter_factory, monkeypatch):
    checkout = fresh_checkout
    (checkout / "laf").mkdir()
    (checkout / "laf" / "CMakeLists.txt").write_text("", encoding="utf-8")
    store = ConfigStore(checkout)
    tool = BuildingTool()
    ran = []
    monkeypatch.setattr(cli, "run_cmd", lambda cmd, cwd=None, env=None: ran.append(cmd) or 0)

    def detector():
        raise AssertionError("cmake version is only probed before the first patch")

    def packager(build_dir, version):
        packaging.dmg_path(build_dir).write_bytes(b"dmg")
        return 0

    common_args = dict(
        host=MACOS_ARM,
        scm_factory=lambda source_dir: FakeScm("main"),
        fetcher=FakeFetcher(),
        tool=tool,
        packager=packager,
    )
    assert cli.run_build(
        checkout, store, prompter_factory(unattended=True), detector=lambda: (0, "3.10"), **common_args
    ) == 0
    tool.commands.clear()

    assert cli.run_build(
        checkout, store, prompter_factory(unattended=True), detector=detector, **common_args
    ) == 0

    # already configured: only the build step runs
    assert [cmd[1] for cmd in tool.commands] == ["--build"]
    assert ran == [[str(checkout / "build" / "bin" / "aseprite")]] * 2


def test_interactive_missing_submodule_stops(fresh_checkout, prompter_factory, capsys):
    store = ConfigStore(fresh_checkout)

    result = cli.run_build(
        fresh_checkout,
        store,
        prompter_factory(),
        host=LINUX,
        updater=lambda root: pytest.fail("interactive runs must not fetch submodules"),
    )

    assert result == 1
    assert "submodules are not checked out" in capsys.readouterr().err


def test_orphan_branch_stops_before_skia(fresh_checkout, prompter_factory):
    (fresh_checkout / "laf").mkdir()
    (fresh_checkout / "laf" / "CMakeLists.txt").write_text("", encoding="utf-8")
    store = ConfigStore(fresh_checkout)
    fetcher = FakeFetcher()

    result = cli.run_build(
        fresh_checkout,
        store,
        prompter_factory(unattended=True),
        host=LINUX,
        scm_factory=lambda source_dir: FakeScm("experiment"),
        fetcher=fetcher,
    )

    assert result == 1
    assert fetcher.downloads == []
    assert store.get(config.MAIN_SKIA_DIR) is None
    assert "doesn't belong to main or beta" in store.log_path.read_text(encoding="utf-8")


def test_main_keeps_errors_in_the_log(checkout, monkeypatch):
    monkeypatch.chdir(checkout)
    store = ConfigStore(checkout)
    store.ensure_directory()

    assert cli.main(["--auto", "--fast"]) == 1
    assert "error: unknown option '--fast'" in store.log_path.read_text(encoding="utf-8")
