import sys
from pathlib import Path

import pytest  # type: ignore[import-not-found]

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from asebuild.store import ConfigStore  # noqa: E402


class ScriptedPrompter:
    """Answers prompts from a fixed list and records what was asked."""

    def __init__(self, answers=(), unattended=False):
        self.answers = list(answers)
        self.unattended = unattended
        self.asked = []

    def _next(self, prompt):
        self.asked.append(prompt)
        return self.answers.pop(0) if self.answers else ""

    def ask(self, prompt, default=""):
        answer = self._next(prompt)
        return answer if answer else default

    def confirm(self, prompt, default=True):
        answer = self._next(prompt).lower()
        if not answer:
            return default
        return answer in {"y", "yes"}

    def pause(self, prompt):
        self.asked.append(prompt)


@pytest.fixture
def prompter_factory():
    return ScriptedPrompter


@pytest.fixture
def checkout(tmp_path):
    root = tmp_path / "aseprite"
    root.mkdir()
    (root / "EULA.txt").write_text("eula\n", encoding="utf-8")
    (root / ".gitmodules").write_text("", encoding="utf-8")
    return root


@pytest.fixture
def store(checkout):
    return ConfigStore(checkout)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--type",
        action="store",
        default="all",
        choices=("unit", "integration", "all"),
        help="Select which tests to run: unit, integration, or all.",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    selected = config.getoption("--type")
    if selected == "all":
        return

    skip_integration = pytest.mark.skip(reason="skipped by --type unit")
    skip_unit = pytest.mark.skip(reason="skipped by --type integration")

    for item in items:
        is_integration = item.get_closest_marker("integration") is not None
        if selected == "unit" and is_integration:
            item.add_marker(skip_integration)
        elif selected == "integration" and not is_integration:
            item.add_marker(skip_unit)
