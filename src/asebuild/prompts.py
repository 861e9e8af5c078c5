"""Answer suppliers for the build decisions.

The decision code only talks to a ``Prompter``; interactive runs read from the
terminal and ``--auto`` runs answer every question with its default.
"""

from typing import Protocol


class Prompter(Protocol):
    unattended: bool

    def ask(self, prompt: str, default: str = "") -> str: ...

    def confirm(self, prompt: str, default: bool = True) -> bool: ...

    def pause(self, prompt: str) -> None: ...


class InteractivePrompter:
    unattended = False

    def _read(self, prompt: str) -> str:
        try:
            return input(prompt).strip()
        except EOFError:
            print("")
            return ""

    def ask(self, prompt: str, default: str = "") -> str:
        response = self._read(prompt)
        return response if response else default

    def confirm(self, prompt: str, default: bool = True) -> bool:
        response = self._read(prompt).lower()
        if not response:
            return default
        return response in {"y", "yes"}

    def pause(self, prompt: str) -> None:
        self._read(prompt)


class UnattendedPrompter:
    unattended = True

    def ask(self, prompt: str, default: str = "") -> str:
        return default

    def confirm(self, prompt: str, default: bool = True) -> bool:
        return default

    def pause(self, prompt: str) -> None:
        return None
