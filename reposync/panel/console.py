"""Terminal implementation of the host panel."""

import sys
from typing import TextIO

from reposync.panel.base import BasePanel

_YES = {"y", "yes"}


class ConsolePanel(BasePanel):
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def _print(self, text: str) -> None:
        print(text, file=self._stream)

    async def notify(self, title: str) -> None:
        self._print(f"[{title}]")

    async def confirm(
        self, title: str, message: str, *, ok: str = "OK", cancel: str = "Cancel"
    ) -> bool:
        self._print(f"\n{title}\n{message}")
        try:
            answer = input(f"{ok}? [y/N] ({cancel} = n) ")
        except EOFError:
            return False
        return answer.strip().lower() in _YES

    async def render(self, text: str) -> None:
        self._print(f"\n{text}\n")
