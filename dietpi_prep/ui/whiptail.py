"""Modal dialogs.

Every dialog returns the entered or selected value, or ``None`` when the user
selected "Exit" (or pressed Esc). Callers turn ``None`` into ``PrepAborted``.
"""

from __future__ import annotations

import shutil
import subprocess
from typing import Optional, Protocol, Sequence

from dietpi_prep.config.settings import PROGRAM_NAME
from dietpi_prep.logging import LoggerFactory


log = LoggerFactory.for_prompt()

MenuItem = tuple[str, str]


class Prompter(Protocol):
    """The three dialog primitives PREP needs."""

    def menu(
        self, text: str, items: Sequence[MenuItem], default: Optional[str] = None
    ) -> Optional[str]:
        ...

    def inputbox(self, text: str, default: str = "") -> Optional[str]:
        ...

    def msgbox(self, text: str) -> None:
        ...


class WhiptailPrompter:
    """Prompter backed by the whiptail dialog toolkit."""

    def __init__(self, title: str = PROGRAM_NAME):
        self.title = title

    def _base_args(self) -> list[str]:
        return [
            "whiptail",
            "--title",
            self.title,
            "--backtitle",
            self.title,
            "--ok-button",
            "Ok",
            "--cancel-button",
            "Exit",
        ]

    @staticmethod
    def _size(text: str, extra_rows: int = 0) -> tuple[int, int]:
        columns, rows = shutil.get_terminal_size((80, 24))
        width = max(60, min(columns - 4, 120))
        text_rows = sum(1 + len(line) // (width - 4) for line in text.splitlines() or [""])
        height = min(max(rows - 4, 10), text_rows + extra_rows + 7)
        return height, width

    def _run(self, args: list[str], kind: str) -> Optional[str]:
        # whiptail draws on stdout and writes the result to stderr
        log.debug(f"Showing {kind} dialog")
        result = subprocess.run(args, stderr=subprocess.PIPE, text=True, check=False)
        if result.returncode != 0:
            log.debug("Dialog cancelled")
            return None
        return result.stderr.strip()

    def menu(
        self, text: str, items: Sequence[MenuItem], default: Optional[str] = None
    ) -> Optional[str]:
        height, width = self._size(text, extra_rows=len(items))
        list_height = max(1, min(len(items), height - 8))
        args = self._base_args()
        if default is not None:
            args += ["--default-item", default]
        args += ["--menu", text, str(height), str(width), str(list_height)]
        for tag, description in items:
            args += [tag, description]
        return self._run(args, "menu")

    def inputbox(self, text: str, default: str = "") -> Optional[str]:
        height, width = self._size(text, extra_rows=2)
        args = self._base_args() + ["--inputbox", text, str(height), str(width), default]
        return self._run(args, "input")

    def msgbox(self, text: str) -> None:
        height, width = self._size(text)
        args = self._base_args()
        args += ["--msgbox", text, str(height), str(width)]
        self._run(args, "message")
