"""Insert-or-update of ``key=value`` style lines in config files."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from dietpi_prep.logging import LoggerFactory


log = LoggerFactory.for_system()


def config_inject(path: Path, pattern: str, setting: str) -> bool:
    """Set a config line, updating an existing or commented one in place.

    ``pattern`` is a regular expression matched against the start of a line,
    after leading blanks. Resolution order:

    1. The first active line matching pattern is replaced by setting.
    2. Else the first commented line (``#`` or ``;``) matching is replaced.
    3. Else setting is appended to the file.

    The file is created when missing.

    Returns:
        True if the file content changed
    """
    active = re.compile(r"^[ \t]*" + pattern)
    commented = re.compile(r"^[ \t#;]*" + pattern)

    lines = path.read_text(encoding="utf-8").splitlines() if path.exists() else []

    for regex in (active, commented):
        for index, line in enumerate(lines):
            if regex.match(line):
                if line == setting:
                    return False
                lines[index] = setting
                _write(path, lines)
                log.debug(f"Setting in {path} adjusted: {setting}")
                return True

    lines.append(setting)
    _write(path, lines)
    log.debug(f"Setting in {path} added: {setting}")
    return True


def read_value(path: Path, key: str) -> str:
    """Value of the first active ``key=value`` line, empty string if unset."""
    if not path.exists():
        return ""
    regex = re.compile(r"^[ \t]*" + re.escape(key) + r"=(.*)$")
    for line in path.read_text(encoding="utf-8").splitlines():
        match = regex.match(line)
        if match:
            return match.group(1)
    return ""


def replace_in_file(path: Path, pattern: str, replacement: str, *, count: int = 0) -> bool:
    """Regex substitution over a whole file (sed -i 's/.../.../')."""
    text = path.read_text(encoding="utf-8")
    new_text = re.sub(pattern, replacement, text, count=count, flags=re.MULTILINE)
    if new_text == text:
        return False
    path.write_text(new_text, encoding="utf-8")
    return True


def replace_in_lines(
    path: Path, pattern: str, replacement: str, *, address: Optional[str] = None
) -> bool:
    """Substitute the first match on each line (sed -i '/address/s/.../.../').

    Only lines matching the ``address`` regex are edited, when one is given.
    """
    regex = re.compile(pattern)
    selector = re.compile(address) if address else None
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    new_lines = [
        line if selector and not selector.search(line) else regex.sub(replacement, line, count=1)
        for line in lines
    ]
    if new_lines == lines:
        return False
    path.write_text("".join(new_lines), encoding="utf-8")
    return True


def _write(path: Path, lines: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
