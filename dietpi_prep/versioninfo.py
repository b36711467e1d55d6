"""Reading and writing DietPi version metadata.

The source bundle ships ``.update/version``, a shell fragment of plain and
indexed-array assignments::

    G_REMOTE_VERSION_CORE=8
    G_LIVE_PATCH_DESC=(
        [0]='Fix something'
    )
    G_LIVE_PATCH_COND[1]='[[ -f /etc/foo ]]'

Values are parsed with shell quoting rules but never evaluated.
"""

from __future__ import annotations

import re
import shlex
from pathlib import Path
from typing import Union

from dietpi_prep.domain.models import GitSource, LivePatch, LivePatchStatus, VersionRecord
from dietpi_prep.exceptions import DeploymentError
from dietpi_prep.system import fs
from dietpi_prep.system.config_file import config_inject


ShellValue = Union[str, dict[int, str]]

_ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)(?:\[(\d+)\])?=(.*)$", re.DOTALL)
_ARRAY_ENTRY = re.compile(r"^\[(\d+)\]=(.*)$", re.DOTALL)


def _unquote(raw: str) -> str:
    tokens = shlex.split(raw, comments=True)
    return "".join(tokens)


def _logical_lines(text: str) -> list[str]:
    """Join physical lines until their shell quoting is balanced."""
    lines: list[str] = []
    buffer = ""
    for line in text.splitlines():
        buffer = f"{buffer}\n{line}" if buffer else line
        try:
            shlex.split(buffer, comments=True)
        except ValueError:
            continue
        lines.append(buffer.strip())
        buffer = ""
    if buffer:
        raise ValueError(f"Unterminated quoting in: {buffer!r}")
    return lines


def parse_shell_assignments(text: str) -> dict[str, ShellValue]:
    """Parse plain and indexed-array shell assignments into a dict."""
    values: dict[str, ShellValue] = {}
    array_name = None

    for line in _logical_lines(text):
        if not line or line.startswith("#"):
            continue

        if array_name is not None:
            if line.startswith(")"):
                array_name = None
                continue
            entry = _ARRAY_ENTRY.match(line)
            if entry:
                array = values.setdefault(array_name, {})
                if isinstance(array, dict):
                    array[int(entry.group(1))] = _unquote(entry.group(2))
            continue

        match = _ASSIGNMENT.match(line)
        if not match:
            continue
        name, index, raw = match.groups()

        if index is not None:
            array = values.setdefault(name, {})
            if isinstance(array, dict):
                array[int(index)] = _unquote(raw)
        elif raw.startswith("("):
            inline = raw[1:].strip()
            array = {}
            if inline.endswith(")"):
                for token in shlex.split(inline[:-1], comments=True):
                    entry = _ARRAY_ENTRY.match(token)
                    if entry:
                        array[int(entry.group(1))] = entry.group(2)
            else:
                array_name = name
            values[name] = array
        else:
            values[name] = _unquote(raw)

    return values


def _int_value(values: dict[str, ShellValue], name: str) -> int:
    value = values.get(name)
    if not isinstance(value, str) or not value.lstrip("-").isdigit():
        raise DeploymentError(f"Invalid or missing {name} in version file")
    return int(value)


def _array(values: dict[str, ShellValue], name: str) -> dict[int, str]:
    value = values.get(name)
    return value if isinstance(value, dict) else {}


def load_version_file(path: Path, git: GitSource) -> tuple[VersionRecord, list[LivePatch]]:
    """Read the version record and the live patch registry of a source bundle."""
    if not path.is_file():
        raise DeploymentError(f"Version file not found: {path}", str(path))
    try:
        values = parse_shell_assignments(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise DeploymentError(f"Unable to parse {path}: {e}", str(path)) from e

    record = VersionRecord(
        core=_int_value(values, "G_REMOTE_VERSION_CORE"),
        sub=_int_value(values, "G_REMOTE_VERSION_SUB"),
        rc=_int_value(values, "G_REMOTE_VERSION_RC"),
        branch=git.branch,
        owner=git.owner,
    )

    descriptions = _array(values, "G_LIVE_PATCH_DESC")
    conditions = _array(values, "G_LIVE_PATCH_COND")
    actions = _array(values, "G_LIVE_PATCH")
    patches = [
        LivePatch(
            index=index,
            description=descriptions.get(index, ""),
            condition=conditions.get(index, "false"),
            action=actions[index],
        )
        for index in sorted(actions)
    ]
    return record, patches


def write_version_file(path: Path, record: VersionRecord) -> None:
    fs.write_file(path, record.to_shell())


def store_patch_status(path: Path, patch: LivePatch) -> None:
    """Persist the status of one live patch into a .version file."""
    config_inject(
        path,
        rf"G_LIVE_PATCH_STATUS\[{patch.index}\]=",
        f"G_LIVE_PATCH_STATUS[{patch.index}]='{patch.status.value}'",
    )


def read_patch_statuses(path: Path) -> dict[int, LivePatchStatus]:
    values = parse_shell_assignments(path.read_text(encoding="utf-8"))
    return {
        index: LivePatchStatus(status)
        for index, status in _array(values, "G_LIVE_PATCH_STATUS").items()
    }
