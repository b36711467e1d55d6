"""systemctl wrappers.

Operations here are required ones and raise ``CommandError`` on failure,
except where a ``best_effort`` flag is offered.
"""

from __future__ import annotations

from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system.command import run_checked, run_command


log = LoggerFactory.for_systemd()


def _systemctl(*args: str, best_effort: bool = False) -> bool:
    argv = ["systemctl", *args]
    if best_effort:
        result = run_command(argv)
        if result.returncode != 0:
            log.debug(f"Ignoring failed: {' '.join(argv)}")
        return result.returncode == 0
    run_checked(argv)
    return True


def enable(unit: str) -> None:
    _systemctl("enable", unit)
    log.debug(f"Enabled {unit}")


def disable(*units: str, now: bool = False, best_effort: bool = False) -> bool:
    args = ["disable", *(["--now"] if now else []), *units]
    return _systemctl(*args, best_effort=best_effort)


def mask(unit: str, *, now: bool = False) -> None:
    _systemctl("mask", *(["--now"] if now else []), unit)


def unmask(unit: str) -> None:
    _systemctl("unmask", unit)


def stop(unit: str, *, best_effort: bool = True) -> bool:
    return _systemctl("stop", unit, best_effort=best_effort)


def daemon_reload() -> None:
    _systemctl("daemon-reload")


def unit_known(unit: str) -> bool:
    return run_command(["systemctl", "list-unit-files", unit]).returncode == 0
