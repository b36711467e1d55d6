"""Invocation of the DietPi runtime scripts shipped in the source bundle.

Until ``dietpi-obtain_hw_model`` has generated ``/boot/dietpi/.hw_model``,
these scripts rely on the hardware and distro globals being exported, so
every call passes ``PrepConfig.dietpi_env()``.
"""

from __future__ import annotations

from typing import Mapping, Optional

from dietpi_prep.context import PrepContext
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system.command import run_checked, run_command


log = LoggerFactory.for_system()

GLOBALS = "/boot/dietpi/func/dietpi-globals"
SET_SOFTWARE = "/boot/dietpi/func/dietpi-set_software"
SET_HARDWARE = "/boot/dietpi/func/dietpi-set_hardware"
SET_SWAPFILE = "/boot/dietpi/func/dietpi-set_swapfile"
OBTAIN_HW_MODEL = "/boot/dietpi/func/dietpi-obtain_hw_model"
WIFIDB = "/boot/dietpi/func/dietpi-wifidb"
DRIVE_MANAGER = "/boot/dietpi/dietpi-drive_manager"
SERVICES = "/boot/dietpi/dietpi-services"


def _env(ctx: PrepContext, extra: Optional[Mapping[str, str]]) -> dict[str, str]:
    env = ctx.cfg.dietpi_env()
    if extra:
        env.update(extra)
    return env


def call(
    ctx: PrepContext,
    script: str,
    *args: str,
    required: bool = False,
    description: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> bool:
    """Run a DietPi script.

    Args:
        script: Absolute system path of the script, e.g. SET_SOFTWARE
        required: Raise ``CommandError`` on failure instead of logging it
        env: Additional variables on top of the DietPi globals

    Returns:
        True if the script exited with 0
    """
    argv = [ctx.arg(script), *args]
    if required:
        run_checked(argv, description=description, env=_env(ctx, env), capture=False)
        return True
    result = run_command(argv, env=_env(ctx, env), capture=False)
    if result.returncode != 0:
        log.warning(f"{' '.join(argv)} exited with {result.returncode}, continuing")
        return False
    return True


def set_software(ctx: PrepContext, *args: str, required: bool = False) -> bool:
    return call(ctx, SET_SOFTWARE, *args, required=required)


def set_hardware(ctx: PrepContext, *args: str) -> bool:
    """dietpi-set_hardware calls are never fatal, hardware may simply be absent."""
    return call(ctx, SET_HARDWARE, *args)
