"""Serial login console per hardware model family.

All serial consoles are disabled first, which also removes invalid ones of
the donor image. ``SERIAL_CONSOLES`` then decides which console to enable;
the first matching row wins, VMs and containers match none.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import (
    NANOPI_M2,
    ODROID_C1,
    ODROID_C2,
    ODROID_C4,
    ODROID_N2,
    ODROID_XU4,
    ROCK_PI_S,
)
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import runtime
from dietpi_prep.system import systemd
from dietpi_prep.system.config_file import config_inject


log = LoggerFactory.for_prep()


@dataclass(frozen=True)
class SerialConsole:
    """Console to enable for a model family.

    Attributes:
        device: tty name, None to enable all present serial consoles
        legacy_device: used instead of device when the modern kernel is absent
        masked: consoles disabled and masked explicitly
        disable_uart: set enable_uart=0 in /boot/config.txt
    """

    name: str
    guard: Callable[[PrepContext], bool]
    device: Optional[str] = None
    legacy_device: Optional[str] = None
    masked: tuple[str, ...] = ()
    disable_uart: bool = False

    def resolve_device(self, ctx: PrepContext) -> Optional[str]:
        if self.legacy_device and not _modern_amlogic_kernel(ctx):
            return self.legacy_device
        return self.device


def _model_in(*models: int) -> Callable[[PrepContext], bool]:
    return lambda ctx: ctx.cfg.hw_model in models


def _modern_amlogic_kernel(ctx: PrepContext) -> bool:
    return ctx.path("/boot/dietpiEnv.txt").is_file() or ctx.path("/dev/ttyAML0").exists()


SERIAL_CONSOLES: tuple[SerialConsole, ...] = (
    # serial0 links to the model's primary console, converted on first boot
    SerialConsole(
        "Raspberry Pi",
        lambda ctx: ctx.cfg.is_rpi,
        device="serial0",
        masked=("ttyAMA0", "ttyS0"),
        disable_uart=True,
    ),
    SerialConsole("Odroid C1", _model_in(ODROID_C1), device="ttyAML0"),
    SerialConsole("Odroid XU4", _model_in(ODROID_XU4), device="ttySAC2"),
    SerialConsole(
        "Odroid C2/N2/C4",
        _model_in(ODROID_C2, ODROID_N2, ODROID_C4),
        device="ttyAML0",
        legacy_device="ttyS0",
    ),
    SerialConsole("NanoPi M2/T2", _model_in(NANOPI_M2), device="ttyAMA0"),
    SerialConsole("ROCK Pi S", _model_in(ROCK_PI_S), device="ttyS0"),
    SerialConsole("Physical device", lambda ctx: ctx.cfg.is_physical),
)


def select_console(
    ctx: PrepContext, consoles: Iterable[SerialConsole] = SERIAL_CONSOLES
) -> Optional[SerialConsole]:
    for console in consoles:
        if console.guard(ctx):
            return console
    return None


def apply_console(ctx: PrepContext, console: SerialConsole) -> None:
    if console.disable_uart:
        config_inject(ctx.path("/boot/config.txt"), "enable_uart=", "enable_uart=0")

    device = console.resolve_device(ctx)
    log.info(f"Enabling serial console for {console.name}: {device or 'all present'}")
    runtime.set_hardware(ctx, "serialconsole", "enable", *([device] if device else []))

    # Independent of the serial devices currently available
    for tty in console.masked:
        runtime.set_hardware(ctx, "serialconsole", "disable", tty)
        systemd.mask(f"serial-getty@{tty}")


def run(ctx: PrepContext) -> Optional[SerialConsole]:
    log.info("Configuring serial login consoles")
    runtime.set_hardware(ctx, "serialconsole", "disable")

    console = select_console(ctx)
    if console is not None:
        apply_console(ctx, console)
    if ctx.cfg.is_physical:
        config_inject(
            ctx.path("/boot/dietpi.txt"),
            "CONFIG_SERIAL_CONSOLE_ENABLE=",
            "CONFIG_SERIAL_CONSOLE_ENABLE=1",
        )
    return console
