"""Removal of a previously installed DietPi instance."""

from __future__ import annotations

from dietpi_prep.context import PrepContext
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system import fs, mounts, systemd
from dietpi_prep.system.command import run_command


log = LoggerFactory.for_prep()

# (unit file that must exist, unit to stop)
STOP_UNITS = (
    ("etc/systemd/system/dietpi-ramlog.service", "dietpi-ramlog"),
    # Includes (Pre|Post)Boot on pre-v6.29 systems
    ("etc/systemd/system/dietpi-ramdisk.service", "dietpi-ramdisk"),
    ("etc/systemd/system/dietpi-preboot.service", "dietpi-preboot"),
)

LEFTOVER_GLOBS = (
    "boot/*dietpi*",
    "mnt/*dietpi*",
    "etc/*dietpi*",
    "var/lib/*dietpi*",
    "var/tmp/*dietpi*",
    "run/*dietpi*",
    "etc/cron.*/*dietpi*",
    "etc/bashrc.d/*dietpi*",
    "etc/profile.d/*dietpi*",
    "etc/sysctl.d/*dietpi*",
    "etc/network/if-up.d/*dietpi*",
    "etc/udev/rules.d/*dietpi*",
)

# Pre-v6.32 APT config names
LEGACY_FILES = (
    "etc/apt/apt.conf.d/99-dietpi-norecommends",
    "etc/apt/apt.conf.d/98-dietpi-no_translations",
    "etc/apt/apt.conf.d/99-dietpi-forceconf",
    "boot/Automation_Format_My_Usb_Drive",
)


def dietpi_present(ctx: PrepContext) -> bool:
    return ctx.path("/DietPi").is_dir() or ctx.path("/boot/dietpi").is_dir()


def stop_services(ctx: PrepContext) -> None:
    services = ctx.path("/boot/dietpi/dietpi-services")
    if services.is_file():
        run_command([str(services), "stop"])
    for unit_file, unit in STOP_UNITS:
        if ctx.path(unit_file).is_file():
            systemd.stop(unit)


def remove_units(ctx: PrepContext) -> None:
    for unit in sorted(ctx.path("/etc/systemd/system").glob("dietpi-*")):
        if unit.is_file() and not unit.is_symlink():
            systemd.disable(unit.name, now=True, best_effort=True)
        fs.remove(unit)


def remove_data(ctx: PrepContext) -> None:
    # Pre-v6.29 systems mounted a tmpfs on /DietPi
    legacy_mount = ctx.arg("/DietPi")
    if mounts.is_mounted(legacy_mount):
        run_command(["umount", "-R", legacy_mount])
    fs.remove(ctx.path("/DietPi"))

    for pattern in LEFTOVER_GLOBS:
        fs.remove_glob(ctx.root_dir, pattern)
    for path in LEGACY_FILES:
        fs.remove(ctx.path(path))


def run(ctx: PrepContext) -> bool:
    """Uninstall a previous DietPi instance; returns False when none was found."""
    if not dietpi_present(ctx):
        log.info("No DietPi system found, skipping old instance uninstall...")
        return False

    log.info("DietPi system found, uninstalling old instance...")
    stop_services(ctx)
    remove_units(ctx)
    remove_data(ctx)
    return True
