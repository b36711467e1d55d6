"""Last cleanup before the disk is imaged or booted into DietPi."""

from __future__ import annotations

from pathlib import Path

from dietpi_prep.context import PrepContext
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import runtime
from dietpi_prep.steps.deploy import IMAGE_VERSION_FILE, VERSION_FILE
from dietpi_prep.system import apt, fs, mounts, systemd
from dietpi_prep.system.command import run_command


log = LoggerFactory.for_prep()

IMAGER_HINT = (
    'bash -c "$(curl -sSfL https://raw.githubusercontent.com/MichaIng/DietPi/master/.meta/dietpi-imager)"'
)

PACKAGE_DIR = Path(__file__).resolve().parents[1]

TMP_ROOT = "/mnt/tmp_root"
# Hidden below tmpfs and pseudo filesystem mounts
MOUNT_SHADOWED_DIRS = ("dev", "proc", "run", "sys", "tmp", "var/log")

HOME_LEFTOVERS = (
    ".bash_history",
    ".nano_history",
    ".wget-hsts",
    ".cache",
    ".local",
    ".config",
    ".gnupg",
    ".viminfo",
    ".dbus",
    ".gconf",
    ".nano",
    ".vim",
    ".zshrc",
    ".oh-my-zsh",
)
MISC_LEFTOVER_GLOBS = (
    "etc/*-",
    "var/cache/debconf/*-old",
    "var/lib/dpkg/*-old",
)


def reset_flags(ctx: PrepContext) -> None:
    """Drop flag files generated during PREP and mark the next boot as the first one."""
    log.info("Resetting DietPi auto-generated settings and flag files")
    fs.remove_glob(ctx.path("/boot/dietpi"), ".??*")
    fs.copy_file(ctx.path(IMAGE_VERSION_FILE), ctx.path(VERSION_FILE))

    log.info("Set init .install_stage to -1 (first boot)")
    fs.write_file(ctx.path("/boot/dietpi/.install_stage"), "-1\n")

    log.info("Writing PREP information to file")
    cfg = ctx.cfg
    fs.write_file(ctx.path("/boot/dietpi/.prep_info"), f"{cfg.image_creator}\n{cfg.preimage_info}\n")


def reset_apt_cache(ctx: PrepContext) -> None:
    """Restore the regular APT cache location, then disable and clear it."""
    log.info("Disabling and clearing APT cache")
    fs.remove(ctx.path("/etc/apt/apt.conf.d/98dietpi-prep"))
    runtime.set_software(ctx, "apt-cache", "cache", "disable")
    runtime.set_software(ctx, "apt-cache", "clean")


def enable_first_boot() -> None:
    systemd.enable("dietpi-fs_partition_resize")
    log.success("Enabled automated partition and file system resize for first boot")
    systemd.enable("dietpi-firstboot")
    log.success("Enabled first boot installation process")


def clear_shadowed_dirs(ctx: PrepContext) -> None:
    """Remove files written below mount points before the mounts were in place."""
    log.info("Clearing items below tmpfs mount points")
    tmp_root = ctx.path(TMP_ROOT)
    tmp_root.mkdir(parents=True, exist_ok=True)
    mounts.mount(mounts.source_of(ctx.arg("/")), str(tmp_root))
    try:
        for directory in MOUNT_SHADOWED_DIRS:
            fs.clear_dir(tmp_root / directory)
    finally:
        mounts.umount(str(tmp_root))
    tmp_root.rmdir()


def clear_leftovers(ctx: PrepContext) -> None:
    log.info("Clearing lost+found")
    fs.clear_dir(ctx.path("/lost+found"))
    log.info("Clearing DietPi logs, written during PREP")
    fs.clear_dir(ctx.path("/var/tmp/dietpi/logs"))

    clear_shadowed_dirs(ctx)

    log.info("Running general cleanup of misc files")
    homes = [ctx.path("/root"), *sorted(ctx.path("/home").glob("*"))]
    for home in homes:
        for name in HOME_LEFTOVERS:
            fs.remove(home / name)
    for pattern in MISC_LEFTOVER_GLOBS:
        fs.remove_glob(ctx.root_dir, pattern)
    fs.clear_dir(ctx.path("/var/lib/dhcp"))


def remove_script(ctx: PrepContext) -> bool:
    """Delete the launcher script PREP was started from, unless asked to keep it."""
    script = ctx.script_path
    if ctx.keep_script or script is None or not script.is_file():
        return False
    if PACKAGE_DIR in script.resolve().parents:
        log.warning(f"Not removing {script}: it is part of the installed package")
        return False
    fs.remove(script)
    log.info(f"Removed {script}")
    return True


def log_summary(ctx: PrepContext) -> None:
    uname = (run_command(["uname", "-a"]).stdout or "").strip()
    log.info(f"The used kernel version is:\n\t- {uname}")

    kernel_packages = [
        name for name in apt.installed_packages() if name.startswith(("linux-image-", "linux-dtb-"))
    ]
    if kernel_packages:
        log.info(f"The following kernel DEB packages have been found: {' '.join(kernel_packages)}")

    listing = run_command(["ls", "-lAh", ctx.arg("/boot"), ctx.arg("/lib/modules")]).stdout or ""
    log.info(f"The following kernel images and modules have been found:\n{listing}")

    log.success(
        "Completed, disk can now be saved to .img for later use, or, reboot system to start first run of DietPi."
    )
    log.success(
        'To create an .img file, you can "poweroff" and run the following command '
        f"from the host/external DietPi system:\n\t- {IMAGER_HINT}"
    )


def run(ctx: PrepContext) -> None:
    reset_flags(ctx)
    reset_apt_cache(ctx)
    enable_first_boot()
    clear_leftovers(ctx)
    remove_script(ctx)
    run_command(["sync"])
    log_summary(ctx)
