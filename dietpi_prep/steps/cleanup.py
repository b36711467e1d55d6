"""Cleanup and hardening of the donor system.

Leftovers of the donor image are described by ``CLEANUP_TABLE``. Entries are
independent of each other, so the table can be applied in any order; an entry
that needs an unmount before the delete carries that itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import BOOKWORM, BULLSEYE
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import runtime, templates
from dietpi_prep.system import accounts, apt, fs, mounts, systemd
from dietpi_prep.system.command import run_checked, run_command


log = LoggerFactory.for_prep()

BOOT_LOGO_URL = "https://github.com/{owner}/DietPi/raw/{branch}/.meta/images/dietpi-logo_boot.bmp"

DONOR_USERS = (
    "pi",
    "test",
    "odroid",
    "rock64",
    "rock",
    "linaro",
    # Recreated below
    "dietpi",
    "openmediavault-webgui",
    "admin",
    "fa",
    "colord",
    "saned",
)
DONOR_GROUPS = ("openmediavault-config", "openmediavault-engined", "openmediavault-webgui")

# Restored by reinstalling base-files
BASE_FILES = (
    "/etc/motd",
    "/etc/profile",
    "/etc/update-motd.d",
    "/etc/issue",
    "/etc/issue.net",
    "/root",
    "/home",
    "/media",
    "/var/mail",
)

THIRD_PARTY_SERVICES = (
    # Meveric
    "cpu_governor",
    # RPi
    "sshswitch",
    # Radxa
    "rockchip-adbd",
    "rtl8723ds-btfw-load",
    "install-module-hci-uart",
    # Armbian
    "chrony",
    "chronyd",
    "armbian-resize-filesystem",
    "bootsplash-hide-when-booted",
    "bootsplash-show-on-shutdown",
    "armbian-firstrun-config",
    "bootsplash-ask-password-console",
)
UNIT_DIRS = ("etc", "lib", "usr/lib", "usr/local/lib")

SYSV_SERVICES = (
    "fake-hwclock",
    "haveged",
    "hwclock.sh",
    "networking",
    "udev",
    "cron",
    "console-setup.sh",
    "sudo",
    "cpu_governor",
    "keyboard-setup.sh",
    "kmod",
    "procps",
)

DPKG_LEFTOVER_SUFFIXES = (".dpkg-dist", ".dpkg-old", ".dpkg-new", ".dpkg-bak")

USERDATA_DIRS = ("/mnt/dietpi_userdata", "/mnt/samba", "/mnt/ftp_client", "/mnt/nfs_client")

DIETPI_SERVICES = ("dietpi-ramlog", "dietpi-preboot", "dietpi-postboot", "dietpi-kill_ssh")

# Distro ID: the gcc base package that belongs to it
CURRENT_GCC_BASE = {BULLSEYE.id: "gcc-10-", BOOKWORM.id: "gcc-12-"}


# ==============================================================================
# Removal table
# ==============================================================================


@dataclass(frozen=True)
class CleanupEntry:
    """A path glob (relative to the root) left behind by some donor image."""

    pattern: str
    vendor: str
    contents_only: bool = False
    unmount: bool = False


CLEANUP_TABLE: tuple[CleanupEntry, ...] = (
    CleanupEntry("selinux", "Debian"),
    CleanupEntry("var/cache/apparmor", "Debian"),
    CleanupEntry("var/lib/udisks2", "Debian"),
    CleanupEntry("var/lib/bluetooth", "Debian"),
    CleanupEntry("var/lib/dhcp", "Debian", contents_only=True),
    CleanupEntry("var/lib/misc/*.leases", "Debian"),
    CleanupEntry("var/backups", "Debian", contents_only=True),
    CleanupEntry("etc/*.org", "Debian"),
    CleanupEntry("etc/fs.resized", "Debian"),
    CleanupEntry("var/www", "Debian", contents_only=True),
    # Source code and Linux headers
    CleanupEntry("usr/src", "Debian", contents_only=True),
    CleanupEntry("usr/share/calendar", "Debian"),
    CleanupEntry("usr/share/fonts", "Debian"),
    CleanupEntry("usr/share/icons", "Debian"),
    # Desktop images
    CleanupEntry("usr/lib/firefox-esr", "Armbian"),
    CleanupEntry("etc/chromium.d", "Armbian"),
    CleanupEntry("etc/lightdm", "Armbian"),
    CleanupEntry("var/lib/apt-xapian-index", "Armbian"),
    CleanupEntry("var/log.hdd", "Armbian", unmount=True),
    CleanupEntry("etc/armbian-image-release", "Armbian"),
    CleanupEntry("boot/armbian_first_run.txt.template", "Armbian"),
    CleanupEntry("etc/armbianmonitor", "Armbian"),
    CleanupEntry("etc/default/armbian*", "Armbian"),
    CleanupEntry("etc/logrotate.d/armbian*", "Armbian"),
    CleanupEntry("lib/firmware/bootsplash.armbian", "Armbian"),
    CleanupEntry("etc/systemd/system/sysinit.target.wants/bootsplash-ask-password-console.path", "Armbian"),
    CleanupEntry("etc/openmediavault", "OpenMediaVault"),
    CleanupEntry("etc/cron.*/openmediavault*", "OpenMediaVault"),
    CleanupEntry("usr/sbin/omv-*", "OpenMediaVault"),
    CleanupEntry("usr/local/sbin/setup-odroid", "Meveric"),
    CleanupEntry("installed-packages*.txt", "Meveric"),
    CleanupEntry("etc/profile.d/wifi-country.sh", "Raspberry Pi OS"),
    CleanupEntry("etc/sudoers.d/010_pi-nopasswd", "Raspberry Pi OS"),
    CleanupEntry("etc/systemd/system/dhcpcd.service.d", "Raspberry Pi OS"),
    # Use /var/lib/dietpi/postboot.d instead
    CleanupEntry("etc/rc.local", "Raspberry Pi OS"),
    CleanupEntry("etc/systemd/system/rc-local.service.d", "Raspberry Pi OS"),
    CleanupEntry("etc/systemd/system/rc.local.service.d", "Raspberry Pi OS"),
    # RPi firstrun scripts, relevant when run from a chroot or container
    CleanupEntry("etc/init.d/resize2fs_once", "Raspberry Pi OS"),
    # Autologin on any TTY
    CleanupEntry("etc/systemd/system/*getty@*.service.d/*autologin*.conf", "Raspberry Pi OS"),
    CleanupEntry("etc/cron.d/make_nas_processes_faster", "FriendlyELEC"),
    CleanupEntry("etc/staff-group-for-usr-local", "Debian"),
)


def apply_entry(root: Path, entry: CleanupEntry) -> list[Path]:
    """Remove whatever an entry matches below root; absent paths are fine."""
    removed = []
    for path in sorted(root.glob(entry.pattern)):
        if entry.unmount and mounts.is_mounted(str(path)):
            run_command(["umount", str(path)])
        if entry.contents_only:
            removed += fs.clear_dir(path)
        elif fs.remove(path):
            removed.append(path)
    return removed


def apply_cleanup_table(root: Path, entries: Iterable[CleanupEntry] = CLEANUP_TABLE) -> list[Path]:
    removed = []
    for entry in entries:
        matched = apply_entry(root, entry)
        if matched:
            log.debug(f"Removed {len(matched)} {entry.vendor} leftover(s): {entry.pattern}")
        removed += matched
    return removed


# ==============================================================================
# Steps
# ==============================================================================


def purge_old_gcc_base(ctx: PrepContext) -> None:
    """Remove gcc-*-base packages of older releases, e.g. accumulated on Raspberry Pi OS."""
    keep = CURRENT_GCC_BASE.get(ctx.cfg.distro.id)
    if keep is None:
        return
    stale = [name for name in apt.selections(["gcc-*-base"]) if not name.startswith(keep)]
    if stale:
        apt.purge(stale)


def restore_base_files(ctx: PrepContext) -> None:
    log.info("Restoring default base files")
    for path in BASE_FILES:
        fs.remove(ctx.path(path))
    apt.install(["base-files"], reinstall=True, cwd=ctx.work_dir)
    run_checked([ctx.arg("/var/lib/dpkg/info/base-files.postinst"), "configure"])
    apt.clean()


def reset_accounts(ctx: PrepContext) -> None:
    log.info("Deleting list of known users and groups, not required by DietPi")
    for user in DONOR_USERS:
        accounts.delete_user(user)
    for group in DONOR_GROUPS:
        accounts.delete_group(group)

    runtime.call(
        ctx, runtime.SET_SOFTWARE, "useradd", "dietpi", required=True, description="Creating DietPi user account"
    )
    accounts.set_password("root", "dietpi")


def remove_dpkg_leftovers(ctx: PrepContext) -> None:
    """Unused config files of upgraded or removed packages below /etc."""
    for path in sorted(ctx.path("/etc").rglob("?*.dpkg-*")):
        if path.name.endswith(DPKG_LEFTOVER_SUFFIXES):
            fs.remove(path)


def unit_locations(ctx: PrepContext, name: str) -> list[Path]:
    """Existing init script and systemd unit paths for a service name."""
    candidates = [ctx.path(f"/etc/init.d/{name}")]
    for unit_dir in UNIT_DIRS:
        base = ctx.path(f"/{unit_dir}/systemd/system")
        candidates += [base / f"{name}.service", base / f"{name}.service.d"]
        candidates += sorted(base.glob(f"*.wants/{name}.service"))
    return [path for path in candidates if path.exists() or path.is_symlink()]


def remove_third_party_services(ctx: PrepContext) -> None:
    """Disable third party units; mask those owned by a package, delete the rest."""
    for name in THIRD_PARTY_SERVICES:
        for path in unit_locations(ctx, name):
            if path.is_file():
                systemd.disable(path.name, now=True)
            if apt.owns_path(str(path)):
                systemd.mask(path.name)
            else:
                fs.remove(path)


def remove_sysv_entries() -> None:
    for name in SYSV_SERVICES:
        run_checked(["update-rc.d", "-f", name, "remove"])


def reset_usr_local(ctx: PrepContext) -> None:
    log.info("Setting modern /usr/local permissions")
    usr_local = ctx.path("/usr/local")
    usr_local.mkdir(parents=True, exist_ok=True)
    run_checked(["chown", "-R", "root:root", str(usr_local)])
    fs.chmod_tree(usr_local, dir_mode=0o755, file_mode=0o755)


def refresh_boot_logo(ctx: PrepContext) -> None:
    logo = ctx.path("/boot/boot.bmp")
    if logo.is_file():
        git = ctx.cfg.git
        run_checked(
            ["curl", "-sSfL", BOOT_LOGO_URL.format(owner=git.owner, branch=git.branch), "-o", str(logo)],
            description="Downloading DietPi boot logo",
        )


def setup_bash(ctx: PrepContext) -> None:
    """Source /etc/bashrc.d/ in interactive non-login shells, with bash-completion."""
    bashrc = ctx.path("/etc/bash.bashrc")
    lines = bashrc.read_text(encoding="utf-8").splitlines() if bashrc.exists() else []
    lines = [line for line in lines if "/etc/bashrc.d/" not in line]
    lines.append(templates.BASHRC_D_HOOK)
    fs.write_file(bashrc, "\n".join(lines) + "\n")

    fs.symlink("/etc/profile.d/bash_completion.sh", ctx.path("/etc/bashrc.d/dietpi-bash_completion.sh"))
    run_checked(["chmod", "4755", ctx.arg("/usr/bin/sudo")], description='Setting setuid bit for "sudo" executable')


def create_dietpi_dirs(ctx: PrepContext) -> None:
    log.info("Generating DietPi directories")
    fs.make_dirs(
        [
            ctx.path("/var/lib/dietpi/postboot.d"),
            ctx.path("/var/lib/dietpi/dietpi-software/installed"),
            ctx.path("/var/tmp/dietpi/logs/dietpi-ramlog_store"),
        ]
    )
    userdata = [ctx.path(path) for path in USERDATA_DIRS]
    fs.make_dirs(userdata)
    run_checked(["chown", "-R", "dietpi:dietpi", *map(str, userdata)])
    for path in userdata:
        fs.chmod_tree(path, dir_mode=0o775)


def enable_dietpi_services() -> None:
    log.info("Enabling DietPi services")
    for unit in DIETPI_SERVICES:
        systemd.enable(unit)


def run(ctx: PrepContext) -> None:
    purge_old_gcc_base(ctx)
    restore_base_files(ctx)
    reset_accounts(ctx)

    log.info("Removing misc files/folders/services, not required by DietPi")
    apply_cleanup_table(ctx.root_dir)
    remove_dpkg_leftovers(ctx)
    remove_third_party_services(ctx)
    remove_sysv_entries()

    reset_usr_local(ctx)
    refresh_boot_logo(ctx)
    setup_bash(ctx)
    create_dietpi_dirs(ctx)
    enable_dietpi_services()
