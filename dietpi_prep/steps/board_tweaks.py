"""Architecture and board specific tweaks, legacy cgroups and GRUB."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import (
    AARCH64,
    NANOPI_R1,
    ODROID_C1,
    ODROID_C2,
    ODROID_C4,
    ODROID_N2,
    RADXA_ZERO,
    ROCK_PI_S,
    SPARKY_SBC,
    X86_64,
)
from dietpi_prep.exceptions import PackageError
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import runtime, templates
from dietpi_prep.system import accounts, apt, fs, mounts, systemd
from dietpi_prep.system.command import command_exists, run_checked, run_command
from dietpi_prep.system.config_file import config_inject, read_value, replace_in_lines


log = LoggerFactory.for_prep()

CGROUP_V1_ARG = "systemd.unified_cgroup_hierarchy=0"

SPARKY_BASE_URL = "https://raw.githubusercontent.com/sparky-sbc/sparky-test/master"
SPARKY_KERNEL = "3.10.38"
SPARKY_UIMAGE = ("dragon_fly_check/uImage", "/boot/uImage")
# (URL path, target)
SPARKY_DRIVERS = (
    ("dsd-marantz/snd-usb-audio.ko", f"/lib/modules/{SPARKY_KERNEL}/kernel/sound/usb/snd-usb-audio.ko"),
    ("sparky-eth/ethernet.ko", f"/lib/modules/{SPARKY_KERNEL}/kernel/drivers/net/ethernet/acts/ethernet.ko"),
)
SPARKY_ETHERNET_SCRIPT = "/var/lib/dietpi/services/dietpi-sparkysbc_ethernet.sh"

RPI_GROUPS = ("spi", "i2c", "gpio")
USBRIDGESIG_HOOK = "/etc/kernel/postinst.d/dietpi-USBridgeSig"
LIBRASPBERRYPI_DIR = "/usr/lib/arm-linux-gnueabihf"

GRUB_SETTINGS = (
    ("GRUB_CMDLINE_LINUX_DEFAULT=", 'GRUB_CMDLINE_LINUX_DEFAULT="consoleblank=0"'),
    ("GRUB_CMDLINE_LINUX=", 'GRUB_CMDLINE_LINUX="net.ifnames=0"'),
    ("GRUB_TIMEOUT=", "GRUB_TIMEOUT=0"),
)
EFI_FALLBACK_LOADER = "EFI/boot/bootx64.efi"


# ==============================================================================
# Architecture
# ==============================================================================


def apply_arch_tweaks(ctx: PrepContext) -> None:
    log.info("Applying architecture-specific tweaks")
    arch = ctx.cfg.arch
    if arch == X86_64:
        run_checked(
            ["dpkg", "--remove-architecture", "i386"],
            description="Removing foreign i386 DPKG architecture",
        )
        if apt.is_installed("grub-pc"):
            run_checked(
                ["debconf-set-selections"],
                input="grub-pc grub-pc/install_devices multiselect /dev/sda\n",
            )
        if command_exists("update-tirfs"):
            run_checked(["update-tirfs"], capture=False)
        elif command_exists("update-initramfs"):
            run_checked(["update-initramfs", "-u"], capture=False)
    elif arch == AARCH64:
        run_checked(
            ["dpkg", "--remove-architecture", "armhf"],
            description="Removing foreign armhf DPKG architecture",
        )


# ==============================================================================
# Boards
# ==============================================================================


def configure_odroid_env(ctx: PrepContext) -> None:
    """Root device of the modern single partition Odroid image."""
    env = ctx.path("/boot/dietpiEnv.txt")
    root = ctx.arg("/")
    config_inject(env, "rootdev=", f"rootdev=UUID={mounts.root_uuid(root)}")
    config_inject(env, "rootfstype=", f"rootfstype={mounts.fstype_of(root)}")


def configure_sparky(ctx: PrepContext) -> None:
    """Latest kernel and drivers, module blacklists and the Ethernet toggle."""
    log.info("Installing Sparky SBC kernel and drivers")
    url_path, target = SPARKY_UIMAGE
    _download(ctx, f"{SPARKY_BASE_URL}/{url_path}", target)

    archive = f"{SPARKY_KERNEL}.bz2"
    run_checked(
        ["curl", "-sSfLO", f"{SPARKY_BASE_URL}/dragon_fly_check/{archive}"],
        cwd=ctx.work_dir,
        description=f"Downloading {archive}",
    )
    run_checked(["tar", "-xf", archive, "-C", ctx.arg("/lib/modules/")], cwd=ctx.work_dir)
    fs.remove(ctx.work_dir / archive)
    for url_path, target in SPARKY_DRIVERS:
        _download(ctx, f"{SPARKY_BASE_URL}/{url_path}", target)

    fs.write_file(ctx.path("/boot/uenv.txt"), templates.SPARKY_UENV)
    fs.write_file(
        ctx.path("/etc/modprobe.d/dietpi-disable_sparkysbc_touchscreen.conf"),
        templates.SPARKY_BLACKLIST_TOUCHSCREEN,
    )
    fs.write_file(
        ctx.path("/etc/modprobe.d/dietpi-disable_sparkysbc_gpu.conf"),
        templates.SPARKY_BLACKLIST_GPU,
    )
    # Performance governor for stability
    config_inject(ctx.path("/boot/dietpi.txt"), "CONFIG_CPU_GOVERNOR=", "CONFIG_CPU_GOVERNOR=performance")

    fs.write_file(ctx.path(SPARKY_ETHERNET_SCRIPT), templates.SPARKY_ETHERNET_SCRIPT, mode=0o755)
    fs.write_file(
        ctx.path("/etc/systemd/system/dietpi-sparkysbc_ethernet.service"),
        templates.SPARKY_ETHERNET_SERVICE,
    )
    systemd.enable("dietpi-sparkysbc_ethernet")


def install_usbridgesig_hook(ctx: PrepContext) -> None:
    """ARM-optimised ASIX driver for the Allo USBridgeSig, rebuilt on kernel upgrades."""
    hook = ctx.path(USBRIDGESIG_HOOK)
    # Without the CM3+ revision check, so that it applies regardless of the current host
    fs.write_file(hook, templates.USBRIDGESIG_HOOK.replace("\ngrep", "\n#grep"), mode=0o755)
    for modules in sorted(ctx.path("/lib/modules").glob("*-v7+")):
        if modules.is_dir():
            run_command([str(hook), modules.name], capture=False)
    fs.write_file(hook, templates.USBRIDGESIG_HOOK, mode=0o755)


def link_libraspberrypi(ctx: PrepContext) -> None:
    """Symlinks from old to new library names for software built against older libraspberrypi0."""
    log.info("Applying workaround for compiled against older libraspberrypi0")
    prefix = f"{LIBRASPBERRYPI_DIR}/"
    for name in apt.package_files("libraspberrypi0"):
        if not (name.startswith(prefix) and name.endswith(".so.0")):
            continue
        library = ctx.path(name)
        link = library.with_name(library.name[: -len(".0")])
        if not library.is_file() or link.is_file():
            continue
        fs.symlink(library.name, link)


def configure_rpi(ctx: PrepContext) -> None:
    for group in RPI_GROUPS:
        accounts.add_system_group(group)

    # Minimal GPU memory split for server usage
    runtime.set_hardware(ctx, "gpumemsplit", "16")
    runtime.set_hardware(ctx, "rpi-camera", "disable")
    runtime.set_hardware(ctx, "rpi-codec", "disable")

    install_usbridgesig_hook(ctx)
    if ctx.cfg.arch.id < AARCH64.id:
        link_libraspberrypi(ctx)


def configure_radxa_zero(ctx: PrepContext) -> None:
    # schedutil currently causes kernel errors and hangs
    config_inject(ctx.path("/boot/dietpi.txt"), "CONFIG_CPU_GOVERNOR=", "CONFIG_CPU_GOVERNOR=ondemand")
    uenv = ctx.path("/boot/uEnv.txt")
    if uenv.is_file():
        config_inject(uenv, "verbosity=", "verbosity=4")
        # Enabled on Docker install instead
        config_inject(uenv, "docker_optimizations=", "docker_optimizations=off")


def configure_nanopi_r1(ctx: PrepContext) -> None:
    """Enable the second USB port."""
    env = ctx.path("/boot/armbianEnv.txt")
    current = read_value(env, "overlays").strip()
    if "usbhost2" not in current:
        config_inject(env, "overlays=", "overlays=" + " ".join(filter(None, (current, "usbhost2"))))


def configure_armbian_env(ctx: PrepContext) -> None:
    env = ctx.path("/boot/armbianEnv.txt")
    # The boot splash logo has been removed during cleanup
    config_inject(env, "bootlogo=", "bootlogo=false")
    # Reduced to 1 on most Armbian images
    config_inject(env, "verbosity=", "verbosity=4")
    config_inject(env, "docker_optimizations=", "docker_optimizations=off")


def apply_board_tweaks(ctx: PrepContext) -> None:
    log.info("Applying board-specific tweaks")
    cfg = ctx.cfg
    model = cfg.hw_model
    if cfg.is_physical:
        fs.write_file(ctx.path("/etc/hdparm.conf"), templates.HDPARM_CONF)
        log.success("Configured hdparm")

    if model in (ODROID_C2, ODROID_N2, ODROID_C4) and ctx.path("/boot/dietpiEnv.txt").is_file():
        configure_odroid_env(ctx)
    elif model == SPARKY_SBC:
        configure_sparky(ctx)
    elif cfg.is_rpi:
        configure_rpi(ctx)
    elif model == RADXA_ZERO:
        configure_radxa_zero(ctx)
    elif model == NANOPI_R1 and ctx.path("/boot/armbianEnv.txt").is_file():
        configure_nanopi_r1(ctx)

    if ctx.path("/boot/armbianEnv.txt").is_file():
        configure_armbian_env(ctx)


def _download(ctx: PrepContext, url: str, target: str) -> None:
    run_checked(["curl", "-sSfL", url, "-o", ctx.arg(target)], description=f"Downloading {target}")


# ==============================================================================
# Legacy cgroups
# ==============================================================================


@dataclass(frozen=True)
class CgroupBootArgs:
    """Where to append the cgroups v1 kernel argument for a model family.

    Attributes:
        address: regex selecting the boot arguments line
        pattern: end of that line, replaced by ``replacement``
        script_arch: recompile boot.cmd to boot.scr with mkimage for this arch
    """

    name: str
    guard: Callable[[PrepContext], bool]
    target: str
    address: str
    pattern: str
    replacement: str
    script_arch: Optional[str] = None

    def apply(self, ctx: PrepContext) -> bool:
        path = ctx.path(self.target)
        if not path.is_file() or CGROUP_V1_ARG in path.read_text(encoding="utf-8"):
            return False
        log.info(f"Forcing legacy cgroups v1 hierarchy on old kernel device: {self.name}")
        replace_in_lines(path, self.pattern, self.replacement, address=self.address)
        if self.script_arch:
            script = path.with_suffix(".scr")
            run_checked(
                ["mkimage", "-C", "none", "-A", self.script_arch, "-T", "script", "-d", str(path), str(script)]
            )
        return True


CGROUP_BOOT_ARGS: tuple[CgroupBootArgs, ...] = (
    CgroupBootArgs(
        "Odroid",
        lambda ctx: ODROID_C1 <= ctx.cfg.hw_model <= ODROID_C4,
        "/boot/boot.ini",
        address=r'^setenv bootargs "',
        pattern=r'"$',
        replacement=f' {CGROUP_V1_ARG}"',
    ),
    CgroupBootArgs(
        "Sparky SBC",
        lambda ctx: ctx.cfg.hw_model == SPARKY_SBC,
        "/boot/uenv.txt",
        address=r"^bootargs=",
        pattern=r"$",
        replacement=f" {CGROUP_V1_ARG}",
    ),
    CgroupBootArgs(
        "ROCK Pi S",
        lambda ctx: ctx.cfg.hw_model == ROCK_PI_S,
        "/boot/boot.cmd",
        address=r'^setenv bootargs "',
        pattern=r'"$',
        replacement=f' {CGROUP_V1_ARG}"',
        script_arch="arm64",
    ),
)


def kernel_supports_cgroup_v2(ctx: PrepContext) -> bool:
    """Whether any installed kernel is of version 5.0 or newer."""
    modules = ctx.path("/lib/modules")
    if not modules.is_dir():
        return False
    for entry in modules.iterdir():
        match = re.match(r"(\d+)\.", entry.name)
        if entry.is_dir() and match and int(match.group(1)) >= 5:
            return True
    return False


def apply_cgroup_workaround(
    ctx: PrepContext, rows: Iterable[CgroupBootArgs] = CGROUP_BOOT_ARGS
) -> Optional[CgroupBootArgs]:
    """Append the cgroups v1 argument to the first matching boot file, once."""
    if ctx.cfg.is_container or kernel_supports_cgroup_v2(ctx):
        return None
    for row in rows:
        if row.guard(ctx) and ctx.path(row.target).is_file():
            row.apply(ctx)
            return row
    return None


# ==============================================================================
# GRUB
# ==============================================================================


def _exists_nocase(base: Path, relative: str) -> bool:
    """Case-insensitive existence check of a relative path below base."""
    current = base
    for part in relative.split("/"):
        if not current.is_dir():
            return False
        match = next((child for child in current.iterdir() if child.name.lower() == part.lower()), None)
        if match is None:
            return False
        current = match
    return True


def install_grub(ctx: PrepContext) -> None:
    """Install GRUB for UEFI or BIOS and write the DietPi defaults."""
    cfg = ctx.cfg
    if not cfg.is_x86_64 or cfg.is_container:
        return

    run_checked(["os-prober"], description="Detecting additional OS installed on system", capture=False)

    efi_dir = ctx.path("/boot/efi")
    if efi_dir.is_dir() and apt.is_installed("grub-efi-amd64"):
        extra = []
        # Only if no (other) bootloader occupies the removable media path yet
        if not _exists_nocase(efi_dir, EFI_FALLBACK_LOADER):
            extra.append("--force-extra-removable")
            run_checked(
                ["debconf-set-selections"],
                input="grub-efi-amd64 grub2/force_efi_extra_removable boolean true\n",
            )
        argv = ["grub-install", "--recheck", "--target=x86_64-efi", f"--efi-directory={efi_dir}"]
        run_checked(
            [*argv, *extra, "--uefi-secure-boot"],
            description="Installing GRUB for UEFI",
            capture=False,
        )
    else:
        disk = mounts.root_disk(ctx.arg("/"))
        if not disk:
            raise PackageError("Unable to detect the disk holding the root filesystem to install GRUB")
        run_checked(["grub-install", "--recheck", disk], description="Installing GRUB for BIOS", capture=False)

    grub_defaults = ctx.path("/etc/default/grub")
    for pattern, setting in GRUB_SETTINGS:
        config_inject(grub_defaults, pattern, setting)
    run_checked(
        ["grub-mkconfig", "-o", ctx.arg("/boot/grub/grub.cfg")],
        description="Regenerating GRUB config",
        capture=False,
    )
    apt.purge(["os-prober"])


def run(ctx: PrepContext) -> None:
    apply_arch_tweaks(ctx)
    apply_board_tweaks(ctx)
    apply_cgroup_workaround(ctx)
