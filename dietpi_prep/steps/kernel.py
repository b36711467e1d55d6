"""Kernel, bootloader and firmware source dispatch.

``KERNEL_BRANCHES`` is evaluated in order and only the first branch whose
guard matches is applied. The guards overlap (the catch-all matches nearly
everything), so the order of the table is significant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from dietpi_prep.config.settings import DIETPI_DOWNLOAD_URL
from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import (
    AARCH64,
    BUSTER,
    CONTAINER,
    NANOPI_M2,
    ODROID_C1,
    ODROID_C2,
    ODROID_C4,
    ODROID_N2,
    ODROID_XU4,
    RADXA_ZERO,
    ROCK_PI_S,
    RPI_MAX,
)
from dietpi_prep.domain.models import PackagePlan
from dietpi_prep.exceptions import PackageError
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import templates
from dietpi_prep.system import apt, fs, mounts
from dietpi_prep.system.command import run_checked, run_command


log = LoggerFactory.for_apt()

ARMBIAN_KEY_URL = "https://apt.armbian.com/armbian.key"
ARMBIAN_KEYRING = "/etc/apt/trusted.gpg.d/dietpi-armbian.gpg"
DEVICETREE_EXCLUDE = "/etc/dpkg/dpkg.cfg.d/01-dietpi-exclude_doubled_devicetrees"
DEVICETREE_EXCLUDE_RULE = "path-exclude /usr/lib/linux-image-current-*\n"
RADXA_KEYRING = "/etc/apt/trusted.gpg.d/dietpi-radxa.gpg"

KERNEL_PACKAGE = re.compile(r"^linux-(image|dtb|u-boot)-|^u-boot")
ARMBIAN_KERNEL_PREFIXES = ("linux-image-", "linux-dtb-", "linux-u-boot-")

# model ID: (U-Boot board, kernel family, mkimage arch)
ODROID_BOARDS = {
    ODROID_N2: ("odroidn2", "meson64", "arm64"),
    ODROID_C4: ("odroidc4", "meson64", "arm64"),
    ODROID_C2: ("odroidc2", "meson64", "arm64"),
    ODROID_XU4: ("odroidxu4", "odroidxu4", "arm"),
    ODROID_C1: ("odroidc1", "meson", "arm"),
}

# model ID: packages of the legacy Meveric images
MEVERIC_KERNELS = {
    # The C4 kernel package does not depend on U-Boot
    ODROID_C4: ("linux-image-arm64-odroid-c4", "meveric-keyring", "u-boot"),
    ODROID_N2: ("linux-image-arm64-odroid-n2", "meveric-keyring"),
    ODROID_C2: ("linux-image-arm64-odroid-c2", "meveric-keyring"),
    ODROID_XU4: ("linux-image-4.14-armhf-odroid-xu4", "meveric-keyring"),
}

RADXA_PACKAGES = {
    ROCK_PI_S: ("rockpis-rk-ubootimg", "linux-4.4-rock-pi-s-latest", "rockchip-overlay", "u-boot-tools"),
    # Installed kernel packages are kept; bc and file are needed by Radxa's initramfs hook
    RADXA_ZERO: ("bc", "file"),
}


def remove_combined_keyring(ctx: PrepContext) -> None:
    fs.remove(ctx.path("/etc/apt/trusted.gpg"))
    fs.remove(ctx.path("/etc/apt/trusted.gpg~"))


def armbian_suite(ctx: PrepContext) -> str:
    # The Armbian repo has no Bookworm suite yet
    return ctx.cfg.distro_target.name.replace("bookworm", "bullseye")


def radxa_suite(ctx: PrepContext) -> str:
    # The Radxa repo has no Bullseye suite yet
    return ctx.cfg.distro_target.name.replace("bullseye", "buster")


def installed_kernel_packages() -> list[str]:
    return [name for name in apt.installed_packages() if KERNEL_PACKAGE.match(name)]


def _exclude_doubled_devicetrees(ctx: PrepContext) -> None:
    fs.write_file(ctx.path(DEVICETREE_EXCLUDE), DEVICETREE_EXCLUDE_RULE)
    fs.remove_glob(ctx.root_dir, "usr/lib/linux-image-current-*")


def _boot_device_disk(ctx: PrepContext, *, mountpoint: bool = False) -> str:
    boot = ctx.arg("/boot")
    source = mounts.findmnt("SOURCE", mountpoint=boot) if mountpoint else mounts.findmnt("SOURCE", target=boot)
    return mounts.parent_disk(source)


# ==============================================================================
# Guards
# ==============================================================================


def _is_modern_odroid(ctx: PrepContext) -> bool:
    model = ctx.cfg.hw_model
    if model in (ODROID_C2, ODROID_N2, ODROID_C4):
        return ctx.path("/boot/dietpiEnv.txt").is_file()
    if model == ODROID_XU4:
        return mounts.on_root_fs(ctx.arg("/boot"), fstype="ext4")
    if model == ODROID_C1:
        return mounts.is_vfat_mount(ctx.arg("/boot"))
    return False


def _is_armbian(ctx: PrepContext) -> bool:
    if ctx.cfg.hw_model == CONTAINER:
        return False
    return any("armbian" in name for name in apt.installed_packages())


def _has_meveric_list(ctx: PrepContext) -> bool:
    return any(ctx.path("/etc/apt/sources.list.d").glob("meveric*.list"))


def _is_meveric(model: int) -> Callable[[PrepContext], bool]:
    return lambda ctx: ctx.cfg.hw_model == model and _has_meveric_list(ctx)


def _has_radxa_repo(ctx: PrepContext) -> bool:
    for path in ctx.path("/etc/apt/sources.list.d").glob("*.list"):
        if path.is_file() and "apt.radxa.com" in path.read_text(encoding="utf-8", errors="replace"):
            return True
    return False


def _is_radxa(model: int) -> Callable[[PrepContext], bool]:
    return lambda ctx: ctx.cfg.hw_model == model and _has_radxa_repo(ctx)


def _is_nanopi_m2_boot(ctx: PrepContext) -> bool:
    """NanoPi M2/T2 Linux 4.4 needs an ext4 /boot starting at 4 MiB for U-Boot."""
    if ctx.cfg.hw_model != NANOPI_M2:
        return False
    if mounts.fstype_of(ctx.arg("/boot")) != "ext4":
        return False
    return mounts.first_partition_start(_boot_device_disk(ctx, mountpoint=True)) >= 8192


# ==============================================================================
# Branch actions
# ==============================================================================


def install_odroid(ctx: PrepContext, plan: PackagePlan) -> None:
    """Switch Odroids to Armbian kernel and U-Boot packages."""
    apt.add_key(ARMBIAN_KEY_URL, ctx.path(ARMBIAN_KEYRING))
    remove_combined_keyring(ctx)
    _exclude_doubled_devicetrees(ctx)
    fs.clear_dir(ctx.path("/etc/apt/sources.list.d"))
    fs.write_file(
        ctx.path("/etc/apt/sources.list.d/dietpi-armbian.list"),
        f"deb http://apt.armbian.com/ {armbian_suite(ctx)} main\n",
    )
    apt.update()

    # initramfs-tools first, so an initramfs is generated on kernel install
    apt.install(["initramfs-tools"], cwd=ctx.work_dir)
    board, family, arch = ODROID_BOARDS[ctx.cfg.hw_model]
    apt.install(
        [
            f"linux-image-current-{family}",
            f"linux-dtb-current-{family}",
            f"linux-u-boot-{board}-current",
            "u-boot-tools",
            "armbian-firmware",
        ],
        cwd=ctx.work_dir,
    )

    if ctx.cfg.hw_model != ODROID_C1:
        fs.remove(ctx.path("/boot/uImage"))
    fs.remove(ctx.path("/boot/.next"))

    boot_cmd = ctx.path("/boot/boot.cmd")
    if boot_cmd.is_file():
        run_checked(
            ["mkimage", "-C", "none", "-A", arch, "-T", "script", "-d", str(boot_cmd), ctx.arg("/boot/boot.scr")],
            description="Compiling U-Boot config",
        )

    disk = _boot_device_disk(ctx)
    if not disk:
        raise PackageError("Unable to detect the disk holding /boot to flash U-Boot")
    run_checked(
        [
            "bash",
            "-c",
            '. "$1" && write_uboot_platform "$DIR" "$2"',
            "write_uboot_platform",
            ctx.arg("/usr/lib/u-boot/platform_install.sh"),
            disk,
        ],
        description=f"Flashing U-Boot to {disk}",
    )


def adopt_armbian(ctx: PrepContext, plan: PackagePlan) -> None:
    """Keep the kernel packages an Armbian image came with."""
    run_command(["systemctl", "stop", "armbian-*"])

    installed = apt.installed_packages()
    for prefix in ARMBIAN_KERNEL_PREFIXES:
        for name in installed:
            if name.startswith(prefix):
                plan.add(name)
                log.info(f"Armbian package detected and added: {name}")
    # Converts initramfs images into U-Boot format
    plan.add("u-boot-tools")

    arch = "arm64" if ctx.cfg.arch == AARCH64 else "arm"
    fs.write_file(
        ctx.path("/etc/initramfs/post-update.d/99-dietpi-uboot"),
        templates.UBOOT_INITRAMFS_HOOK.format(arch=arch),
        mode=0o755,
    )
    tail = (
        templates.INITRAMFS_CLEANUP_TAIL
        if ctx.cfg.distro_target.id > BUSTER.id
        else templates.INITRAMFS_CLEANUP_TAIL_STATE_DIR
    )
    fs.write_file(
        ctx.path("/etc/kernel/preinst.d/dietpi-initramfs_cleanup"),
        templates.INITRAMFS_CLEANUP_HEAD + tail,
        mode=0o755,
    )

    apt.add_key(ARMBIAN_KEY_URL, ctx.path(ARMBIAN_KEYRING))
    remove_combined_keyring(ctx)
    fs.write_file(
        ctx.path("/etc/apt/sources.list.d/armbian.list"),
        f"deb http://apt.armbian.com/ {armbian_suite(ctx)} main\n",
    )
    _exclude_doubled_devicetrees(ctx)


def install_rpi(ctx: PrepContext, plan: PackagePlan) -> None:
    packages = [
        "raspberrypi-bootloader",
        "raspberrypi-kernel",
        "libraspberrypi0",
        "libraspberrypi-bin",
        "raspberrypi-sys-mods",
        "raspberrypi-archive-keyring",
    ]
    if ctx.cfg.arch != AARCH64:
        packages.append("raspi-copies-and-fills")
    apt.install(packages, cwd=ctx.work_dir)

    # Added by raspberrypi-sys-mods
    fs.remove(ctx.path("/etc/apt/trusted.gpg.d/microsoft.gpg"))
    fs.remove(ctx.path("/etc/apt/sources.list.d/vscode.list"))

    keyring = "/usr/share/keyrings/raspbian-archive-keyring.gpg"
    if ctx.path(keyring).is_file():
        fs.symlink(keyring, ctx.path("/etc/apt/trusted.gpg.d/raspbian-archive-keyring.gpg"))
    remove_combined_keyring(ctx)


def install_meveric(ctx: PrepContext, plan: PackagePlan) -> None:
    model = ctx.cfg.hw_model
    apt.install(MEVERIC_KERNELS[model], cwd=ctx.work_dir)

    if model in (ODROID_C4, ODROID_N2):
        # Kernel postinst depends on /proc/cpuinfo, which does not match inside a container
        image = ctx.path("/boot/Image")
        if image.is_file():
            fs.move(image, ctx.path("/boot/Image.gz"))
        fs.remove(ctx.path("/boot/Image.gz.bak"))
    remove_combined_keyring(ctx)


def install_radxa(ctx: PrepContext, plan: PackagePlan) -> None:
    model = ctx.cfg.hw_model
    suite = radxa_suite(ctx)

    fs.remove(ctx.path("/etc/apt/trusted.gpg"))
    fs.clear_dir(ctx.path("/etc/apt/sources.list.d"))
    apt.add_key(f"https://apt.radxa.com/{suite}-stable/public.key", ctx.path(RADXA_KEYRING))
    fs.write_file(
        ctx.path("/etc/apt/sources.list.d/dietpi-radxa.list"),
        f"deb https://apt.radxa.com/{suite}-stable/ {suite} main\n",
    )
    apt.update()
    remove_combined_keyring(ctx)

    packages = list(RADXA_PACKAGES[model])
    if model == RADXA_ZERO:
        packages = installed_kernel_packages() + packages
    apt.install(packages, cwd=ctx.work_dir)


def install_nanopi_m2_firmware(ctx: PrepContext, plan: PackagePlan) -> None:
    url = f"{DIETPI_DOWNLOAD_URL}/firmware-nanopi2.deb"
    run_checked(["curl", "-sSfLO", url], cwd=ctx.work_dir, description="Downloading firmware-nanopi2.deb")
    deb = ctx.work_dir / "firmware-nanopi2.deb"
    apt.install_deb(deb)
    fs.remove(deb)


def adopt_installed_kernel(ctx: PrepContext, plan: PackagePlan) -> None:
    packages = installed_kernel_packages()
    if packages:
        apt.install(packages, cwd=ctx.work_dir)
    else:
        log.info("Unable to find kernel packages for installation. Assuming non-APT/.deb kernel installation.")


# ==============================================================================
# Dispatch table
# ==============================================================================


@dataclass(frozen=True)
class KernelBranch:
    name: str
    guard: Callable[[PrepContext], bool]
    apply: Callable[[PrepContext, PackagePlan], None]


KERNEL_BRANCHES: tuple[KernelBranch, ...] = (
    KernelBranch("Odroid with Armbian kernel", _is_modern_odroid, install_odroid),
    KernelBranch("Armbian image", _is_armbian, adopt_armbian),
    KernelBranch("Raspberry Pi", lambda ctx: ctx.cfg.hw_model <= RPI_MAX, install_rpi),
    KernelBranch("Odroid C4 legacy", _is_meveric(ODROID_C4), install_meveric),
    KernelBranch("Odroid N2 legacy", _is_meveric(ODROID_N2), install_meveric),
    KernelBranch("Odroid C2 legacy", _is_meveric(ODROID_C2), install_meveric),
    KernelBranch("Odroid XU3/XU4/MC1/HC1/HC2 legacy", _is_meveric(ODROID_XU4), install_meveric),
    KernelBranch("ROCK Pi S Radxa image", _is_radxa(ROCK_PI_S), install_radxa),
    KernelBranch("Radxa Zero Radxa image", _is_radxa(RADXA_ZERO), install_radxa),
    KernelBranch("NanoPi M2/T2 Linux 4.4", _is_nanopi_m2_boot, install_nanopi_m2_firmware),
    KernelBranch(
        "Installed kernel packages", lambda ctx: ctx.cfg.hw_model != CONTAINER, adopt_installed_kernel
    ),
)


def select_branch(
    ctx: PrepContext, branches: tuple[KernelBranch, ...] = KERNEL_BRANCHES
) -> Optional[KernelBranch]:
    for branch in branches:
        if branch.guard(ctx):
            return branch
    return None


def run(ctx: PrepContext, plan: PackagePlan) -> Optional[KernelBranch]:
    branch = select_branch(ctx)
    if branch is None:
        log.info("No kernel or bootloader setup required")
        return None
    log.info(f"Kernel and bootloader setup: {branch.name}")
    branch.apply(ctx, plan)
    return branch
