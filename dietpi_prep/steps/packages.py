"""Resolution of the package set the image must end up with.

The plan is a function of the configuration plus a few probed facts
(filesystem types, partition table of the root disk). Kernel, bootloader and
firmware sources are set up by ``steps.kernel`` in between the base list and
the firmware additions.
"""

from __future__ import annotations

from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import (
    ARMV7L,
    BUSTER,
    BULLSEYE,
    CONTAINER,
    NANOPI_M2,
    RADXA_ZERO,
    VM,
)
from dietpi_prep.domain.models import PackagePlan, PrepConfig
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import kernel, templates
from dietpi_prep.system import apt, fs, mounts


log = LoggerFactory.for_apt()

BASE_PACKAGES = (
    "apt",
    "bash-completion",
    "bzip2",
    "ca-certificates",
    "cron",
    "curl",
    "fdisk",
    "gnupg",
    "htop",
    "iputils-ping",
    "locales",
    "nano",
    "p7zip",
    "parted",
    "procps",
    "psmisc",
    "sudo",
    "systemd-sysv",
    "tzdata",
    "udev",
    "unzip",
    "wget",
    "whiptail",
)

# Everything but containers
SYSTEM_PACKAGES = (
    "console-setup",
    "ethtool",
    "fake-hwclock",
    "ifupdown",
    "isc-dhcp-client",
    "kmod",
    # Only installed to unblock everything once, purged at first boot config
    "rfkill",
    "systemd-timesyncd",
    "usbutils",
)

FILESYSTEM_TOOLS = {
    "ext2": "e2fsprogs",
    "ext3": "e2fsprogs",
    "ext4": "e2fsprogs",
    "vfat": "dosfstools",
    "f2fs": "f2fs-tools",
    "btrfs": "btrfs-progs",
}

# Models on which rng-tools5 is proven to work, in addition to all RPi models
RNG_TOOLS_MODELS = frozenset({14, 15, 16, 24, 29, 42, 46, 58, 68, 72, 74})


def _uses_rng_tools(cfg: PrepConfig) -> bool:
    return cfg.is_rpi or cfg.hw_model in RNG_TOOLS_MODELS


def add_filesystem_tools(plan: PackagePlan, fs_types: list[str]) -> None:
    """Tools for resize and fsck of the filesystems in use.

    e2fsprogs is "important" in Debian, so when no ext filesystem is present
    it is purged explicitly.
    """
    for fs_type in fs_types:
        package = FILESYSTEM_TOOLS.get(fs_type)
        if package:
            plan.add(package)
    if "e2fsprogs" not in plan:
        plan.purge_extra.append("e2fsprogs")


def add_system_packages(ctx: PrepContext, plan: PackagePlan) -> None:
    cfg = ctx.cfg
    plan.add(*SYSTEM_PACKAGES)

    if cfg.is_vm:
        plan.add("tiny-initramfs")
    elif not cfg.is_rpi and cfg.hw_model != NANOPI_M2:
        plan.add("initramfs-tools")

    if _uses_rng_tools(cfg):
        plan.add("rng-tools5")
    else:
        plan.add("haveged")
        if cfg.arch == ARMV7L:
            log.info("Applying workaround for haveged entropy daemon bug: https://bugs.debian.org/985196")
            fs.write_file(
                ctx.path("/etc/systemd/system/haveged.service.d/dietpi.conf"),
                templates.HAVEGED_DROPIN,
            )

    # Depends on the current distro, so that dropbear-run is not autoremoved before dropbear is installed
    plan.add("dropbear" if cfg.distro.id > BUSTER.id else "dropbear-run")

    if not cfg.is_vm:
        plan.add("hdparm")

    if cfg.wifi_required:
        plan.add("iw", "wireless-tools")
        # No CRDA since Bookworm, kernels read wireless-regdb themselves
        plan.add("wireless-regdb" if cfg.distro_target.id > BULLSEYE.id else "crda")
        plan.add("wpasupplicant")


def install_x86_64_boot(ctx: PrepContext) -> None:
    """Install kernel and GRUB right away, so older kernels can be autoremoved later."""
    cfg = ctx.cfg
    packages = ["linux-image-amd64", "os-prober"]
    packages.append("tiny-initramfs" if cfg.is_vm else "initramfs-tools")
    if ctx.path("/boot/efi").is_dir() or apt.is_installed("grub-efi-amd64"):
        packages += ["grub-efi-amd64", "grub-efi-amd64-signed", "shim-signed"]
    else:
        packages.append("grub-pc")

    fs.write_file(ctx.path("/etc/kernel-img.conf"), "do_symlinks=0\n")
    for directory in ("/", "/boot/"):
        for name in ("initrd.img", "initrd.img.old", "vmlinuz", "vmlinuz.old"):
            fs.remove(ctx.path(directory + name))

    if mounts.fstype_of(ctx.arg("/boot")) == "vfat":
        fs.write_file(
            ctx.path("/etc/kernel/preinst.d/dietpi"), templates.KERNEL_PREINST_FAT, mode=0o755
        )

    apt.install(packages, cwd=ctx.work_dir)
    kernel.remove_combined_keyring(ctx)


def add_firmware(ctx: PrepContext, plan: PackagePlan) -> None:
    cfg = ctx.cfg
    if not cfg.is_container and apt.is_installed("armbian-firmware"):
        plan.add("armbian-firmware")
        return
    # No additional firmware on Radxa Zero for now
    if cfg.hw_model in (RADXA_ZERO, CONTAINER):
        return

    # VMs usually need no firmware
    if cfg.hw_model != VM:
        plan.add("firmware-realtek", "firmware-linux-free", "firmware-misc-nonfree")
    if cfg.wifi_required:
        plan.add("firmware-atheros", "firmware-brcm80211", "firmware-iwlwifi")
        if cfg.hw_model == VM:
            plan.add("firmware-realtek", "firmware-misc-nonfree")


def resolve_base(ctx: PrepContext) -> PackagePlan:
    """Base and model specific packages, before any kernel branch ran."""
    cfg = ctx.cfg
    plan = PackagePlan()
    plan.add(*BASE_PACKAGES)

    if mounts.partition_table_type(mounts.root_disk(ctx.arg("/"))) == "gpt":
        plan.add("gdisk")

    add_filesystem_tools(plan, mounts.filesystem_types())

    if cfg.is_container:
        plan.add("iproute2")
    else:
        add_system_packages(ctx, plan)
        ctx.path("/etc/apt/sources.list.d").mkdir(parents=True, exist_ok=True)
        if cfg.is_x86_64:
            install_x86_64_boot(ctx)
    return plan


def run(ctx: PrepContext) -> PackagePlan:
    log.info("Generating list of minimal packages, required for DietPi installation")
    plan = resolve_base(ctx)
    kernel.run(ctx, plan)
    apt.clean()
    add_firmware(ctx, plan)
    ctx.packages = plan
    log.debug(f"Required packages: {' '.join(plan.unique())}")
    return plan
