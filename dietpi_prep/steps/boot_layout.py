"""Boot partition layout per hardware model.

``BOOT_LAYOUTS`` is an ordered table; ``apply_layout`` runs the actions of
the first row whose guard matches. Action sources are relative to the
unpacked source bundle, targets are absolute system paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import (
    AARCH64,
    ODROID_C1,
    ODROID_C2,
    ODROID_C4,
    ODROID_N2,
    ODROID_XU4,
    RPI_MAX,
)
from dietpi_prep.domain.models import PrepConfig
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system import fs, mounts
from dietpi_prep.system.command import run_checked
from dietpi_prep.system.config_file import config_inject, replace_in_file, replace_in_lines


log = LoggerFactory.for_deploy()

# boot.ini files are fetched from the dev branch until they are merged into master
BOOT_INI_URL = "https://raw.githubusercontent.com/MichaIng/DietPi/dev/.build/images/{board}/boot.ini"

RPI_CMDLINE = (
    "root=PARTUUID={root_partuuid} rootfstype=ext4 rootwait fsck.repair=yes "
    "net.ifnames=0 logo.nologo console=serial0,115200 console=tty1\n"
)


# ==============================================================================
# Actions
# ==============================================================================


@dataclass(frozen=True)
class MoveFile:
    source: str
    target: str

    def apply(self, ctx: PrepContext, tree: Path) -> None:
        fs.move(tree / self.source, ctx.path(self.target))


@dataclass(frozen=True)
class Download:
    url: str
    target: str

    def apply(self, ctx: PrepContext, tree: Path) -> None:
        run_checked(
            ["curl", "-sSfL", self.url, "-o", ctx.arg(self.target)],
            description=f"Downloading {self.target}",
        )


@dataclass(frozen=True)
class WriteFile:
    """Write a file; ``{root_uuid}`` and ``{root_partuuid}`` are substituted."""

    target: str
    content: str

    def apply(self, ctx: PrepContext, tree: Path) -> None:
        root = ctx.arg("/")
        content = self.content.format(
            root_uuid=mounts.root_uuid(root),
            root_partuuid=mounts.root_partuuid(root),
        )
        fs.write_file(ctx.path(self.target), content)


@dataclass(frozen=True)
class ConfigInject:
    target: str
    pattern: str
    setting: str
    when: Optional[Callable[[PrepConfig], bool]] = None

    def apply(self, ctx: PrepContext, tree: Path) -> None:
        if self.when is None or self.when(ctx.cfg):
            config_inject(ctx.path(self.target), self.pattern, self.setting)


@dataclass(frozen=True)
class ReplaceRootUuid:
    """Point every ``root=UUID=`` reference at the mounted root filesystem."""

    target: str

    def apply(self, ctx: PrepContext, tree: Path) -> None:
        uuid = mounts.root_uuid(ctx.arg("/"))
        replace_in_file(ctx.path(self.target), r"root=UUID=[^ \t\"]*", f"root=UUID={uuid}")


@dataclass(frozen=True)
class SedLine:
    """Regex substitution, first match per line."""

    target: str
    pattern: str
    replacement: str

    def apply(self, ctx: PrepContext, tree: Path) -> None:
        replace_in_lines(ctx.path(self.target), self.pattern, self.replacement)


@dataclass(frozen=True)
class MakeDirs:
    targets: tuple[str, ...]

    def apply(self, ctx: PrepContext, tree: Path) -> None:
        fs.make_dirs(ctx.path(target) for target in self.targets)


Action = Union[MoveFile, Download, WriteFile, ConfigInject, ReplaceRootUuid, SedLine, MakeDirs]


# ==============================================================================
# Layout table
# ==============================================================================


@dataclass(frozen=True)
class BootLayout:
    name: str
    guard: Callable[[PrepContext], bool]
    actions: tuple[Action, ...]


def _boot_is_vfat(ctx: PrepContext) -> bool:
    return mounts.is_vfat_mount(ctx.arg("/boot"))


def _boot_on_root(ctx: PrepContext, fstype: Optional[str] = None) -> bool:
    return mounts.on_root_fs(ctx.arg("/boot"), fstype=fstype)


def _legacy_boot_ini(ctx: PrepContext) -> bool:
    return ctx.path("/boot/boot.ini").is_file() and _boot_is_vfat(ctx)


UBOOT_HOOKS: tuple[Action, ...] = (
    MakeDirs(("/etc/kernel/postinst.d", "/etc/initramfs/post-update.d")),
    MoveFile(
        ".build/images/U-Boot/dietpi-initramfs_cleanup",
        "/etc/kernel/postinst.d/dietpi-initramfs_cleanup",
    ),
    MoveFile(".build/images/U-Boot/99-dietpi-uboot", "/etc/initramfs/post-update.d/99-dietpi-uboot"),
)

UBOOT_HOOK = "/etc/initramfs/post-update.d/99-dietpi-uboot"

BOOT_LAYOUTS: tuple[BootLayout, ...] = (
    BootLayout(
        "Raspberry Pi",
        lambda ctx: ctx.cfg.hw_model <= RPI_MAX,
        (
            WriteFile("/boot/cmdline.txt", RPI_CMDLINE),
            MoveFile("config.txt", "/boot/config.txt"),
            ConfigInject(
                "/boot/config.txt", "arm_64bit=", "arm_64bit=1", when=lambda cfg: cfg.arch == AARCH64
            ),
        ),
    ),
    BootLayout(
        "Odroid C1 with FAT /boot",
        lambda ctx: ctx.cfg.hw_model == ODROID_C1 and _boot_is_vfat(ctx),
        (
            Download(BOOT_INI_URL.format(board="OdroidC1"), "/boot/boot.ini"),
            ReplaceRootUuid("/boot/boot.ini"),
            *UBOOT_HOOKS,
            SedLine(UBOOT_HOOK, "arm64", "arm"),
            # FAT has no symlinks
            SedLine(UBOOT_HOOK, r"^ln -sf.*$", 'mv "/boot/uInitrd-$1" /boot/uInitrd'),
        ),
    ),
    BootLayout(
        "Odroid XU4 with /boot on ext4 root",
        lambda ctx: ctx.cfg.hw_model == ODROID_XU4 and _boot_on_root(ctx, "ext4"),
        (
            Download(BOOT_INI_URL.format(board="OdroidXU4"), "/boot/boot.ini"),
            ReplaceRootUuid("/boot/boot.ini"),
            *UBOOT_HOOKS,
            SedLine(UBOOT_HOOK, "arm64", "arm"),
        ),
    ),
    BootLayout(
        "Odroid C2/N2/C4 with /boot on root",
        lambda ctx: ctx.cfg.hw_model in (ODROID_C2, ODROID_N2, ODROID_C4) and _boot_on_root(ctx),
        (
            MoveFile(".build/images/U-Boot/boot.cmd", "/boot/boot.cmd"),
            MoveFile(".build/images/U-Boot/dietpiEnv.txt", "/boot/dietpiEnv.txt"),
            *UBOOT_HOOKS,
        ),
    ),
    BootLayout(
        "Odroid XU4 legacy",
        lambda ctx: ctx.cfg.hw_model == ODROID_XU4 and _legacy_boot_ini(ctx),
        (MoveFile("boot_xu4.ini", "/boot/boot.ini"), ReplaceRootUuid("/boot/boot.ini")),
    ),
    BootLayout(
        "Odroid C2 legacy",
        lambda ctx: ctx.cfg.hw_model == ODROID_C2 and _legacy_boot_ini(ctx),
        (MoveFile("boot_c2.ini", "/boot/boot.ini"),),
    ),
    BootLayout(
        "Odroid N2 legacy",
        lambda ctx: ctx.cfg.hw_model == ODROID_N2 and _legacy_boot_ini(ctx),
        (MoveFile("boot_n2.ini", "/boot/boot.ini"), ReplaceRootUuid("/boot/boot.ini")),
    ),
)


def select_layout(
    ctx: PrepContext, layouts: tuple[BootLayout, ...] = BOOT_LAYOUTS
) -> Optional[BootLayout]:
    """First layout whose guard matches, None when the model needs none."""
    for layout in layouts:
        if layout.guard(ctx):
            return layout
    return None


def apply_layout(ctx: PrepContext, tree: Path) -> Optional[BootLayout]:
    layout = select_layout(ctx)
    if layout is None:
        log.debug("No boot layout for this hardware model")
        return None
    log.info(f"Moving kernel and boot configuration to /boot: {layout.name}")
    for action in layout.actions:
        action.apply(ctx, tree)
    return layout
