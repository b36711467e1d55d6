"""Download and installation of the DietPi source bundle."""

from __future__ import annotations

from pathlib import Path

from dietpi_prep.config.settings import SOURCE_ARCHIVE_URL
from dietpi_prep.context import PrepContext
from dietpi_prep.domain.models import LivePatch, VersionRecord
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import boot_layout, runtime
from dietpi_prep.steps.live_patches import PatchShell, apply_live_patches
from dietpi_prep.system import fs, systemd
from dietpi_prep.system.command import run_checked
from dietpi_prep.system.config_file import config_inject
from dietpi_prep.versioninfo import load_version_file, write_version_file


log = LoggerFactory.for_deploy()

# Update leftovers that have no use on a fresh image
UNUSED_FILES = ("dietpi/pre-patch_file", "dietpi/patch_file", "dietpi/server_version-6")

VERSION_FILE = "/boot/dietpi/.version"
IMAGE_VERSION_FILE = "/var/lib/dietpi/.dietpi_image_version"


def fetch_source(ctx: PrepContext) -> Path:
    """Download and unpack the source bundle into the work dir; returns the tree."""
    git = ctx.cfg.git
    tarball = f"{git.branch}.tar.gz"
    run_checked(
        ["curl", "-sSfLO", SOURCE_ARCHIVE_URL.format(owner=git.owner, branch=git.branch)],
        cwd=ctx.work_dir,
        description="Downloading source code",
    )

    tree = ctx.work_dir / git.archive_dir
    if fs.remove(tree):
        log.info("Removed old source code")
    run_checked(["tar", "xf", tarball], cwd=ctx.work_dir, description="Unpacking source code")

    fs.remove(ctx.work_dir / tarball)
    for name in UNUSED_FILES:
        fs.remove(tree / name)
    fs.remove_group_write(tree)
    return tree


def install_boot_files(ctx: PrepContext, tree: Path) -> None:
    ctx.path("/boot").mkdir(exist_ok=True)
    boot_layout.apply_layout(ctx, tree)

    fs.move(tree / "dietpi.txt", ctx.path("/boot/dietpi.txt"))
    fs.move(tree / "README.md", ctx.path("/boot/dietpi-README.md"))
    fs.move(tree / "LICENSE", ctx.path("/boot/dietpi-LICENSE.txt"))


def install_tree(ctx: PrepContext, tree: Path) -> None:
    fs.copy_tree(tree / "dietpi", ctx.path("/boot/dietpi"))
    log.success("Copied DietPi scripts to /boot/dietpi")
    fs.copy_tree(tree / "rootfs", ctx.root_dir)
    log.success("Copied DietPi system files in place")
    fs.remove(tree)


def store_version(ctx: PrepContext, record: VersionRecord) -> None:
    git = ctx.cfg.git
    log.info(f"Storing DietPi version info: {record}")
    dietpi_txt = ctx.path("/boot/dietpi.txt")
    config_inject(dietpi_txt, "DEV_GITBRANCH=", f"DEV_GITBRANCH={git.branch}")
    config_inject(dietpi_txt, "DEV_GITOWNER=", f"DEV_GITOWNER={git.owner}")
    write_version_file(ctx.path(VERSION_FILE), record)


def run(ctx: PrepContext) -> tuple[VersionRecord, list[LivePatch]]:
    tree = fetch_source(ctx)
    install_boot_files(ctx, tree)

    # Read before the tree is removed
    record, patches = load_version_file(tree / ".update" / "version", ctx.cfg.git)

    install_tree(ctx, tree)
    store_version(ctx, record)
    # Patches expect the DietPi shell: globals sourced, hardware and distro exported
    shell = PatchShell(env=ctx.cfg.dietpi_env(), globals_script=ctx.arg(runtime.GLOBALS))
    results = apply_live_patches(patches, ctx.path(VERSION_FILE), test=shell.test, execute=shell.execute)

    fs.copy_file(ctx.path(VERSION_FILE), ctx.path(IMAGE_VERSION_FILE))
    systemd.daemon_reload()
    return record, results
