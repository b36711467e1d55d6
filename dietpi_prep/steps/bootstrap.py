"""Environment bootstrap: privileges, locale, scratch tmpfs, APT and prerequisites."""

from __future__ import annotations

import os

from dietpi_prep.config.settings import (
    DEFAULT_GIT_BRANCH,
    DEFAULT_GIT_OWNER,
    GIT_BRANCHES,
    LOCALE,
    PREREQUISITE_PACKAGES,
    SYSTEM_PATH,
    TMPFS_MIN_SIZE,
)
from dietpi_prep.context import PrepContext
from dietpi_prep.domain.models import GitSource
from dietpi_prep.exceptions import (
    PackageError,
    PrepAborted,
    PrerequisiteInstallError,
    RootRequiredError,
)
from dietpi_prep.logging import LoggerFactory, attach_log_files
from dietpi_prep.steps import templates
from dietpi_prep.system import apt, fs, mounts
from dietpi_prep.system.command import run_checked, run_command


log = LoggerFactory.for_prep()

# Donor image APT configs that conflict with DietPi defaults
APT_CONFLICTS = (
    "etc/apt/apt.conf.d/50raspi",
    "etc/apt/sources.list.d/vscode.list",
    "etc/apt/trusted.gpg.d/microsoft.gpg",
    "etc/apt/preferences.d/3rd_parties.pref",
    "etc/apt/sources.list.d/deb-multimedia.list",
    "etc/apt/preferences.d/deb-multimedia-pin-99",
    "etc/apt/preferences.d/backports",
    "etc/apt/sources.list.d/openmediavault.list",
)
APT_CONFLICT_GLOBS = (
    "etc/apt/apt.conf.d/*recommends*",
    "etc/apt/apt.conf.d/*armbian*",
)


def ensure_root() -> None:
    if os.geteuid() != 0:
        raise RootRequiredError()


def reset_environment(ctx: PrepContext) -> None:
    """Empty /etc/environment and pin locale and PATH for this process."""
    fs.write_file(ctx.path("/etc/environment"), "")
    os.environ["LC_ALL"] = LOCALE
    os.environ["LANG"] = LOCALE
    os.environ["PATH"] = SYSTEM_PATH


def ensure_tmpfs(ctx: PrepContext) -> None:
    """Make /tmp a tmpfs of at least TMPFS_MIN_SIZE bytes."""
    tmp = ctx.arg("/tmp")
    size = mounts.mount_size(tmp)
    if size is None:
        log.info("Mounting tmpfs to /tmp")
        run_checked(["mount", "-t", "tmpfs", "-o", f"size={TMPFS_MIN_SIZE}", "tmpfs", tmp])
    elif size < TMPFS_MIN_SIZE:
        log.info(f"Resizing /tmp mount from {size} to {TMPFS_MIN_SIZE} bytes")
        run_checked(["mount", "-o", f"remount,size={TMPFS_MIN_SIZE}", tmp])
    else:
        log.debug(f"/tmp is a mount of {size} bytes already")
    ctx.work_dir.mkdir(parents=True, exist_ok=True)


def configure_apt(ctx: PrepContext) -> None:
    """Drop conflicting donor configs and install the DietPi APT defaults."""
    for path in APT_CONFLICTS:
        fs.remove(ctx.path(path))
    for pattern in APT_CONFLICT_GLOBS:
        fs.remove_glob(ctx.root_dir, pattern)

    fs.write_file(ctx.path("/etc/apt/apt.conf.d/97dietpi"), templates.APT_DIETPI)
    fs.write_file(ctx.path("/etc/apt/apt.conf.d/98dietpi-prep"), templates.APT_DIETPI_PREP)
    run_command(["apt-get", "clean"])
    apt.update()


def install_prerequisites() -> None:
    for package in PREREQUISITE_PACKAGES:
        if apt.is_installed(package):
            continue
        try:
            apt.install([package])
        except PackageError as e:
            raise PrerequisiteInstallError(package) from e


def select_git_source(ctx: PrepContext) -> GitSource:
    owner = ctx.environment.git_owner or DEFAULT_GIT_OWNER
    branch = ctx.environment.git_branch
    if branch not in {name for name, _ in GIT_BRANCHES}:
        branch = ctx.prompter.menu(
            "Please select the Git branch the installer should use:",
            [(name, f": {description}") for name, description in GIT_BRANCHES],
            default=DEFAULT_GIT_BRANCH,
        )
        if branch is None:
            raise PrepAborted()
    log.info(f"Selected Git branch: {owner}/{branch}")
    return GitSource(owner=owner, branch=branch)


def run(ctx: PrepContext) -> None:
    ensure_root()
    reset_environment(ctx)
    run_command(["mount", "-a"])
    ensure_tmpfs(ctx)
    log_dir = attach_log_files(ctx.log_dir, debug=ctx.debug, trace=ctx.trace)
    log.debug(f"Logging to {log_dir}")

    configure_apt(ctx)
    fs.remove(ctx.path("/boot/dietpi/.hw_model"))
    install_prerequisites()
    ctx.git = select_git_source(ctx)
