"""System upgrade and installation of the resolved package set."""

from __future__ import annotations

from dietpi_prep.context import PrepContext
from dietpi_prep.domain.models import PackagePlan
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system import apt, fs


log = LoggerFactory.for_apt()

# Packages which (in some cases) are not autoremoved
# - dbus: not needed headless, but sometimes marked "important"
# - initscripts: superseded and masked by systemd, never autoremoved
# - chrony: left in "deinstall ok installed" state on Armbian images
PURGE_PACKAGES = (
    "dbus",
    "dhcpcd5",
    "mountall",
    "initscripts",
    "chrony",
    "*office*",
    "*xfce*",
    "*qt5*",
    "*xserver*",
    "*xorg*",
    "glib-networking",
    "libgtk-3-0",
    "libsoup2.4-1",
    "libglib2.0-0",
)


def mark_known_manual(plan: PackagePlan) -> None:
    """Mark required packages dpkg already knows about as manually installed."""
    known = apt.selections(plan.unique())
    apt.mark_manual(known, description="Marking required packages as manually installed")


def purge_unwanted(plan: PackagePlan) -> list[str]:
    """Best-effort purge of packages that do not belong on a DietPi image."""
    essential = [name for name in plan.purge_extra if name not in plan]
    return apt.purge([*essential, *PURGE_PACKAGES], allow_remove_essential=bool(essential))


def fix_dropbear_marks() -> None:
    """After an upgrade from Buster, dropbear is the package to keep."""
    if apt.is_installed("dropbear-run"):
        apt.mark_manual(["dropbear"])
        apt.mark_auto(["dropbear-run"])


def run(ctx: PrepContext) -> None:
    plan = ctx.packages
    mark_known_manual(plan)

    apt.dist_upgrade()
    purge_unwanted(plan)
    # Remove any autoremove prevention
    fs.remove_glob(ctx.root_dir, "etc/apt/apt.conf.d/*autoremove*")
    apt.autoremove()
    apt.clean()

    # The target has become the running distro
    ctx.config = ctx.cfg.with_target_distro()
    ctx.platform = ctx.cfg.platform

    log.info("Installing core DietPi pre-req DEB packages")
    packages = plan.unique()
    apt.install(packages, cwd=ctx.work_dir)
    apt.mark_manual(packages)

    fix_dropbear_marks()
    apt.clean()
    apt.autoremove()
