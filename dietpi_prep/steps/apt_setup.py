"""APT sources for the target distro."""

from __future__ import annotations

from dietpi_prep.context import PrepContext
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import runtime
from dietpi_prep.system import apt, fs
from dietpi_prep.system.command import run_checked, run_command
from dietpi_prep.system.config_file import replace_in_file


log = LoggerFactory.for_apt()

RPI_ARCHIVE_KEY = "CF8A1AF502A2AA2D763BAE7E82B129927FA3303E"
RPI_KEYRING_DEB_URL = (
    "https://archive.raspberrypi.org/debian/pool/main/r/raspberrypi-archive-keyring/"
    "raspberrypi-archive-keyring_2021.1.1+rpt1_all.deb"
)


def set_apt_mirror(ctx: PrepContext) -> None:
    """Let dietpi-set_software write sources.list for the target distro."""
    cfg = ctx.cfg
    target = cfg.distro_target
    log.info(f"Setting APT sources.list: {target.name} {target.id}")
    env = {"G_DISTRO": str(target.id), "G_DISTRO_NAME": target.name}
    runtime.call(ctx, runtime.SET_SOFTWARE, "apt-mirror", "default", required=True, env=env)


def use_meveric_mirror(ctx: PrepContext) -> None:
    for path in ctx.path("/etc/apt/sources.list.d").glob("meveric*.list"):
        replace_in_file(path, r"https?://oph\.mdrjr\.net", "https://dietpi.com")


def bootstrap_rpi_keyring(ctx: PrepContext) -> None:
    """Install the Raspberry Pi archive keyring when its key is missing."""
    result = run_command(["apt-key", "list", RPI_ARCHIVE_KEY])
    if (result.stdout or "").strip():
        return
    deb = ctx.work_dir / "keyring.deb"
    run_checked(
        ["curl", "-sSfL", RPI_KEYRING_DEB_URL, "-o", str(deb)],
        description="Downloading Raspberry Pi archive keyring",
    )
    apt.install_deb(deb)
    fs.remove(deb)


def mark_all_auto() -> None:
    """Mark everything auto-installed, so that autoremove can reclaim what is unused later."""
    log.info("Marking all packages as auto-installed first, to allow effective autoremove afterwards")
    apt.mark_auto(apt.show_manual())


def run(ctx: PrepContext) -> None:
    set_apt_mirror(ctx)
    use_meveric_mirror(ctx)
    # Runtime and log dirs used by the DietPi APT wrappers
    fs.make_dirs([ctx.path("/run/dietpi"), ctx.path("/var/tmp/dietpi/logs")])
    if ctx.cfg.is_rpi:
        bootstrap_rpi_keyring(ctx)
    apt.update()
    mark_all_auto()
