"""APT and dpkg operations."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Sequence

from dietpi_prep.exceptions import PackageError
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system.command import run_checked, run_command


log = LoggerFactory.for_apt()

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def _apt_get(
    args: Sequence[str], *, cwd: Optional[Path] = None
) -> tuple[int, str]:
    result = run_command(["apt-get", "-y", *args], env=APT_ENV, cwd=cwd)
    return result.returncode, (result.stderr or "").strip()


def update() -> None:
    """Refresh package lists; failure is fatal."""
    code, stderr = _apt_get(["update"])
    if code != 0:
        raise PackageError(f"APT update failed: {stderr}")
    log.success("APT update")


def install(
    packages: Iterable[str],
    *,
    reinstall: bool = False,
    cwd: Optional[Path] = None,
) -> None:
    """Install packages; failure is fatal."""
    names = list(dict.fromkeys(packages))
    if not names:
        return
    args = ["install", *(["--reinstall"] if reinstall else []), *names]
    log.info(f"APT install for: {' '.join(names)}")
    code, stderr = _apt_get(args, cwd=cwd)
    if code != 0:
        raise PackageError(f"APT install failed: {stderr}", names)
    log.success(f"APT install for: {' '.join(names)}")


def install_deb(path: Path) -> None:
    """Install a local .deb archive via dpkg."""
    run_checked(["dpkg", "-i", str(path)], description=f"Installing {path.name}")


def dist_upgrade() -> None:
    log.info("APT dist-upgrade")
    code, stderr = _apt_get(["dist-upgrade"])
    if code != 0:
        raise PackageError(f"APT dist-upgrade failed: {stderr}")
    log.success("APT dist-upgrade")


def selections(patterns: Iterable[str]) -> list[str]:
    """Names of packages known to dpkg that match the given names or globs."""
    patterns = list(patterns)
    if not patterns:
        return []
    result = run_command(["dpkg", "--get-selections", *patterns])
    names = []
    for line in (result.stdout or "").splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[1] in ("install", "hold"):
            # Strip ":arch" qualifiers
            names.append(fields[0].split(":", 1)[0])
    return names


def purge(
    patterns: Iterable[str],
    *,
    allow_remove_essential: bool = False,
) -> list[str]:
    """Purge installed packages matching the given names or globs.

    Packages that are not installed are skipped. Purging is best-effort: a
    failing purge is logged as a warning and the run continues.

    Returns:
        The package names that were passed to apt-get purge
    """
    names = selections(patterns)
    if not names:
        log.debug("APT purge: none of the given packages are installed")
        return []
    args = ["purge"]
    if allow_remove_essential:
        args.append("--allow-remove-essential")
    log.info(f"APT purge for: {' '.join(names)}")
    code, stderr = _apt_get([*args, *names])
    if code != 0:
        log.warning(f"APT purge failed, continuing: {stderr}")
    return names


def autoremove() -> None:
    code, stderr = _apt_get(["autopurge"])
    if code != 0:
        raise PackageError(f"APT autopurge failed: {stderr}")
    log.success("APT autopurge")


def clean() -> None:
    run_checked(["apt-get", "clean"])


def show_manual() -> list[str]:
    result = run_command(["apt-mark", "showmanual"])
    return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]


def mark_auto(packages: Sequence[str]) -> None:
    if packages:
        run_checked(["apt-mark", "auto", *packages])


def mark_manual(packages: Sequence[str], description: Optional[str] = None) -> None:
    if packages:
        run_checked(["apt-mark", "manual", *packages], description=description)


def is_installed(package: str) -> bool:
    return run_command(["dpkg-query", "-s", package]).returncode == 0


def installed_packages() -> list[str]:
    result = run_command(["dpkg-query", "-Wf", "${Package}\\n"])
    return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]


def owns_path(path: str) -> bool:
    """Whether any installed package ships the given path."""
    return run_command(["dpkg", "-S", path]).returncode == 0


def package_files(package: str) -> list[str]:
    result = run_command(["dpkg", "-L", package])
    return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]


def add_key(url: str, keyring: Path) -> None:
    """Download an ASCII armored key and store it dearmored as keyring."""
    download = run_checked(["curl", "-sSfL", url], description=f"Downloading key {url}")
    run_checked(
        ["gpg", "--dearmor", "-o", str(keyring), "--yes"],
        input=download.stdout,
        description=f"Storing APT key {keyring.name}",
    )
