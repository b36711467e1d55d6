"""Platform detection: distro version and CPU architecture."""

from __future__ import annotations

import platform as host_platform
from pathlib import Path

from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import ARMV6L, architecture_for_machine, distro_for_version
from dietpi_prep.domain.models import Architecture, Distro, Platform
from dietpi_prep.exceptions import (
    UnsupportedArchitectureError,
    UnsupportedDistroError,
)
from dietpi_prep.logging import LoggerFactory


log = LoggerFactory.for_prep()


def detect_distro(debian_version: Path) -> Distro:
    version = debian_version.read_text(encoding="utf-8").strip() if debian_version.exists() else ""
    distro = distro_for_version(version)
    if distro is None:
        raise UnsupportedDistroError(version)
    log.info(f"Detected distribution version: {distro.display_name} (ID: {distro.id})")
    return distro


def is_raspbian(os_release: Path) -> bool:
    if not os_release.exists():
        return False
    return any(
        line.startswith("ID=raspbian")
        for line in os_release.read_text(encoding="utf-8").splitlines()
    )


def detect_architecture(os_release: Path, machine: str | None = None) -> tuple[Architecture, bool]:
    """Return the architecture and whether this is Raspbian.

    Raspbian always counts as armv6l, whatever the kernel reports.
    """
    if is_raspbian(os_release):
        arch, raspbian = ARMV6L, True
    else:
        machine = machine if machine is not None else host_platform.machine()
        found = architecture_for_machine(machine)
        if found is None:
            raise UnsupportedArchitectureError(machine)
        arch, raspbian = found, False
    log.info(f"Detected target CPU architecture: {arch.name} (ID: {arch.id})")
    return arch, raspbian


def run(ctx: PrepContext) -> None:
    distro = detect_distro(ctx.path("/etc/debian_version"))
    arch, raspbian = detect_architecture(ctx.path("/etc/os-release"))
    ctx.platform = Platform(distro=distro, arch=arch, raspbian=raspbian)
