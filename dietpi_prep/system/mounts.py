"""Mount and block device queries."""

from __future__ import annotations

from typing import Optional

import psutil

from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system.command import run_checked, run_command


log = LoggerFactory.for_system()


def is_mountpoint(path: str) -> bool:
    """Whether path is a dedicated mount point."""
    return any(part.mountpoint == path for part in psutil.disk_partitions(all=True))


def mount_size(path: str) -> Optional[int]:
    """Total size in bytes of the filesystem mounted at path, None if no mount."""
    if not is_mountpoint(path):
        return None
    return psutil.disk_usage(path).total


def findmnt(
    column: str,
    *,
    mountpoint: Optional[str] = None,
    target: Optional[str] = None,
    fstype: Optional[str] = None,
) -> str:
    """Query one findmnt column for a mount point (-M) or containing mount (-T).

    Returns an empty string when nothing matches.
    """
    argv = ["findmnt", "-Ufnro", column]
    if fstype:
        argv += ["-t", fstype]
    if mountpoint:
        argv += ["-M", mountpoint]
    elif target:
        argv += ["-T", target]
    result = run_command(argv)
    if result.returncode != 0:
        return ""
    lines = (result.stdout or "").strip().splitlines()
    return lines[0].strip() if lines else ""


def root_uuid(root: str = "/") -> str:
    return findmnt("UUID", mountpoint=root)


def root_partuuid(root: str = "/") -> str:
    return findmnt("PARTUUID", mountpoint=root)


def fstype_of(mountpoint: str) -> str:
    return findmnt("FSTYPE", mountpoint=mountpoint)


def source_of(mountpoint: str) -> str:
    return findmnt("SOURCE", mountpoint=mountpoint)


def is_vfat_mount(mountpoint: str) -> bool:
    """Whether mountpoint is a dedicated vfat mount (e.g. a FAT /boot partition)."""
    return bool(findmnt("TARGET", mountpoint=mountpoint, fstype="vfat"))


def on_root_fs(path: str, *, fstype: Optional[str] = None) -> bool:
    """Whether path resides on the root filesystem (optionally of a given type)."""
    return findmnt("TARGET", target=path, fstype=fstype) == "/"


def parent_disk(device: str) -> str:
    """Parent disk of a partition device, e.g. /dev/sda for /dev/sda2."""
    if not device:
        return ""
    result = run_command(["lsblk", "-npo", "PKNAME", device])
    lines = (result.stdout or "").strip().splitlines()
    return lines[0].strip() if lines else ""


def root_disk(root: str = "/") -> str:
    return parent_disk(source_of(root))


def partition_table_type(disk: str) -> str:
    if not disk:
        return ""
    result = run_command(["blkid", "-s", "PTTYPE", "-o", "value", "-c", "/dev/null", disk])
    return (result.stdout or "").strip()


def filesystem_types() -> list[str]:
    """Sorted unique filesystem types of all block devices known to blkid."""
    result = run_command(["blkid", "-s", "TYPE", "-o", "value", "-c", "/dev/null"])
    return sorted({line.strip() for line in (result.stdout or "").splitlines() if line.strip()})


def first_partition_start(disk: str) -> int:
    """Start sector of the first partition on disk, 0 if unknown."""
    if not disk:
        return 0
    result = run_command(["sfdisk", "-qlo", "Start", disk])
    lines = (result.stdout or "").strip().splitlines()
    # First line is the column header
    try:
        return int(lines[1].strip())
    except (IndexError, ValueError):
        return 0


def mount(source: str, target: str, *options: str) -> None:
    run_checked(["mount", *options, source, target])


def umount(target: str, *, recursive: bool = False) -> None:
    run_checked(["umount", *(["-R"] if recursive else []), target])


def is_mounted(target: str) -> bool:
    return run_command(["findmnt", target]).returncode == 0
