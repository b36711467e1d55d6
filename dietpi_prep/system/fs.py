"""Filesystem helpers.

Removals are existence-checked and never fail on absent paths. Writes,
copies and moves raise on failure.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Iterable, Optional

from dietpi_prep.exceptions import DeploymentError
from dietpi_prep.logging import LoggerFactory


log = LoggerFactory.for_system()


def remove(path: Path) -> bool:
    """Remove a file, symlink or directory tree if it exists."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()
    else:
        return False
    log.debug(f"Removed {path}")
    return True


def remove_glob(root: Path, pattern: str) -> list[Path]:
    """Remove everything below root matching a glob pattern.

    Unlike the shell, the pattern also matches hidden entries.
    """
    removed = []
    for path in sorted(root.glob(pattern.lstrip("/")), reverse=True):
        if remove(path):
            removed.append(path)
    return removed


def clear_dir(path: Path) -> list[Path]:
    """Remove the contents of a directory, keeping the directory itself."""
    if not path.is_dir() or path.is_symlink():
        return []
    removed = []
    for child in sorted(path.iterdir()):
        if remove(child):
            removed.append(child)
    return removed


def write_file(path: Path, content: str, *, mode: Optional[int] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mode is not None:
        path.chmod(mode)
    log.debug(f"Wrote {path}")


def symlink(target: str, link: Path) -> None:
    """Create or replace a symlink (ln -sf)."""
    link.parent.mkdir(parents=True, exist_ok=True)
    if link.is_symlink() or link.is_file():
        link.unlink()
    os.symlink(target, link)
    log.debug(f"Linked {link} -> {target}")


def move(src: Path, dst: Path) -> None:
    """Move a file, failing the run when the source is missing."""
    if not src.exists():
        raise DeploymentError(f"Unable to move {src}: no such file", str(src))
    dst.parent.mkdir(parents=True, exist_ok=True)
    if dst.is_dir() and not src.is_dir():
        dst = dst / src.name
    shutil.move(str(src), str(dst))
    log.debug(f"Moved {src} -> {dst}")


def copy_file(src: Path, dst: Path) -> None:
    """Copy a file with its mode and timestamps (cp -p)."""
    if not src.is_file():
        raise DeploymentError(f"Unable to copy {src}: no such file", str(src))
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)
    log.debug(f"Copied {src} -> {dst}")


def copy_tree(src: Path, dst: Path) -> None:
    """Copy a directory tree preserving symlinks and modes (cp -a src/. dst)."""
    if not src.is_dir():
        raise DeploymentError(f"Unable to copy {src}: no such directory", str(src))
    shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
    log.debug(f"Copied {src} -> {dst}")


def make_dirs(paths: Iterable[Path], mode: Optional[int] = None) -> None:
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)
        if mode is not None:
            path.chmod(mode)


def chmod_tree(root: Path, *, dir_mode: int, file_mode: Optional[int] = None) -> None:
    """Apply modes to root and everything below it (chmod -R).

    Files are left alone when no file_mode is given.
    """
    root.chmod(dir_mode)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames:
            path = Path(dirpath) / name
            if not path.is_symlink():
                path.chmod(dir_mode)
        if file_mode is None:
            continue
        for name in filenames:
            path = Path(dirpath) / name
            if not path.is_symlink():
                path.chmod(file_mode)


def remove_group_write(root: Path) -> None:
    """Drop the group write bit below root (chmod -R g-w)."""
    for dirpath, dirnames, filenames in os.walk(root):
        for name in [*dirnames, *filenames]:
            path = Path(dirpath) / name
            if not path.is_symlink():
                path.chmod(path.stat().st_mode & ~0o020)
    root.chmod(root.stat().st_mode & ~0o020)
