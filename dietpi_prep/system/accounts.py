"""User and group account helpers."""

from __future__ import annotations

import grp
import pwd

from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system.command import run_checked


log = LoggerFactory.for_system()


def user_exists(name: str) -> bool:
    try:
        pwd.getpwnam(name)
    except KeyError:
        return False
    return True


def group_exists(name: str) -> bool:
    try:
        grp.getgrnam(name)
    except KeyError:
        return False
    return True


def delete_user(name: str) -> bool:
    """Force-delete a user account if it exists."""
    if not user_exists(name):
        return False
    run_checked(["userdel", "-f", name])
    log.info(f"Deleted user {name}")
    return True


def delete_group(name: str) -> bool:
    if not group_exists(name):
        return False
    run_checked(["groupdel", name])
    log.info(f"Deleted group {name}")
    return True


def add_system_group(name: str) -> None:
    run_checked(["groupadd", "-rf", name])


def set_password(user: str, password: str) -> None:
    run_checked(["chpasswd"], input=f"{user}:{password}\n")
