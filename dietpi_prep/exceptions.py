"""Custom exceptions for the PREP run.

Every fatal condition is raised as a ``PrepError`` subclass and handled once in
``main()``, which logs it and exits non-zero. A cancelled dialog raises
``PrepAborted`` instead, which is a clean, zero-exit abort.

Exception Hierarchy:
    PrepError (base, exit code 1)
        ├── PreconditionError
        │   └── RootRequiredError
        ├── DetectionError
        │   ├── UnsupportedDistroError
        │   └── UnsupportedArchitectureError
        ├── PrerequisiteInstallError
        ├── CommandError
        ├── DeploymentError
        └── PackageError
    PrepAborted (exit code 0)

Usage:
    from dietpi_prep.exceptions import UnsupportedDistroError

    if distro is None:
        raise UnsupportedDistroError(version_string)
"""

from __future__ import annotations

from typing import Optional, Sequence


class PrepError(Exception):
    """Base exception for all fatal PREP failures."""

    exit_code = 1
    hint: Optional[str] = None


class PrepAborted(Exception):
    """The user selected "Exit" in a dialog."""

    exit_code = 0

    def __init__(self, message: str = "Exit selected. Aborting..."):
        super().__init__(message)


class PreconditionError(PrepError):
    """A requirement for running PREP is not met."""


class RootRequiredError(PreconditionError):
    """PREP was started without root privileges."""

    hint = 'In case install the "sudo" package with root privileges:\n\t# apt install sudo'

    def __init__(self) -> None:
        super().__init__('Root privileges required, please run this script with "sudo"')


class DetectionError(PrepError):
    """Base exception for platform detection failures."""


class UnsupportedDistroError(DetectionError):
    """The installed Debian version is not supported."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f'Unsupported distribution version: "{version}". Aborting...')


class UnsupportedArchitectureError(DetectionError):
    """The CPU architecture is not supported."""

    def __init__(self, machine: str):
        self.machine = machine
        super().__init__(f'Unsupported CPU architecture: "{machine}". Aborting...')


class PrerequisiteInstallError(PrepError):
    """A package required by PREP itself could not be installed."""

    def __init__(self, package: str):
        self.package = package
        self.hint = f"Please try to install it manually:\n\t # apt install {package}"
        super().__init__(f"Unable to install {package}")


class CommandError(PrepError):
    """A required command exited with a non-zero status."""

    def __init__(
        self,
        args: Sequence[str],
        returncode: int,
        stderr: str = "",
        description: Optional[str] = None,
    ):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.description = description
        label = description or " ".join(self.args_list)
        msg = f"{label} failed (exit code {returncode})"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class DeploymentError(PrepError):
    """The DietPi source bundle could not be deployed."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class PackageError(PrepError):
    """A mandatory package manager operation failed."""

    def __init__(self, message: str, packages: Optional[Sequence[str]] = None):
        self.packages = list(packages or [])
        super().__init__(message)
