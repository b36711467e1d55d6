"""Fixed constants and environment inputs for a PREP run."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


PROGRAM_NAME = "DietPi-PREP"

# Minimum size of the /tmp scratch tmpfs, in bytes (512 MiB)
TMPFS_MIN_SIZE = 536870912

LOCALE = "C.UTF-8"
SYSTEM_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"
ENVIRONMENT_FILE = Path("/etc/environment")

WORK_DIR = Path("/tmp")
LOG_DIR = Path(
    os.environ.get(
        "DIETPI_PREP_LOG_DIR",
        WORK_DIR / "DietPi-PREP" / "logs",
    )
)

DEFAULT_GIT_OWNER = "MichaIng"
GIT_BRANCHES: tuple[tuple[str, str], ...] = (
    ("master", "Stable release branch (recommended)"),
    ("beta", "Public beta testing branch"),
    ("dev", "Unstable development branch"),
)
DEFAULT_GIT_BRANCH = "master"

SOURCE_ARCHIVE_URL = "https://github.com/{owner}/DietPi/archive/{branch}.tar.gz"
RAW_BASE_URL = "https://raw.githubusercontent.com/{owner}/DietPi/{branch}"
DIETPI_DOWNLOAD_URL = "https://dietpi.com/downloads"

# Tools PREP itself needs before anything else runs
PREREQUISITE_PACKAGES = ("curl", "ca-certificates", "whiptail")

# Reserved substrings that may not appear in an image creator name
RESERVED_CREATOR_NAMES = (
    "official",
    "fourdee",
    "daniel knight",
    "dan knight",
    "michaing",
    "diet",
)

HOSTNAME = "DietPi"


@dataclass(frozen=True)
class EnvironmentInputs:
    """Optional automation inputs read from the process environment.

    Values are kept as raw strings; validation is left to the input
    collection step so that invalid values fall back to the dialogs.
    """

    git_owner: Optional[str] = None
    git_branch: Optional[str] = None
    image_creator: Optional[str] = None
    preimage_info: Optional[str] = None
    hw_model: Optional[str] = None
    wifi_required: Optional[str] = None
    distro_target: Optional[str] = None

    @classmethod
    def from_environ(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> EnvironmentInputs:
        if environ is None:
            environ = os.environ

        def _get(name: str) -> Optional[str]:
            value = environ.get(name)
            return value if value else None

        return cls(
            git_owner=_get("GITOWNER"),
            git_branch=_get("GITBRANCH"),
            image_creator=_get("IMAGE_CREATOR"),
            preimage_info=_get("PREIMAGE_INFO"),
            hw_model=_get("HW_MODEL"),
            wifi_required=_get("WIFI_REQUIRED"),
            distro_target=_get("DISTRO_TARGET"),
        )
