"""Domain model for a PREP run.

Every identifier gathered during detection and input collection ends up in
one immutable ``PrepConfig`` that is passed explicitly to each step.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

# ==============================================================================
# Platform Domain
# ==============================================================================


@dataclass(frozen=True)
class Distro:
    """A supported Debian release."""

    id: int  # e.g., 6
    name: str  # e.g., "bullseye"

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class Architecture:
    """A supported CPU architecture."""

    id: int  # e.g., 10
    name: str  # e.g., "x86_64"


@dataclass(frozen=True)
class Platform:
    """Detected OS and CPU facts of the running system."""

    distro: Distro
    arch: Architecture
    raspbian: bool = False


@dataclass(frozen=True)
class HardwareModel:
    """One entry of the fixed hardware model enumeration."""

    id: int
    name: str
    category: str  # "ARM", "x86_64" or "Other"


# ==============================================================================
# Configuration Domain
# ==============================================================================


@dataclass(frozen=True)
class GitSource:
    """Where the DietPi source bundle is downloaded from."""

    owner: str
    branch: str

    @property
    def archive_dir(self) -> str:
        """Name of the directory the tarball unpacks into."""
        return f"DietPi-{self.branch}"


@dataclass(frozen=True)
class PrepInputs:
    """Validated results of the input collection step."""

    image_creator: str
    preimage_info: str
    hw_model: int
    wifi_required: bool
    distro_target: Distro


@dataclass(frozen=True)
class PrepConfig:
    """Immutable configuration threaded through the pipeline.

    ``platform.distro`` is the running distro. Once the system has been
    upgraded, ``with_target_distro()`` derives the config in which the target
    has become the running distro.
    """

    platform: Platform
    git: GitSource
    hw_model: int
    wifi_required: bool
    distro_target: Distro
    image_creator: str
    preimage_info: str

    @classmethod
    def from_inputs(
        cls, platform: Platform, git: GitSource, inputs: PrepInputs
    ) -> PrepConfig:
        return cls(
            platform=platform,
            git=git,
            hw_model=inputs.hw_model,
            wifi_required=inputs.wifi_required,
            distro_target=inputs.distro_target,
            image_creator=inputs.image_creator,
            preimage_info=inputs.preimage_info,
        )

    @property
    def distro(self) -> Distro:
        return self.platform.distro

    @property
    def arch(self) -> Architecture:
        return self.platform.arch

    @property
    def is_rpi(self) -> bool:
        return self.hw_model < 10

    @property
    def is_vm(self) -> bool:
        return self.hw_model == 20

    @property
    def is_container(self) -> bool:
        return self.hw_model == 75

    @property
    def is_physical(self) -> bool:
        """Real hardware, neither a virtual machine nor a container."""
        return not self.is_vm and not self.is_container

    @property
    def is_x86_64(self) -> bool:
        return self.arch.id == 10

    def with_target_distro(self) -> PrepConfig:
        """Config after the upgrade: the target is now the running distro."""
        return replace(self, platform=replace(self.platform, distro=self.distro_target))

    def dietpi_env(self) -> dict[str, str]:
        """Globals the DietPi runtime scripts expect before hardware detection."""
        return {
            "G_HW_MODEL": str(self.hw_model),
            "G_HW_ARCH": str(self.arch.id),
            "G_HW_ARCH_NAME": self.arch.name,
            "G_DISTRO": str(self.distro.id),
            "G_DISTRO_NAME": self.distro.name,
            "G_RASPBIAN": "1" if self.platform.raspbian else "0",
            "G_GITOWNER": self.git.owner,
            "G_GITBRANCH": self.git.branch,
        }


# ==============================================================================
# Source Bundle Domain
# ==============================================================================


@dataclass(frozen=True)
class VersionRecord:
    """Exact source revision installed by PREP."""

    core: int
    sub: int
    rc: int
    branch: str
    owner: str

    def to_shell(self) -> str:
        """Render as the shell assignments of /boot/dietpi/.version."""
        return (
            f"G_DIETPI_VERSION_CORE={self.core}\n"
            f"G_DIETPI_VERSION_SUB={self.sub}\n"
            f"G_DIETPI_VERSION_RC={self.rc}\n"
            f"G_GITBRANCH='{self.branch}'\n"
            f"G_GITOWNER='{self.owner}'\n"
        )

    def __str__(self) -> str:
        return f"v{self.core}.{self.sub}.{self.rc} ({self.owner}/{self.branch})"


class LivePatchStatus(str, Enum):
    """Persisted outcome of a live patch."""

    PENDING = "pending"
    APPLIED = "applied"
    NOT_APPLICABLE = "not applicable"


@dataclass(frozen=True)
class LivePatch:
    """A conditional one-off fixup shipped with the source bundle.

    ``condition`` and ``action`` are shell snippets; the patch applies when
    the condition exits with status 0.
    """

    index: int
    description: str
    condition: str
    action: str
    status: LivePatchStatus = LivePatchStatus.PENDING


# ==============================================================================
# Package Domain
# ==============================================================================


@dataclass
class PackagePlan:
    """Packages the resulting image must have installed and marked manual.

    ``required`` keeps insertion order and may hold duplicates; ``unique()``
    is what gets installed.
    """

    required: list[str] = field(default_factory=list)
    purge_extra: list[str] = field(default_factory=list)

    def add(self, *packages: str) -> None:
        self.required.extend(packages)

    def unique(self) -> list[str]:
        return list(dict.fromkeys(self.required))

    def __contains__(self, package: object) -> bool:
        return package in self.required
