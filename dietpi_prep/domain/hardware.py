"""Fixed hardware, distro and architecture enumerations.

IDs in this module are shared with the DietPi runtime (dietpi-obtain_hw_model,
dietpi-survey_report). They are append-only: never reorder or reuse an ID.
"""

from __future__ import annotations

from typing import Optional

from dietpi_prep.domain.models import Architecture, Distro, HardwareModel


# Hardware model IDs referenced by the decision tables
RPI = 0
RPI_MAX = 9
ODROID_C1 = 10
ODROID_XU4 = 11
ODROID_C2 = 12
ODROID_N2 = 15
ODROID_C4 = 16
VM = 20
NATIVE_PC = 21
GENERIC_DEVICE = 22
GENERIC_RK3399 = 24
GENERIC_S922X = 29
ROCKPRO64 = 42
PINEBOOK_PRO = 46
NANOPI_R1 = 48
TINKER_BOARD = 52
NANOPI_M4V2 = 58
NANOPI_M2 = 61
NANOPI_M4 = 68
SPARKY_SBC = 70
ROCK_PI_4 = 72
ROCK_PI_S = 73
RADXA_ZERO = 74
CONTAINER = 75

CATEGORY_ARM = "ARM"
CATEGORY_X86_64 = "x86_64"
CATEGORY_OTHER = "Other"

HARDWARE_MODELS: tuple[HardwareModel, ...] = (
    HardwareModel(0, "Raspberry Pi (all models)", CATEGORY_ARM),
    HardwareModel(10, "Odroid C1", CATEGORY_ARM),
    HardwareModel(11, "Odroid XU3/XU4/MC1/HC1/HC2", CATEGORY_ARM),
    HardwareModel(12, "Odroid C2", CATEGORY_ARM),
    HardwareModel(13, "Odroid U3", CATEGORY_ARM),
    HardwareModel(15, "Odroid N2", CATEGORY_ARM),
    HardwareModel(16, "Odroid C4/HC4", CATEGORY_ARM),
    HardwareModel(70, "Sparky SBC", CATEGORY_ARM),
    HardwareModel(52, "ASUS Tinker Board", CATEGORY_ARM),
    HardwareModel(40, "PINE A64", CATEGORY_ARM),
    HardwareModel(45, "PINE H64", CATEGORY_ARM),
    HardwareModel(43, "ROCK64", CATEGORY_ARM),
    HardwareModel(42, "ROCKPro64", CATEGORY_ARM),
    HardwareModel(44, "Pinebook", CATEGORY_ARM),
    HardwareModel(46, "Pinebook Pro", CATEGORY_ARM),
    HardwareModel(59, "ZeroPi", CATEGORY_ARM),
    HardwareModel(60, "NanoPi NEO", CATEGORY_ARM),
    HardwareModel(65, "NanoPi NEO2", CATEGORY_ARM),
    HardwareModel(56, "NanoPi NEO3", CATEGORY_ARM),
    HardwareModel(57, "NanoPi NEO Plus2", CATEGORY_ARM),
    HardwareModel(64, "NanoPi NEO Air", CATEGORY_ARM),
    HardwareModel(63, "NanoPi M1/T1", CATEGORY_ARM),
    HardwareModel(66, "NanoPi M1 Plus", CATEGORY_ARM),
    HardwareModel(61, "NanoPi M2/T2", CATEGORY_ARM),
    HardwareModel(62, "NanoPi M3/T3/Fire3", CATEGORY_ARM),
    HardwareModel(68, "NanoPi M4/T4/NEO4", CATEGORY_ARM),
    HardwareModel(58, "NanoPi M4V2", CATEGORY_ARM),
    HardwareModel(67, "NanoPi K1 Plus", CATEGORY_ARM),
    HardwareModel(54, "NanoPi K2", CATEGORY_ARM),
    HardwareModel(48, "NanoPi R1", CATEGORY_ARM),
    HardwareModel(55, "NanoPi R2S", CATEGORY_ARM),
    HardwareModel(47, "NanoPi R4S", CATEGORY_ARM),
    HardwareModel(72, "ROCK Pi 4", CATEGORY_ARM),
    HardwareModel(73, "ROCK Pi S", CATEGORY_ARM),
    HardwareModel(74, "Radxa Zero", CATEGORY_ARM),
    HardwareModel(21, "x86_64 Native PC", CATEGORY_X86_64),
    HardwareModel(20, "x86_64 Virtual Machine", CATEGORY_X86_64),
    HardwareModel(75, "Container image", CATEGORY_OTHER),
    HardwareModel(29, "Generic Amlogic S922X", CATEGORY_OTHER),
    HardwareModel(28, "Generic Amlogic S905", CATEGORY_OTHER),
    HardwareModel(27, "Generic Allwinner H6", CATEGORY_OTHER),
    HardwareModel(26, "Generic Allwinner H5", CATEGORY_OTHER),
    HardwareModel(25, "Generic Allwinner H3", CATEGORY_OTHER),
    HardwareModel(24, "Generic Rockchip RK3399", CATEGORY_OTHER),
    HardwareModel(23, "Generic Rockchip RK3328", CATEGORY_OTHER),
    HardwareModel(22, "Generic Device", CATEGORY_OTHER),
)

_MODELS_BY_ID = {model.id: model for model in HARDWARE_MODELS}

BUSTER = Distro(5, "buster")
BULLSEYE = Distro(6, "bullseye")
BOOKWORM = Distro(7, "bookworm")

DISTROS: tuple[Distro, ...] = (BUSTER, BULLSEYE, BOOKWORM)

# Forward list offered as upgrade targets, in menu order
DISTRO_TARGETS: tuple[tuple[Distro, str], ...] = (
    (BULLSEYE, "Bullseye (current stable release, recommended)"),
    (BOOKWORM, "Bookworm (testing, if you want to live on bleeding edge)"),
)

ARMV6L = Architecture(1, "armv6l")
ARMV7L = Architecture(2, "armv7l")
AARCH64 = Architecture(3, "aarch64")
X86_64 = Architecture(10, "x86_64")

ARCHITECTURES: tuple[Architecture, ...] = (ARMV6L, ARMV7L, AARCH64, X86_64)


def get_hardware_model(model_id: int) -> Optional[HardwareModel]:
    return _MODELS_BY_ID.get(model_id)


def distro_for_version(version: str) -> Optional[Distro]:
    """Map the contents of /etc/debian_version to a supported distro.

    Both point releases ("11.5") and the testing marker ("bullseye/sid")
    are recognised.
    """
    version = version.strip()
    for distro, major in zip(DISTROS, ("10", "11", "12")):
        if version.startswith(f"{major}.") or version == f"{distro.name}/sid":
            return distro
    return None


def architecture_for_machine(machine: str) -> Optional[Architecture]:
    """Map a machine type string (uname -m) to a supported architecture.

    armv6l is deliberately absent: it is only selected via the Raspbian
    override.
    """
    for arch in (ARMV7L, AARCH64, X86_64):
        if arch.name == machine:
            return arch
    return None


def distro_targets_from(current: Distro) -> list[tuple[Distro, str]]:
    """Upgrade targets that are not older than the running distro."""
    return [entry for entry in DISTRO_TARGETS if entry[0].id >= current.id]
