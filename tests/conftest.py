"""
Pytest configuration and shared fixtures for DietPi-PREP tests.

No test executes a real system command: ``subprocess.run`` is replaced by a
``FakeRunner`` that records every call, and all file effects happen below a
temporary root directory handed to the steps as ``PrepContext.root_dir``.
"""

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest
from loguru import logger

from dietpi_prep.config.settings import EnvironmentInputs
from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import BULLSEYE, NATIVE_PC, X86_64
from dietpi_prep.domain.models import GitSource, Platform, PrepConfig


VERSION_FILE_CONTENT = """\
G_REMOTE_VERSION_CORE=8
G_REMOTE_VERSION_SUB=10
G_REMOTE_VERSION_RC=2
G_MIN_DEBIAN=5
G_LIVE_PATCH_DESC=(
	[0]='Fix wrong permissions'
	[1]='Fix legacy service'
)
G_LIVE_PATCH_COND=(
	[0]='[[ -f /etc/foo ]]'
	[1]='[[ -f /etc/bar ]]'
)
G_LIVE_PATCH=(
	[0]='chmod 0644 /etc/foo'
	[1]='rm /etc/bar'
)
"""


def make_source_tree(tree: Path) -> Path:
    """Create a minimal unpacked DietPi source bundle."""
    for directory in ("dietpi/func", "rootfs/etc/systemd/system", ".update", ".build/images/U-Boot"):
        (tree / directory).mkdir(parents=True, exist_ok=True)
    (tree / "dietpi/func/dietpi-set_software").write_text("#!/bin/bash\n")
    (tree / "dietpi/func/dietpi-globals").write_text("#!/bin/bash\n")
    (tree / "dietpi/dietpi-services").write_text("#!/bin/bash\n")
    (tree / "rootfs/etc/systemd/system/dietpi-ramlog.service").write_text("[Unit]\n")
    (tree / "dietpi.txt").write_text("AUTO_SETUP_SWAPFILE_SIZE=0\nDEV_GITBRANCH=dev\n")
    (tree / "README.md").write_text("# DietPi\n")
    (tree / "LICENSE").write_text("GPLv2\n")
    (tree / "config.txt").write_text("#arm_64bit=0\n")
    (tree / "boot_c2.ini").write_text('setenv bootargs "root=/dev/mmcblk0p2"\n')
    for name in ("boot.cmd", "dietpiEnv.txt", "dietpi-initramfs_cleanup", "99-dietpi-uboot"):
        (tree / ".build/images/U-Boot" / name).write_text("mkimage -A arm64\nln -sf x y\n")
    (tree / ".update/version").write_text(VERSION_FILE_CONTENT)
    return tree


# ==============================================================================
# Command Runner Fixtures
# ==============================================================================


@dataclass
class Call:
    """One recorded subprocess.run invocation."""

    args: List[str]
    cwd: Optional[Path] = None
    input: Optional[str] = None
    env: Optional[dict] = None


@dataclass
class Rule:
    prefix: List[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    effect: Optional[Callable[[Call], None]] = None


@dataclass
class FakeRunner:
    """Stand-in for subprocess.run.

    Rules match on an argument prefix; rules added later take precedence.
    Without a matching rule, a few commands have built-in behaviour:

    - ``dpkg-query -s`` reports packages as not installed
    - ``curl -sSfLO URL`` creates the downloaded file in cwd
    - ``curl ... -o FILE`` creates FILE
    - ``tar xf <branch>.tar.gz`` unpacks a minimal DietPi source bundle
    - everything else succeeds with empty output
    """

    calls: List[Call] = field(default_factory=list)
    rules: List[Rule] = field(default_factory=list)

    def on(self, *prefix: str, returncode=0, stdout="", stderr="", effect=None) -> "FakeRunner":
        self.rules.append(Rule(list(prefix), returncode, stdout, stderr, effect))
        return self

    def __call__(self, args, **kwargs):
        call = Call(
            args=list(args),
            cwd=kwargs.get("cwd"),
            input=kwargs.get("input"),
            env=kwargs.get("env"),
        )
        self.calls.append(call)

        for rule in reversed(self.rules):
            if call.args[: len(rule.prefix)] == rule.prefix:
                if rule.effect:
                    rule.effect(call)
                return subprocess.CompletedProcess(call.args, rule.returncode, rule.stdout, rule.stderr)

        returncode = self._default(call)
        return subprocess.CompletedProcess(call.args, returncode, "", "")

    @staticmethod
    def _default(call: Call) -> int:
        args = call.args
        if args[:2] == ["dpkg-query", "-s"]:
            return 1
        if args[0] == "curl" and "-sSfLO" in args:
            Path(call.cwd, args[-1].rsplit("/", 1)[-1]).write_text("archive")
        elif args[0] == "curl" and "-o" in args:
            target = Path(args[args.index("-o") + 1])
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("")
        elif args[:2] == ["tar", "xf"] and args[2].endswith(".tar.gz"):
            branch = args[2][: -len(".tar.gz")]
            make_source_tree(Path(call.cwd) / f"DietPi-{branch}")
        return 0

    @property
    def commands(self) -> List[List[str]]:
        return [call.args for call in self.calls]

    def find(self, *prefix: str) -> List[Call]:
        return [call for call in self.calls if call.args[: len(prefix)] == list(prefix)]

    def ran(self, *prefix: str) -> bool:
        return bool(self.find(*prefix))

    def index(self, *prefix: str) -> int:
        """Position of the first call with the given prefix."""
        for position, call in enumerate(self.calls):
            if call.args[: len(prefix)] == list(prefix):
                return position
        raise AssertionError(f"Command never ran: {' '.join(prefix)}")


@pytest.fixture
def runner(mocker) -> FakeRunner:
    """Fixture replacing subprocess.run with a recording FakeRunner."""
    fake = FakeRunner()
    mocker.patch("subprocess.run", side_effect=fake)
    return fake


# ==============================================================================
# Prompter Fixtures
# ==============================================================================


class ScriptedPrompter:
    """Prompter answering dialogs from a queue; None answers mean "Exit"."""

    def __init__(self, answers: Sequence[Optional[str]] = ()):
        self.answers = list(answers)
        self.menus: List[tuple] = []
        self.inputs: List[str] = []
        self.messages: List[str] = []

    def _next(self) -> Optional[str]:
        if not self.answers:
            raise AssertionError("Unexpected dialog")
        return self.answers.pop(0)

    def menu(self, text, items, default=None):
        self.menus.append((text, list(items), default))
        return self._next()

    def inputbox(self, text, default=""):
        self.inputs.append(text)
        return self._next()

    def msgbox(self, text):
        self.messages.append(text)

    @property
    def dialog_count(self) -> int:
        return len(self.menus) + len(self.inputs)


@pytest.fixture
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


# ==============================================================================
# System Root Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(mocker):
    """Restore os.environ and loguru sinks after each test."""
    mocker.patch.dict(os.environ)
    yield
    logger.remove()


@pytest.fixture
def root(tmp_path) -> Path:
    """A scratch system root with the files a fresh Debian install has."""
    system = tmp_path / "root"
    (system / "etc/default").mkdir(parents=True)
    (system / "tmp").mkdir()
    (system / "boot").mkdir()
    (system / "var").mkdir()
    (system / "etc/debian_version").write_text("11.5\n")
    (system / "etc/os-release").write_text('PRETTY_NAME="Debian GNU/Linux 11 (bullseye)"\nID=debian\n')
    (system / "etc/default/dropbear").write_text("# disabled because OpenSSH is installed\nNO_START=1\n")
    return system


@pytest.fixture
def fake_host(mocker):
    """Root privileges, an x86_64 CPU and no dedicated mounts."""
    mocker.patch("os.geteuid", return_value=0)
    mocker.patch("platform.machine", return_value="x86_64")
    mocker.patch("psutil.disk_partitions", return_value=[])


def make_config(
    hw_model: int = NATIVE_PC,
    *,
    arch=X86_64,
    distro=BULLSEYE,
    distro_target=None,
    wifi_required: bool = False,
    raspbian: bool = False,
    git: Optional[GitSource] = None,
) -> PrepConfig:
    """Build a PrepConfig with sensible defaults for a native PC."""
    return PrepConfig(
        platform=Platform(distro=distro, arch=arch, raspbian=raspbian),
        git=git or GitSource("MichaIng", "master"),
        hw_model=hw_model,
        wifi_required=wifi_required,
        distro_target=distro_target or distro,
        image_creator="Tester",
        preimage_info="Debian",
    )


@pytest.fixture
def make_ctx(root, prompter, tmp_path):
    """Factory for a PrepContext below the scratch root."""

    def _make(config: Optional[PrepConfig] = None, environment: Optional[EnvironmentInputs] = None):
        ctx = PrepContext(
            prompter=prompter,
            environment=environment or EnvironmentInputs(),
            root_dir=root,
            log_dir=tmp_path / "logs",
        )
        ctx.config = config
        if config is not None:
            ctx.git = config.git
            ctx.platform = config.platform
        return ctx

    return _make


@pytest.fixture
def ctx(make_ctx):
    """Context of a native PC on Bullseye."""
    return make_ctx(make_config())
