"""Run-scoped state shared by the pipeline steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dietpi_prep.config.settings import EnvironmentInputs
from dietpi_prep.domain.models import GitSource, PackagePlan, Platform, PrepConfig
from dietpi_prep.ui.whiptail import Prompter


@dataclass
class PrepContext:
    """Collaborators and results handed from one step to the next.

    ``root_dir`` is ``/`` in production; every filesystem path a step touches
    is resolved through ``path()`` so that the whole run can be pointed at a
    scratch tree.

    The identity facts are filled in as the pipeline proceeds: ``git`` by the
    bootstrap, ``platform`` by detection and ``config`` once all inputs are
    known. ``config`` is never mutated, only replaced by a derived copy.
    """

    prompter: Prompter
    environment: EnvironmentInputs = field(default_factory=EnvironmentInputs)
    root_dir: Path = Path("/")
    script_path: Optional[Path] = None
    keep_script: bool = False
    log_dir: Optional[Path] = None
    debug: bool = False
    trace: bool = False

    git: Optional[GitSource] = None
    platform: Optional[Platform] = None
    config: Optional[PrepConfig] = None
    packages: PackagePlan = field(default_factory=PackagePlan)

    def path(self, path: str) -> Path:
        """Resolve an absolute system path below root_dir."""
        return self.root_dir / path.lstrip("/")

    def arg(self, path: str) -> str:
        """Like path(), as a command line argument."""
        return str(self.path(path))

    @property
    def work_dir(self) -> Path:
        """Scratch directory on the /tmp tmpfs."""
        return self.path("/tmp")

    @property
    def cfg(self) -> PrepConfig:
        if self.config is None:
            raise RuntimeError("Configuration is not available before input collection")
        return self.config
