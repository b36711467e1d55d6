"""The PREP pipeline: ordered steps, run once, strictly in sequence.

There is no resume: a failing step aborts the run and a re-run starts over
from the first step. Every step tolerates being re-run on a partially
prepared system.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from dietpi_prep.context import PrepContext
from dietpi_prep.logging import step_context
from dietpi_prep.steps import (
    apt_setup,
    bootstrap,
    cleanup,
    deploy,
    detection,
    finalize,
    firstboot,
    inputs,
    install,
    packages,
    teardown,
)


@dataclass(frozen=True)
class Step:
    title: str
    run: Callable[[PrepContext], object]


STEPS: tuple[Step, ...] = (
    Step("Preparing the environment", bootstrap.run),
    Step("Detecting platform", detection.run),
    Step("Detecting existing DietPi system", teardown.run),
    Step("Target system inputs", inputs.run),
    Step("Downloading and installing DietPi source code", deploy.run),
    Step("APT configuration", apt_setup.run),
    Step("Generating list of minimal packages, required for DietPi installation", packages.run),
    Step("Installing core DietPi pre-req DEB packages", install.run),
    Step("Applying DietPi tweaks and cleanup", cleanup.run),
    Step("Configuring system for first boot of DietPi", firstboot.run),
    Step("Finalise system for first boot of DietPi", finalize.run),
)


@dataclass(frozen=True)
class PipelineResult:
    ran_steps: list[str]


def run_pipeline(ctx: PrepContext, steps: Sequence[Step] = STEPS) -> PipelineResult:
    """Run steps in order; the first exception aborts the run."""
    ran: list[str] = []
    for index, step in enumerate(steps, start=1):
        with step_context(index, step.title):
            step.run(ctx)
        ran.append(step.title)
    return PipelineResult(ran_steps=ran)
