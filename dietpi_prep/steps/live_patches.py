"""Live patch application.

A live patch is a pair of shell snippets shipped with the source bundle: a
condition and an action. Both are written for a DietPi shell, with
``dietpi-globals`` sourced and the ``G_*`` hardware and distro variables set.
Patches are folded in index order; the status of each one is written to
``/boot/dietpi/.version`` right after it has been evaluated, so an aborted run
leaves a consistent record behind.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from dietpi_prep.domain.models import LivePatch, LivePatchStatus
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.system.command import run_checked, shell_test
from dietpi_prep.versioninfo import store_patch_status


log = LoggerFactory.for_deploy()


@dataclass(frozen=True)
class PatchShell:
    """Runs patch snippets after sourcing ``globals_script`` with ``env`` set."""

    env: Optional[Mapping[str, str]] = None
    globals_script: Optional[str] = None

    def script(self, snippet: str) -> str:
        if self.globals_script is None:
            return snippet
        return f". {shlex.quote(self.globals_script)} && {snippet}"

    def test(self, condition: str) -> bool:
        return shell_test(self.script(condition), env=self.env)

    def execute(self, action: str) -> None:
        run_checked(["bash", "-c", self.script(action)], env=self.env)


DEFAULT_SHELL = PatchShell()


def apply_patch(
    patch: LivePatch,
    *,
    test: Callable[[str], bool] = DEFAULT_SHELL.test,
    execute: Callable[[str], None] = DEFAULT_SHELL.execute,
) -> LivePatch:
    """Evaluate one patch and return it with its new status.

    A failing action raises and aborts the run.
    """
    if test(patch.condition):
        log.info(f"Applying live patch {patch.index}: {patch.description}")
        execute(patch.action)
        return replace(patch, status=LivePatchStatus.APPLIED)
    log.debug(f"Live patch {patch.index} not applicable")
    return replace(patch, status=LivePatchStatus.NOT_APPLICABLE)


def apply_live_patches(
    patches: Iterable[LivePatch],
    version_file: Path,
    *,
    test: Callable[[str], bool] = DEFAULT_SHELL.test,
    execute: Callable[[str], None] = DEFAULT_SHELL.execute,
) -> list[LivePatch]:
    log.info("Applying DietPi live patches to fix known bugs in this version")
    results = []
    for patch in sorted(patches, key=lambda p: p.index):
        result = apply_patch(patch, test=test, execute=execute)
        store_patch_status(version_file, result)
        results.append(result)
    return results
