"""Command execution helpers.

``run_command`` never raises on a non-zero exit and is used for best-effort
operations and probes. ``run_checked`` raises ``CommandError`` and is the
run-and-check wrapper for every operation whose failure aborts the run.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from dietpi_prep.exceptions import CommandError
from dietpi_prep.logging import LoggerFactory


log = LoggerFactory.for_system()
output_log = log.bind(tags=["system", "output"])


def validate_command_args(args: Sequence[str]) -> None:
    """Validate command arguments before executing."""
    if not args or not all(isinstance(arg, str) and arg for arg in args):
        raise ValueError("Command args must be a non-empty list of strings.")


def run_command(
    args: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    input: Optional[str] = None,
    capture: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run a command and return the completed process, whatever its exit code.

    ``env`` entries are added on top of the current process environment.
    With ``capture=False`` stdout and stderr go straight to the terminal,
    which is what long running package manager calls want.
    """
    validate_command_args(args)
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)
    log.debug(
        "Running command: {} cwd={}",
        " ".join(args),
        str(cwd) if cwd else None,
    )
    result = subprocess.run(
        list(args),
        cwd=cwd,
        env=full_env,
        input=input,
        capture_output=capture,
        text=True,
        check=False,
    )
    log.debug("Command return code: {}", result.returncode)
    if capture:
        if result.stdout:
            output_log.trace("{}", result.stdout.strip())
        if result.stderr:
            output_log.trace("{}", result.stderr.strip())
    return result


def run_checked(
    args: Sequence[str],
    *,
    description: Optional[str] = None,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    input: Optional[str] = None,
    capture: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run a command and raise ``CommandError`` unless it exits with 0.

    Args:
        args: Command and arguments
        description: Human readable action, e.g. "Downloading source code"
    """
    result = run_command(args, cwd=cwd, env=env, input=input, capture=capture)
    if result.returncode != 0:
        stderr = (result.stderr or "").strip() if capture else ""
        raise CommandError(args, result.returncode, stderr, description)
    if description:
        log.success(description)
    return result


def shell_test(condition: str, *, env: Optional[Mapping[str, str]] = None) -> bool:
    """Evaluate a shell condition via ``bash -c``; true when it exits with 0."""
    return run_command(["bash", "-c", condition], env=env).returncode == 0


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None
