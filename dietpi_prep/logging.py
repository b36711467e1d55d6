from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

from dietpi_prep.config.settings import LOG_DIR as DEFAULT_LOG_DIR


def _should_log_command_output(record) -> bool:
    """Keep raw command stdout/stderr dumps out of the console below TRACE."""
    tags = record["extra"].get("tags", [])
    if "output" in tags:
        return record["level"].no <= logger.level("TRACE").no or (
            record["level"].no >= logger.level("WARNING").no
        )
    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
) -> Logger:
    """
    Setup console logging for a PREP run.

    File sinks are attached separately via attach_log_files(), once the
    scratch tmpfs is mounted, so that log files are not hidden below the new
    /tmp mount.

    Levels:
    - ERROR: fatal failures, the run aborts
    - SUCCESS: completed steps and the final summary
    - INFO: step headers and decisions (detected IDs, selected inputs)
    - DEBUG: command execution (--debug)
    - TRACE: raw command output (--trace)

    Args:
        debug: Enable DEBUG level console output
        trace: Enable TRACE level console output (very verbose)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "prep"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_should_log_command_output,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <8}</cyan> | "
            "<blue>{extra[job_id]: <8}</blue> | "
            "{message}"
        ),
    )
    return logger


def attach_log_files(
    log_dir: Path | None = None,
    *,
    debug: bool = False,
    trace: bool = False,
) -> Path:
    """
    Add file sinks below log_dir.

    Log Files:
    - prep.log: INFO+ events (DEBUG+ with --debug, TRACE+ with --trace)
    - structured.jsonl: Structured JSON logs for analysis (INFO+)

    Returns:
        The log directory in use
    """
    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    file_level = "TRACE" if trace else "DEBUG" if debug else "INFO"
    logger.add(
        log_dir / "prep.log",
        level=file_level,
        enqueue=True,
        backtrace=debug or trace,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <8} | "
            "{extra[job_id]: <8} | "
            "{message}"
        ),
    )
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        enqueue=True,
        serialize=True,
        format="{message}",
    )
    return log_dir


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Step identifier (e.g., "step-4")
        tags: Tags for filtering (e.g., ["apt", "install"])
        source: Source component (e.g., "apt", "deploy")
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def step_context(index: int, title: str, **details) -> Iterator[Logger]:
    """
    Context manager for one pipeline step with automatic timing.

    Logs the step header, completion with duration, or failure with the
    error type, then re-raises.

    Example:
        with step_context(3, "Target system inputs") as log:
            log.info("Entered image creator: Tux")
    """
    job_id = f"step-{index}"

    with logger.contextualize(job_id=job_id, step=title, **details):
        start_time = time.time()
        log = logger.bind(source="prep", job_id=job_id, tags=["step"])
        log.info(f"[{index}] {title}")

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"[{index}] {title} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"[{index}] {title} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for component loggers with automatic context.

    Each factory method returns a logger pre-configured with the source and
    tags of the component.
    """

    @staticmethod
    def for_prep() -> Logger:
        """Logger for pipeline level decisions and notifications."""
        return logger.bind(source="prep", tags=["prep"])

    @staticmethod
    def for_apt() -> Logger:
        """Logger for package manager operations."""
        return logger.bind(source="apt", tags=["apt", "packages"])

    @staticmethod
    def for_systemd() -> Logger:
        """Logger for service manager operations."""
        return logger.bind(source="systemd", tags=["systemd", "services"])

    @staticmethod
    def for_deploy() -> Logger:
        """Logger for source bundle deployment and live patches."""
        return logger.bind(source="deploy", tags=["deploy"])

    @staticmethod
    def for_prompt() -> Logger:
        """Logger for interactive dialogs."""
        return logger.bind(source="prompt", tags=["ui", "prompt"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for command execution and filesystem changes."""
        return logger.bind(source="system", tags=["system"])
