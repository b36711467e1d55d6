import argparse
import sys
from pathlib import Path

from dietpi_prep.__version__ import __version__
from dietpi_prep.config.settings import PROGRAM_NAME, EnvironmentInputs
from dietpi_prep.context import PrepContext
from dietpi_prep.exceptions import PrepAborted, PrepError
from dietpi_prep.logging import setup_logging
from dietpi_prep.pipeline import run_pipeline
from dietpi_prep.ui.whiptail import WhiptailPrompter


def build_parser():
    parser = argparse.ArgumentParser(
        prog="dietpi-prep",
        description="Prepare a Debian installation to become a DietPi base image",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log raw command output")
    parser.add_argument("--log-dir", type=Path, help="Directory for the log files")
    parser.add_argument(
        "--script",
        type=Path,
        help="Launcher script to delete when finished, e.g. PREP_SYSTEM_FOR_DIETPI.sh",
    )
    parser.add_argument(
        "--keep-script",
        action="store_true",
        help="Do not delete the launcher script when finished",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    log = setup_logging(debug=args.debug, trace=args.trace).bind(source="prep")
    log.info(f"{PROGRAM_NAME} {__version__}")

    script = args.script.resolve() if args.script else None
    ctx = PrepContext(
        prompter=WhiptailPrompter(),
        environment=EnvironmentInputs.from_environ(),
        script_path=script,
        keep_script=args.keep_script,
        log_dir=args.log_dir,
        debug=args.debug,
        trace=args.trace,
    )

    try:
        run_pipeline(ctx)
    except PrepAborted as error:
        log.info(str(error))
        return error.exit_code
    except PrepError as error:
        log.error(str(error))
        if error.hint:
            log.info(error.hint)
        return error.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
