"""Tests for main.py - command line entry point."""

import sys

import pytest

from dietpi_prep import main as main_module
from dietpi_prep.exceptions import PackageError, PrepAborted
from dietpi_prep.pipeline import PipelineResult


@pytest.fixture
def script(tmp_path):
    """Launcher script as written by the PREP one-liner."""
    path = tmp_path / "PREP_SYSTEM_FOR_DIETPI.sh"
    path.write_text("#!/bin/bash\n")
    return path


class TestBuildParser:
    """Tests for build_parser()."""

    def test_defaults(self):
        args = main_module.build_parser().parse_args([])

        assert args.debug is False
        assert args.trace is False
        assert args.log_dir is None
        assert args.script is None
        assert args.keep_script is False

    def test_options(self, tmp_path, script):
        args = main_module.build_parser().parse_args(
            ["-d", "--trace", "--log-dir", str(tmp_path), "--script", str(script), "--keep-script"]
        )

        assert args.debug and args.trace and args.keep_script
        assert args.log_dir == tmp_path
        assert args.script == script

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main_module.build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert "dietpi-prep" in capsys.readouterr().out


class TestMain:
    """Tests for main()."""

    def test_success(self, script, mocker):
        run = mocker.patch("dietpi_prep.main.run_pipeline", return_value=PipelineResult([]))

        assert main_module.main(["--script", str(script), "--keep-script"]) == 0

        ctx = run.call_args[0][0]
        assert ctx.script_path == script.resolve()
        assert ctx.keep_script is True

    def test_run_as_module_has_no_script(self, mocker):
        """``python -m dietpi_prep.main`` must never pick its own module for deletion."""
        mocker.patch.object(sys, "argv", [main_module.__file__])
        run = mocker.patch("dietpi_prep.main.run_pipeline", return_value=PipelineResult([]))

        assert main_module.main([]) == 0

        assert run.call_args[0][0].script_path is None

    def test_environment_inputs(self, mocker):
        mocker.patch.dict("os.environ", {"HW_MODEL": "20", "GITBRANCH": "dev"})
        run = mocker.patch("dietpi_prep.main.run_pipeline", return_value=PipelineResult([]))

        main_module.main([])

        ctx = run.call_args[0][0]
        assert ctx.environment.hw_model == "20"
        assert ctx.environment.git_branch == "dev"

    def test_abort_exits_cleanly(self, mocker):
        mocker.patch("dietpi_prep.main.run_pipeline", side_effect=PrepAborted())

        assert main_module.main([]) == 0

    def test_failure_exit_code(self, script, mocker):
        mocker.patch("dietpi_prep.main.run_pipeline", side_effect=PackageError("APT update failed"))

        assert main_module.main(["--script", str(script)]) == 1
        assert script.exists()

    def test_non_root(self, script, runner, mocker):
        mocker.patch("os.geteuid", return_value=1000)

        assert main_module.main(["--script", str(script)]) == 1
        assert runner.calls == []
        assert script.exists()
