"""Tests for gcloud/runner.py module.

Uses mocked subprocess for command execution.
"""

import logging
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from gce_imagegen.gcloud.runner import CommandError, CommandRunner, CommandTimeoutError


def _completed(returncode: int = 0, stdout: str | None = None) -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    return result


class TestRun:
    """Tests for CommandRunner.run."""

    def test_success_writes_to_log_file(self, tmp_path) -> None:
        """Output should be sent to the log file with stderr merged."""
        log_path = tmp_path / "unit.log"
        with log_path.open("w") as log_file:
            runner = CommandRunner(log_file=log_file)
            with patch("subprocess.run", return_value=_completed()) as mock_run:
                runner.run(["gcloud", "compute", "instances", "list"])

        kwargs = mock_run.call_args.kwargs
        assert kwargs["stdout"] is log_file
        assert kwargs["stderr"] == subprocess.STDOUT
        assert kwargs["check"] is False

    def test_nonzero_exit_raises(self) -> None:
        """A failing command should raise CommandError with its exit code."""
        runner = CommandRunner()
        with patch("subprocess.run", return_value=_completed(returncode=3)):
            with pytest.raises(CommandError) as exc_info:
                runner.run(["false"])

        assert exc_info.value.exit_code == 3
        assert exc_info.value.command == ["false"]
        assert exc_info.value.code == "command_failed"

    def test_quiet_discards_output(self, tmp_path) -> None:
        """quiet=True should send output to DEVNULL."""
        with (tmp_path / "unit.log").open("w") as log_file:
            runner = CommandRunner(log_file=log_file)
            with patch("subprocess.run", return_value=_completed()) as mock_run:
                runner.run(["true"], quiet=True)

        assert mock_run.call_args.kwargs["stdout"] == subprocess.DEVNULL

    def test_timeout(self) -> None:
        """A timeout should raise CommandTimeoutError."""
        runner = CommandRunner(timeout=5)
        with patch(
            "subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd=["sleep"], timeout=5),
        ):
            with pytest.raises(CommandTimeoutError) as exc_info:
                runner.run(["sleep", "60"])

        assert exc_info.value.code == "command_timeout"
        assert exc_info.value.exit_code == -1

    def test_missing_executable(self) -> None:
        """An OSError should become CommandError(execution_error)."""
        runner = CommandRunner()
        with patch("subprocess.run", side_effect=FileNotFoundError("gcloud")):
            with pytest.raises(CommandError) as exc_info:
                runner.run(["gcloud", "version"])

        assert exc_info.value.code == "execution_error"

    def test_command_logged(self, tmp_path) -> None:
        """The command line should be written through the unit logger."""
        log_path = tmp_path / "unit.log"
        unit_logger = logging.getLogger("tests.runner.unit")
        unit_logger.setLevel(logging.INFO)
        unit_logger.propagate = False
        with log_path.open("w") as log_file:
            handler = logging.StreamHandler(log_file)
            unit_logger.addHandler(handler)
            try:
                runner = CommandRunner(log_file=log_file, log=unit_logger)
                with patch("subprocess.run", return_value=_completed()):
                    runner.run(["gcloud", "compute", "ssh", "vm", "--command=echo hi"])
            finally:
                unit_logger.removeHandler(handler)

        assert "Executing: gcloud compute ssh vm '--command=echo hi'" in log_path.read_text()


class TestCapture:
    """Tests for CommandRunner.capture."""

    def test_returns_stripped_stdout(self) -> None:
        """Stdout should be returned without surrounding whitespace."""
        runner = CommandRunner()
        with patch("subprocess.run", return_value=_completed(stdout="1.2.3\n")) as mock_run:
            assert runner.capture(["hal", "version"]) == "1.2.3"

        assert mock_run.call_args.kwargs["stdout"] == subprocess.PIPE

    def test_empty_stdout(self) -> None:
        """None stdout should become an empty string."""
        runner = CommandRunner()
        with patch("subprocess.run", return_value=_completed(stdout=None)):
            assert runner.capture(["hal", "version"]) == ""

    def test_failure_raises(self) -> None:
        """A failing query should raise."""
        runner = CommandRunner()
        with patch("subprocess.run", return_value=_completed(returncode=1)):
            with pytest.raises(CommandError):
                runner.capture(["hal", "version"])

    def test_quiet_failure(self) -> None:
        """A quiet query should still raise but only log at debug level."""
        log = MagicMock(spec=logging.Logger)
        log.handlers = []
        runner = CommandRunner(log=log)
        with patch("subprocess.run", return_value=_completed(returncode=1)) as mock_run:
            with pytest.raises(CommandError) as exc_info:
                runner.capture(
                    ["gcloud", "compute", "instances", "get-serial-port-output", "vm"],
                    quiet=True,
                )

        assert exc_info.value.exit_code == 1
        assert mock_run.call_args.kwargs["stderr"] == subprocess.DEVNULL
        log.error.assert_not_called()
        assert "Command failed" in log.debug.call_args.args[0]

    def test_failure_logged_as_error(self) -> None:
        """A regular query failure should be logged as an error."""
        log = MagicMock(spec=logging.Logger)
        log.handlers = []
        runner = CommandRunner(log=log)
        with patch("subprocess.run", return_value=_completed(returncode=1)):
            with pytest.raises(CommandError):
                runner.capture(["hal", "version"])

        log.error.assert_called_once()


class TestSucceeds:
    """Tests for CommandRunner.succeeds."""

    def test_probe_result(self) -> None:
        """Probes should map exit status to a boolean without raising."""
        runner = CommandRunner()
        with patch("subprocess.run", return_value=_completed(returncode=0)):
            assert runner.succeeds(["gcloud", "compute", "disks", "describe", "d"])
        with patch("subprocess.run", return_value=_completed(returncode=1)):
            assert not runner.succeeds(["gcloud", "compute", "disks", "describe", "d"])
