"""Smoke tests for CLI commands.

Tests that CLI commands parse correctly and don't crash. Uses Click's
CliRunner with the controller patched out, so no serial port is needed.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from faderctl.cli.main import cli
from faderctl.exceptions import ConnectionFailedError
from faderctl.models import CalibrationCell, CommandOutcome, FaderCalibrationResult, MoveStatistics

CONTROLLER = "faderctl.cli.commands.fader.FaderController"


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def log_args(tmp_path):
    """Keep CLI logs inside the test's temporary directory."""
    return ["--log-file", str(tmp_path / "faderctl.log")]


@pytest.mark.integration
class TestCLIHelp:
    """Test that all commands have working help text."""

    def test_main_help(self, runner):
        """Test main CLI help displays."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "motorized touch faders" in result.output

    def test_version_flag(self, runner):
        """Test --version flag works."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    @pytest.mark.parametrize("command", [["ports"], ["fader"], ["fader", "move"], ["fader", "calibrate"]])
    def test_subcommand_help(self, runner, command):
        """Test every group and command has help."""
        result = runner.invoke(cli, [*command, "--help"])
        assert result.exit_code == 0

    def test_move_requires_port(self, runner, log_args):
        """Test hardware commands insist on a port."""
        result = runner.invoke(cli, [*log_args, "fader", "move", "--target", "50"])
        assert result.exit_code == 2
        assert "--port" in result.output

    def test_index_range(self, runner, log_args):
        """Test fader indexes are limited to 0-3."""
        result = runner.invoke(cli, [*log_args, "fader", "move", "-p", "/dev/x", "-t", "50", "-i", "4"])
        assert result.exit_code == 2


@pytest.mark.integration
class TestPortsCommand:
    """Test serial port listing."""

    def test_list_ports(self, runner, log_args):
        """Test ports are printed with details."""
        ports = [{"device": "/dev/ttyUSB0", "description": "CP2102", "hwid": "USB VID:PID=10C4:EA60"}]
        with patch("faderctl.cli.commands.ports.SerialTransport.list_ports", return_value=ports):
            result = runner.invoke(cli, [*log_args, "ports", "list", "--detailed"])

        assert result.exit_code == 0
        assert "/dev/ttyUSB0" in result.output
        assert "CP2102" in result.output

    def test_no_ports(self, runner, log_args):
        """Test the empty case."""
        with patch("faderctl.cli.commands.ports.SerialTransport.list_ports", return_value=[]):
            result = runner.invoke(cli, [*log_args, "ports", "list"])

        assert result.exit_code == 0
        assert "No serial ports found." in result.output


@pytest.mark.integration
class TestFaderCommands:
    """Test fader commands against a mocked controller."""

    def test_move(self, runner, log_args):
        """Test move prints per-fader statistics and leaves faders in place."""
        with patch(CONTROLLER) as controller_class:
            controller = controller_class.return_value
            controller.fader_indexes = [0, 1]
            controller.move_faders.return_value = {
                i: MoveStatistics(
                    index=i, target_position=8192, start_time=0.0, duration=0.25, steps=49,
                    outcome=CommandOutcome.COMPLETED,
                )
                for i in (0, 1)
            }
            result = runner.invoke(cli, [*log_args, "fader", "move", "-p", "/dev/x", "-i", "0", "-i", "1", "-t", "50"])

        assert result.exit_code == 0, result.output
        assert "Fader 0: completed target=8192 steps=49" in result.output
        config = controller_class.call_args.args[0]
        assert config["fader_indexes"] == [0, 1]
        assert config["calibrate_on_start"] is False
        controller.setup_serial.assert_called_once_with({"port": "/dev/x", "baud_rate": 1_000_000})
        controller.stop.assert_called_once_with(reset=False)

    def test_move_connection_failure(self, runner, log_args):
        """Test library errors exit 1 with the user message and hint."""
        with patch(CONTROLLER) as controller_class:
            controller_class.return_value.setup_serial.side_effect = ConnectionFailedError("/dev/x", 5, 5)
            result = runner.invoke(cli, [*log_args, "fader", "move", "-p", "/dev/x", "-t", "50"])

        assert result.exit_code == 1
        assert "[CONNECTION_FAILED]" in result.output
        assert "ports list" in result.output
        assert "faderctl.log" in result.output

    def test_monitor(self, runner, log_args):
        """Test monitor runs for the requested duration."""
        with patch(CONTROLLER) as controller_class:
            controller = controller_class.return_value
            controller.fader_indexes = [0]
            result = runner.invoke(cli, [*log_args, "fader", "monitor", "-p", "/dev/x", "--duration", "0"])

        assert result.exit_code == 0, result.output
        assert "Monitoring faders [0] on /dev/x" in result.output
        assert controller.register_observer.called
        controller.stop.assert_called_once_with(reset=False)

    def test_calibrate_advanced(self, runner, log_args):
        """Test the advanced sweep prints the table and chosen settings."""
        cell = CalibrationCell(resolution=0.5, speed=100, run_times=[0.5], avg_time=0.5, std_dev=0.0,
                               effective_speed=200.0)
        results = {
            0: FaderCalibrationResult(index=0, optimal_resolution=0.5, speed_factor=0.5, consistency=0.0,
                                      cells=[cell])
        }
        with patch(CONTROLLER) as controller_class:
            controller = controller_class.return_value
            controller.fader_indexes = [0]
            controller.run_calibration.return_value = results
            result = runner.invoke(
                cli, [*log_args, "fader", "calibrate", "-p", "/dev/x", "-i", "0", "--advanced", "--measure-runs", "3"]
            )

        assert result.exit_code == 0, result.output
        assert "Avg Time (ms)" in result.output
        assert "Fader 0: resolution=0.5 speed_factor=0.500" in result.output
        assert controller_class.call_args.args[0]["calibration"] == {"measure_runs": 3}

    def test_calibrate_basic(self, runner, log_args):
        """Test the basic calibration path."""
        with patch(CONTROLLER) as controller_class:
            controller = controller_class.return_value
            controller.fader_indexes = [0, 1, 2, 3]
            result = runner.invoke(cli, [*log_args, "fader", "calibrate", "-p", "/dev/x"])

        assert result.exit_code == 0, result.output
        controller.calibrate.assert_called_once_with([0, 1, 2, 3])
        assert "Basic calibration done" in result.output
