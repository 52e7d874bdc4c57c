"""Fader command implementations."""

import logging
import sys
import time
from datetime import datetime
from typing import Any, Optional

import click

from faderctl.calibration import format_table
from faderctl.core import FaderController, FaderMove
from faderctl.exceptions import FaderControlError, format_error_for_display
from faderctl.protocols import DiagnosticEvent, FaderEvent

logger = logging.getLogger(__name__)


def port_options(func):
    """Options shared by every command that talks to the hardware."""
    func = click.option("--port", "-p", required=True, help="Serial port (see 'faderctl ports list')")(func)
    func = click.option("--baud-rate", type=int, default=1_000_000, show_default=True, help="Serial baud rate")(func)
    func = click.option(
        "--index", "-i", "indexes", type=click.IntRange(0, 3), multiple=True,
        help="Fader index (repeatable, default: all)",
    )(func)
    return func


def _build_controller(indexes: tuple[int, ...], **overrides: Any) -> FaderController:
    config: dict[str, Any] = {"calibrate_on_start": False}
    if indexes:
        config["fader_indexes"] = sorted(set(indexes))
    config.update(overrides)
    return FaderController(config)


def _fail(error: Exception) -> None:
    """Print an error the way users should see it and exit non-zero."""
    logger.exception("Command failed")
    user_message, recovery_hint = format_error_for_display(error)

    click.echo("\n" + "=" * 70, err=True)
    click.echo(f"ERROR: {user_message}", err=True)
    click.echo("=" * 70, err=True)
    if recovery_hint:
        click.echo(f"\n{recovery_hint}", err=True)

    log_path = click.get_current_context().find_root().obj.get("log_path")
    if log_path:
        click.echo(f"\nFor details, check the log file: {log_path}", err=True)
    sys.exit(1)


@click.group(name="fader")
def fader_group():
    """Fader commands."""
    pass


class _MonitorPrinter:
    """Prints public events and, optionally, every MIDI frame."""

    def __init__(self, raw: bool):
        self.raw = raw

    @staticmethod
    def _timestamp() -> str:
        return datetime.now().strftime("%H:%M:%S.%f")[:-3]

    def on_fader_event(self, event: FaderEvent, index: Optional[int], payload: Any) -> None:
        if event in (FaderEvent.TOUCH, FaderEvent.UNTOUCH, FaderEvent.MOVE):
            click.echo(
                f"[{self._timestamp()}] fader {index} {event.value:<8} "
                f"position={payload.raw_position:<5} progression={payload.raw_progression:6.2f}"
            )
        elif event is FaderEvent.ERROR:
            click.echo(f"[{self._timestamp()}] error: {payload}", err=True)

    def on_diagnostic_event(self, event: DiagnosticEvent, details: dict[str, Any]) -> None:
        if self.raw and event is DiagnosticEvent.MIDI_RECEIVED:
            click.echo(f"[{self._timestamp()}] {details['message']}")


@fader_group.command(name="monitor")
@port_options
@click.option("--raw", is_flag=True, help="Also print every received MIDI frame")
@click.option("--duration", type=float, default=None, help="Stop after this many seconds")
def monitor(port: str, baud_rate: int, indexes: tuple[int, ...], raw: bool, duration: Optional[float]):
    """
    Print touches and moves as they arrive.

    Press Ctrl+C to stop monitoring.
    """
    controller = _build_controller(indexes)
    printer = _MonitorPrinter(raw)
    controller.register_observer(printer)
    controller.register_diagnostic_observer(printer)

    try:
        controller.setup_serial({"port": port, "baud_rate": baud_rate})
        click.echo(f"Monitoring faders {controller.fader_indexes} on {port}")
        click.echo("\nPress Ctrl+C to stop\n")

        deadline = time.monotonic() + duration if duration is not None else None
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.1)
    except KeyboardInterrupt:
        click.echo("\n\nStopping monitor...")
    except FaderControlError as e:
        _fail(e)
    finally:
        controller.stop(reset=False)


@fader_group.command(name="move")
@port_options
@click.option("--target", "-t", type=click.FloatRange(0, 100), required=True, help="Target progression (0-100)")
@click.option("--speed", "-s", type=click.FloatRange(0, 100, min_open=True), default=30, show_default=True)
@click.option("--resolution", type=click.FloatRange(0, 1, min_open=True), default=1.0, show_default=True)
@click.option("--interrupt", is_flag=True, help="Flush queued commands first")
@click.option("--no-feedback", is_flag=True, help="Complete steps on write instead of on echo")
@click.option("--calibrate/--no-calibrate", default=False, help="Run the basic calibration on start")
def move(
    port: str,
    baud_rate: int,
    indexes: tuple[int, ...],
    target: float,
    speed: float,
    resolution: float,
    interrupt: bool,
    no_feedback: bool,
    calibrate: bool,
):
    """Move faders to a target progression."""
    controller = _build_controller(indexes, calibrate_on_start=calibrate)
    try:
        controller.setup_serial({"port": port, "baud_rate": baud_rate})
        controller.start()
        statistics = controller.move_faders(
            FaderMove(controller.fader_indexes, target, speed, resolution),
            interrupt=interrupt,
            disable_feedback=no_feedback,
        )
        for index, stats in statistics.items():
            click.echo(
                f"Fader {index}: {stats.outcome.value} target={stats.target_position} "
                f"steps={stats.steps} duration={stats.duration:.3f}s"
            )
    except FaderControlError as e:
        _fail(e)
    finally:
        controller.stop(reset=False)


@fader_group.command(name="calibrate")
@port_options
@click.option("--advanced", is_flag=True, help="Run the full speed/resolution sweep")
@click.option("--measure-runs", type=click.IntRange(1), default=None, help="Measured runs per cell")
@click.option("--count", "calibration_count", type=click.IntRange(1), default=None, help="Speeds in the sweep")
def calibrate(
    port: str,
    baud_rate: int,
    indexes: tuple[int, ...],
    advanced: bool,
    measure_runs: Optional[int],
    calibration_count: Optional[int],
):
    """Calibrate faders (basic round trip, or --advanced sweep)."""
    calibration: dict[str, Any] = {}
    if measure_runs is not None:
        calibration["measure_runs"] = measure_runs
    if calibration_count is not None:
        calibration["calibration_count"] = calibration_count

    controller = _build_controller(indexes, calibration=calibration)
    try:
        controller.setup_serial({"port": port, "baud_rate": baud_rate})
        controller.start()
        if not advanced:
            controller.calibrate(controller.fader_indexes)
            click.echo(f"Basic calibration done for faders {controller.fader_indexes}")
            return

        results = controller.run_calibration(controller.fader_indexes)
        for line in format_table(results):
            click.echo(line)
        click.echo()
        for index, result in results.items():
            click.echo(
                f"Fader {index}: resolution={result.optimal_resolution:g} "
                f"speed_factor={result.speed_factor:.3f} consistency={result.consistency * 1000:.1f}ms"
            )
    except FaderControlError as e:
        _fail(e)
    finally:
        controller.stop(reset=False)
