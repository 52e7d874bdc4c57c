"""
Fader calibration.

Motorized faders do not move uniformly: the same ramp takes different
times on different units. The advanced calibration times full-travel moves
across a sweep of speeds and ramp resolutions, then derives per fader:

- optimal_resolution: the resolution whose run times vary least
- speed_factor: reference_speed / measured speed at the reference speed,
  applied by the controller to every requested speed
"""

import logging
import math
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Callable, Iterable, Optional

import numpy as np

from faderctl.core.fader_move import FaderMove
from faderctl.events import EventDispatcher
from faderctl.exceptions import CalibrationFailedError, FaderControlError
from faderctl.models import CalibrationCell, CalibrationConfig, FaderCalibrationResult
from faderctl.protocols import FaderEvent

if TYPE_CHECKING:
    from faderctl.core.controller import FaderController

logger = logging.getLogger(__name__)


def generate_test_speeds(config: CalibrationConfig) -> list[int]:
    """Evenly spaced speeds from start_speed to end_speed, rounded, duplicates removed."""
    speeds = np.floor(np.linspace(config.start_speed, config.end_speed, config.calibration_count) + 0.5)
    return list(dict.fromkeys(max(1, int(s)) for s in speeds))


def summarize_runs(resolution: float, speed: float, run_times: list[float], span: float) -> CalibrationCell:
    """Mean, population std dev and effective speed (progression units per second) of a cell."""
    times = np.asarray(run_times, dtype=float)
    avg_time = float(np.mean(times))
    return CalibrationCell(
        resolution=resolution,
        speed=speed,
        run_times=[float(t) for t in times],
        avg_time=avg_time,
        std_dev=float(np.std(times)),
        effective_speed=span / avg_time if avg_time > 0 else math.inf,
    )


def select_optimal(cells: Iterable[CalibrationCell], reference_speed: float) -> tuple[float, float, float]:
    """
    Pick the most consistent resolution and its speed factor.

    Returns:
        (optimal_resolution, speed_factor, consistency); the factor falls
        back to 1.0 when the measurement is unusable
    """
    by_resolution: dict[float, list[CalibrationCell]] = defaultdict(list)
    for cell in cells:
        by_resolution[cell.resolution].append(cell)
    if not by_resolution:
        raise CalibrationFailedError("No calibration measurements to evaluate.")

    best_resolution = 1.0
    best_consistency = math.inf
    for resolution, resolution_cells in by_resolution.items():
        consistency = float(np.mean([c.std_dev for c in resolution_cells]))
        if consistency < best_consistency:
            best_resolution, best_consistency = resolution, consistency

    reference = min(by_resolution[best_resolution], key=lambda c: abs(c.speed - reference_speed))
    speed_factor = reference_speed / reference.effective_speed if reference.effective_speed else math.nan
    if not math.isfinite(speed_factor) or speed_factor <= 0:
        logger.warning(f"Unusable speed factor {speed_factor} at resolution {best_resolution}; using 1.0")
        speed_factor = 1.0
    return best_resolution, speed_factor, best_consistency


def format_table(results: dict[int, FaderCalibrationResult]) -> list[str]:
    """Render calibration cells as aligned text rows (header, rule, rows)."""
    columns = ["Fader", "Resolution", "Speed %", "Avg Time (ms)", "±Dev (ms)", "Speed (u/s)"]
    rows = [
        [
            str(index),
            f"{cell.resolution:g}",
            f"{cell.speed:g}",
            str(round(cell.avg_time * 1000)),
            f"{cell.std_dev * 1000:.1f}",
            f"{cell.effective_speed:.1f}",
        ]
        for index, result in results.items()
        for cell in result.cells
    ]
    widths = [max([len(col)] + [len(row[i]) for row in rows]) + 2 for i, col in enumerate(columns)]
    header = "".join(col.ljust(w) for col, w in zip(columns, widths))
    lines = [header, "-" * len(header)]
    lines.extend("".join(value.ljust(w) for value, w in zip(row, widths)) for row in rows)
    return lines


class CalibrationEngine:
    """Runs basic and advanced calibration through a controller's public move API."""

    def __init__(
        self,
        controller: "FaderController",
        config: CalibrationConfig,
        dispatcher: EventDispatcher,
        logger_instance: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._controller = controller
        self._dispatcher = dispatcher
        self.config = config
        self._logger = logger_instance or logger
        self._sleep = sleep

    def basic(self, indexes: list[int], speed_up: float = 50, speed_down: float = 10, resolution: float = 1.0) -> None:
        """Reset, then sweep the faders up and back down once."""
        self._logger.debug(f"Calibrating faders {indexes}")
        try:
            self._controller.reset(indexes)
            self._controller.move_faders(FaderMove(indexes, 100, speed_up, resolution))
            self._controller.move_faders(FaderMove(indexes, 0, speed_down, resolution))
        except FaderControlError as e:
            error = CalibrationFailedError(
                "Basic calibration failed.",
                indexes=indexes,
                technical_message=f"Basic calibration of {indexes} failed: {e.technical_message}",
                context={"speed_up": speed_up, "speed_down": speed_down, "resolution": resolution},
            )
            self._dispatcher.publish(FaderEvent.ERROR, None, error)
            raise error from e

    def run(self, indexes: list[int]) -> dict[int, FaderCalibrationResult]:
        """
        Advanced calibration.

        Raises:
            CalibrationFailedError: On empty or unknown indexes, or when a run fails
        """
        if not indexes or any(i not in self._controller.fader_indexes for i in indexes):
            error = CalibrationFailedError(
                f"Invalid calibration indexes {list(indexes)}.",
                indexes=list(indexes),
                recovery_hint=f"Use a non-empty subset of {self._controller.fader_indexes}.",
            )
            self._dispatcher.publish(FaderEvent.ERROR, None, error)
            raise error

        speeds = generate_test_speeds(self.config)
        self._logger.info("=== STARTING CALIBRATION ===")
        self._logger.info(f"Faders: {indexes}")
        self._logger.info(f"Testing speeds: {speeds}")
        self._logger.info(f"Testing resolutions: {self.config.resolutions}")

        results: dict[int, FaderCalibrationResult] = {}
        for index in indexes:
            try:
                results[index] = self._calibrate_fader(index, speeds)
            except CalibrationFailedError as e:
                self._dispatcher.publish(FaderEvent.ERROR, index, e)
                raise
            except FaderControlError as e:
                error = CalibrationFailedError(
                    f"Calibration of fader {index} failed.",
                    indexes=[index],
                    technical_message=f"Calibration run failed: {e.technical_message}",
                )
                self._dispatcher.publish(FaderEvent.ERROR, index, error)
                raise error from e

        for line in format_table(results):
            self._logger.info(line)
        self._dispatcher.publish(FaderEvent.CALIBRATION, None, results)
        return results

    def _calibrate_fader(self, index: int, speeds: list[int]) -> FaderCalibrationResult:
        span = abs(self.config.end_progression - self.config.start_progression)
        fader = self._controller.get_fader(index)
        previous_factor = fader.speed_factor
        # Sweep speeds are measured as requested, not scaled by an earlier factor
        fader.speed_factor = 1.0
        cells = []
        try:
            for resolution in self.config.resolutions:
                self._logger.info(f"Testing fader {index} at resolution {resolution}")
                for speed in speeds:
                    for _ in range(self.config.warmup_runs):
                        self._measure_run(index, speed, resolution)
                    run_times = []
                    for run in range(self.config.measure_runs):
                        duration = self._measure_run(index, speed, resolution)
                        run_times.append(duration)
                        self._logger.debug(f"Run {run + 1}: {duration * 1000:.0f}ms")
                    cells.append(summarize_runs(resolution, speed, run_times, span))
        finally:
            fader.speed_factor = previous_factor

        resolution, speed_factor, consistency = select_optimal(cells, self.config.reference_speed)
        fader.speed_factor = speed_factor
        fader.optimal_resolution = resolution

        self._logger.info(f"Fader {index} calibration complete:")
        self._logger.info(f"- Optimal resolution: {resolution}")
        self._logger.info(f"- Speed factor: {speed_factor:.2f}")
        return FaderCalibrationResult(
            index=index,
            optimal_resolution=resolution,
            speed_factor=speed_factor,
            consistency=consistency,
            cells=cells,
        )

    def _measure_run(self, index: int, speed: float, resolution: float) -> float:
        """Reposition at the start, then time one move; returns seconds."""
        controller = self._controller
        controller.move_faders(FaderMove(index, self.config.start_progression, controller.config.speeds[0]))
        if self.config.run_delay:
            self._sleep(self.config.run_delay)

        durations: list[float] = []

        def on_complete(fader_index, payload):
            statistics = payload.get("statistics") if isinstance(payload, dict) else None
            if fader_index == index and statistics is not None and statistics.duration is not None:
                durations.append(statistics.duration)

        observer = controller.subscribe(FaderEvent.MOVE_COMPLETE, on_complete)
        started = time.monotonic()
        try:
            controller.move_faders(FaderMove(index, self.config.end_progression, speed, resolution))
        finally:
            controller.unregister_observer(observer)
        wall_clock = time.monotonic() - started

        if self.config.run_delay:
            self._sleep(self.config.run_delay)
        return durations[-1] if durations else wall_clock
