"""Parking occupancy simulator.

Advances the occupancy of every (facility, space type) pair once per tick and
writes one sample per pair to InfluxDB.
"""

from __future__ import annotations

import argparse
import datetime as dt
import logging
import math
import threading
import time as time_module
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from errors import ConfigurationError, EmissionError
from facilities import FacilityRegistry, load_registry
from influx_client import OCCUPANCY_MEASUREMENT, InfluxDBService
from occupancy import (
    DEFAULT_TIMEZONE,
    TimeContext,
    advance_ratio,
    is_low_activity,
    occupied_spaces,
    resolve_time_context,
    target_occupancy,
)
from settings import DEFAULT_TICK_SECONDS, load_settings

logger = logging.getLogger(__name__)

StateKey = Tuple[str, str]


class TelemetrySink(Protocol):
    def write_data(
        self,
        measurement: str,
        tags: Mapping[str, str],
        fields: Mapping[str, object],
        timestamp: Optional[dt.datetime] = None,
    ) -> bool:
        ...


@dataclass
class OccupancyState:
    ratio: float = 0.0
    occupied: int = 0


@dataclass(frozen=True)
class Sample:
    facility: str
    space_type: str
    is_weekend: bool
    occupied: int
    available: int
    total: int
    ratio: float
    timestamp: dt.datetime

    def tags(self) -> Dict[str, str]:
        return {
            "parking_name": self.facility,
            "space_type": self.space_type,
            "is_weekend": "true" if self.is_weekend else "false",
        }

    def fields(self) -> Dict[str, float]:
        return {
            "occupied_spaces": self.occupied,
            "available_spaces": self.available,
            "total_spaces": self.total,
            "occupation_rate": self.ratio,
        }


@dataclass
class TickReport:
    context: TimeContext
    target: float
    samples: List[Sample] = field(default_factory=list)
    failures: List[Tuple[Sample, str]] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return len(self.samples) - len(self.failures)


def format_tick_summary(report: TickReport) -> str:
    """Render a tick as a readable block, one line per space type."""
    lines = [
        f"=== Update of {report.context.local_time.isoformat(timespec='seconds')} ===",
        f"Period: {report.context.period_label} (target {report.target * 100:.1f}%)",
    ]
    current = None
    for sample in report.samples:
        if sample.facility != current:
            current = sample.facility
            lines.append(f"{sample.facility}:")
        lines.append(
            f"  {sample.space_type}: {sample.occupied}/{sample.total} occupied, "
            f"{sample.available} available ({sample.ratio * 100:.1f}%)"
        )
    lines.append(f"=== {report.delivered}/{len(report.samples)} samples sent ===")
    return "\n".join(lines)


class ParkingSimulator:
    """Owns the occupancy state of every space type and drives the tick loop."""

    def __init__(
        self,
        registry: FacilityRegistry,
        sink: TelemetrySink,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown timezone {timezone!r}.") from exc
        self.registry = registry
        self.sink = sink
        self.timezone = timezone
        self.clock = clock or (lambda: dt.datetime.now(dt.timezone.utc))
        self.states: Dict[StateKey, OccupancyState] = {
            (facility.name, space_type): OccupancyState()
            for facility, space_type, _capacity in registry.space_keys()
        }
        self.tick_count = 0
        self.last_report: Optional[TickReport] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self.tick_count > 0

    def tick(self, now: Optional[dt.datetime] = None) -> TickReport:
        # One time snapshot per tick; everything below reads from it.
        context = resolve_time_context(now or self.clock(), self.timezone)
        target = target_occupancy(context.hour_fraction, context.is_weekend)
        low_activity = is_low_activity(context)
        report = TickReport(context=context, target=target)

        with self._lock:
            for facility, space_type, capacity in self.registry.space_keys():
                state = self.states[(facility.name, space_type)]
                state.ratio = advance_ratio(state.ratio, target, low_activity)
                state.occupied = occupied_spaces(capacity, state.ratio)
                report.samples.append(
                    Sample(
                        facility=facility.name,
                        space_type=space_type,
                        is_weekend=context.is_weekend,
                        occupied=state.occupied,
                        available=capacity - state.occupied,
                        total=capacity,
                        ratio=state.ratio,
                        timestamp=context.local_time,
                    )
                )
            self.tick_count += 1

        for sample in report.samples:
            self._emit(sample, report)

        self.last_report = report
        logger.info("\n%s", format_tick_summary(report))
        return report

    def _emit(self, sample: Sample, report: TickReport) -> None:
        try:
            accepted = self.sink.write_data(
                OCCUPANCY_MEASUREMENT, sample.tags(), sample.fields(), sample.timestamp
            )
        except EmissionError as exc:
            reason = str(exc)
        except Exception as exc:  # noqa: BLE001
            # One broken write must not keep the rest of the tick from going out.
            logger.exception("Unexpected sink failure for %s/%s", sample.facility, sample.space_type)
            reason = f"{type(exc).__name__}: {exc}"
        else:
            if accepted:
                return
            reason = "sink rejected the sample"
        logger.error(
            "Dropped sample for %s/%s at %s: %s",
            sample.facility,
            sample.space_type,
            sample.timestamp.isoformat(timespec="seconds"),
            reason,
        )
        report.failures.append((sample, reason))

    def snapshot(self) -> List[Dict[str, object]]:
        with self._lock:
            return [
                {
                    "facility": facility.name,
                    "space_type": space_type,
                    "total": capacity,
                    "occupied": self.states[(facility.name, space_type)].occupied,
                    "available": capacity - self.states[(facility.name, space_type)].occupied,
                    "ratio": self.states[(facility.name, space_type)].ratio,
                }
                for facility, space_type, capacity in self.registry.space_keys()
            ]

    def run_forever(
        self,
        interval: float = DEFAULT_TICK_SECONDS,
        max_ticks: Optional[int] = None,
        sleep: Callable[[float], None] = time_module.sleep,
        monotonic: Callable[[], float] = time_module.monotonic,
    ) -> int:
        """Tick immediately, then on every ``interval`` boundary from the start of the run.

        Boundaries that passed while a tick was running are skipped, not replayed.

        Returns the number of ticks executed, which only matters when
        ``max_ticks`` bounds the loop.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        started = monotonic()
        executed = 0
        while max_ticks is None or executed < max_ticks:
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("Tick %d failed; continuing with the next one", executed + 1)
            executed += 1
            if max_ticks is not None and executed >= max_ticks:
                break
            # Missed slots are skipped; the next tick lands on the next boundary.
            next_slot = math.floor((monotonic() - started) / interval) + 1
            wait_seconds = started + next_slot * interval - monotonic()
            if wait_seconds > 0:
                sleep(wait_seconds)
        return executed


def build_simulator(
    timezone: Optional[str] = None,
    facilities_path: Optional[Path] = None,
) -> Tuple[ParkingSimulator, float]:
    """Create a simulator wired to InfluxDB from the environment.

    Settings are validated before anything else is constructed.
    """
    settings = load_settings()
    registry = load_registry(facilities_path or settings.facilities_path)
    sink = InfluxDBService.from_settings(settings.influx)
    simulator = ParkingSimulator(registry, sink, timezone=timezone or settings.timezone)
    return simulator, settings.tick_seconds


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Simulate parking occupancy and write it to InfluxDB."
    )
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit.")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help=f"Seconds between ticks (default: SIM_TICK_SECONDS or {DEFAULT_TICK_SECONDS:g}).",
    )
    parser.add_argument(
        "--timezone",
        default=None,
        help=f"Reference timezone for the demand profile (default: SIM_TIMEZONE or {DEFAULT_TIMEZONE}).",
    )
    parser.add_argument(
        "--facilities",
        type=Path,
        default=None,
        help="JSON facility catalog (default: PARKING_FACILITIES_JSON or the built-in catalog).",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        simulator, tick_seconds = build_simulator(args.timezone, args.facilities)
    except ConfigurationError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc
    interval = args.interval or tick_seconds

    logger.info(
        "Starting parking simulation for %s (%s), one update every %gs",
        ", ".join(simulator.registry.names()),
        simulator.timezone,
        interval,
    )
    logger.info("Max variation: +/-1%% per tick on weekdays, +/-0.1%% at night and on weekends")
    try:
        simulator.run_forever(interval, max_ticks=1 if args.once else None)
    except KeyboardInterrupt:
        logger.info("Simulation stopped.")
    finally:
        simulator.sink.close()


if __name__ == "__main__":
    main()
