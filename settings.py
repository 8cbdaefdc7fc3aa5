"""Environment configuration for the simulator and the InfluxDB connection."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from errors import ConfigurationError
from occupancy import DEFAULT_TIMEZONE

REQUIRED_INFLUX_VARS = ("INFLUXDB_URL", "INFLUXDB_TOKEN", "INFLUXDB_ORG", "INFLUXDB_BUCKET")
DEFAULT_TICK_SECONDS = 60.0
DEFAULT_HTTP_TIMEOUT = 10.0


@dataclass(frozen=True)
class InfluxSettings:
    url: str
    token: str
    org: str
    bucket: str
    timeout: float = DEFAULT_HTTP_TIMEOUT


@dataclass(frozen=True)
class SimulationSettings:
    influx: InfluxSettings
    timezone: str = DEFAULT_TIMEZONE
    tick_seconds: float = DEFAULT_TICK_SECONDS
    facilities_path: Optional[Path] = None


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}.")
    return value


def load_influx_settings(env: Optional[Mapping[str, str]] = None) -> InfluxSettings:
    """Read the four required InfluxDB values, failing fast when any is absent."""
    if env is None:
        load_dotenv()
        env = os.environ
    missing = [name for name in REQUIRED_INFLUX_VARS if not env.get(name, "").strip()]
    if missing:
        raise ConfigurationError(
            "Missing environment variables: "
            + ", ".join(missing)
            + ". Set them in the environment or in a .env file."
        )
    return InfluxSettings(
        url=env["INFLUXDB_URL"].strip(),
        token=env["INFLUXDB_TOKEN"].strip(),
        org=env["INFLUXDB_ORG"].strip(),
        bucket=env["INFLUXDB_BUCKET"].strip(),
        timeout=_positive_float(env, "INFLUXDB_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
    )


def load_settings(env: Optional[Mapping[str, str]] = None) -> SimulationSettings:
    if env is None:
        load_dotenv()
        env = os.environ
    influx = load_influx_settings(env)

    tz_name = env.get("SIM_TIMEZONE", "").strip() or DEFAULT_TIMEZONE
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone {tz_name!r}.") from exc

    facilities = env.get("PARKING_FACILITIES_JSON", "").strip()
    return SimulationSettings(
        influx=influx,
        timezone=tz_name,
        tick_seconds=_positive_float(env, "SIM_TICK_SECONDS", DEFAULT_TICK_SECONDS),
        facilities_path=Path(facilities) if facilities else None,
    )
