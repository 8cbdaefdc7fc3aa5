"""Thin wrapper around ``influxdb-client`` for the parking simulator.

Writes tagged points synchronously and flattens Flux query results into row
dicts. Also runnable as a small demo that writes one sensor sample and reads
back the last hour.
"""

from __future__ import annotations

import argparse
import datetime as dt
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.client.write_api import SYNCHRONOUS
from influxdb_client.rest import ApiException
from urllib3.exceptions import HTTPError

from errors import ConfigurationError, EmissionError, QueryError
from settings import DEFAULT_HTTP_TIMEOUT, InfluxSettings, load_influx_settings

logger = logging.getLogger(__name__)

FieldValue = Union[int, float, str, bool]

OCCUPANCY_MEASUREMENT = "parking_occupation"

# Rejections from the server and transport failures raised by the client.
CLIENT_ERRORS = (ApiException, InfluxDBError, HTTPError, OSError)


def build_point(
    measurement: str,
    tags: Mapping[str, str],
    fields: Mapping[str, FieldValue],
    timestamp: Optional[dt.datetime] = None,
) -> Point:
    """Numeric fields are always written as floats so a bucket keeps one field type."""
    if not fields:
        raise ValueError("A point needs at least one field.")
    point = Point(measurement)
    for key, value in tags.items():
        point = point.tag(key, value)
    for key, value in fields.items():
        # bool must be checked before int.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            point = point.field(key, value)
        else:
            point = point.field(key, float(value))
    if timestamp is not None:
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=dt.timezone.utc)
        point = point.time(timestamp, WritePrecision.S)
    return point


class InfluxDBService:
    """Writes to and queries one bucket of an InfluxDB v2 instance."""

    def __init__(
        self,
        url: str,
        token: str,
        org: str,
        bucket: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: Optional[InfluxDBClient] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.org = org
        self.bucket = bucket
        self.timeout = timeout
        # influxdb-client expects the timeout in milliseconds.
        self.client = client or InfluxDBClient(
            url=self.url, token=token, org=org, timeout=int(timeout * 1000)
        )
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)
        self.query_api = self.client.query_api()

    @classmethod
    def from_settings(cls, settings: InfluxSettings) -> "InfluxDBService":
        return cls(
            url=settings.url,
            token=settings.token,
            org=settings.org,
            bucket=settings.bucket,
            timeout=settings.timeout,
        )

    def write_data(
        self,
        measurement: str,
        tags: Mapping[str, str],
        fields: Mapping[str, FieldValue],
        timestamp: Optional[dt.datetime] = None,
    ) -> bool:
        point = build_point(measurement, tags, fields, timestamp)
        try:
            self.write_api.write(bucket=self.bucket, org=self.org, record=point)
        except CLIENT_ERRORS as exc:
            raise EmissionError(f"Write of {measurement!r} to InfluxDB failed: {exc}") from exc
        return True

    def query_data(self, flux_query: str) -> List[Dict[str, Any]]:
        try:
            tables = self.query_api.query(flux_query, org=self.org)
        except CLIENT_ERRORS as exc:
            logger.error("Flux query failed: %s", exc)
            raise QueryError(f"InfluxDB query failed: {exc}") from exc
        return [dict(record.values) for table in tables for record in table.records]

    def recent_occupancy(self, minutes: int = 60, facility: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return occupancy points written during the last ``minutes``."""
        query = (
            f'from(bucket: "{self.bucket}")\n'
            f"  |> range(start: -{int(minutes)}m)\n"
            f'  |> filter(fn: (r) => r["_measurement"] == "{OCCUPANCY_MEASUREMENT}")'
        )
        if facility:
            escaped = facility.replace("\\", "\\\\").replace('"', '\\"')
            query += f'\n  |> filter(fn: (r) => r["parking_name"] == "{escaped}")'
        return self.query_data(query)

    def close(self) -> None:
        self.write_api.close()
        self.client.close()


def run_demo(service: InfluxDBService) -> List[Dict[str, Any]]:
    """Write a demo sensor sample and read back the last hour of that measurement."""
    service.write_data(
        "sensor_data",
        {"location": "building_1", "sensor_id": "temp_01"},
        {"temperature": 23.5, "humidity": 45.2, "isActive": True},
    )
    logger.info("Demo sample written to bucket %s", service.bucket)
    query = (
        f'from(bucket: "{service.bucket}")\n'
        "  |> range(start: -1h)\n"
        '  |> filter(fn: (r) => r["_measurement"] == "sensor_data")'
    )
    return service.query_data(query)


def main() -> None:
    parser = argparse.ArgumentParser(description="Write and query a demo point in InfluxDB.")
    parser.add_argument(
        "--occupancy",
        type=int,
        metavar="MINUTES",
        help="Instead of the demo, print parking occupancy points from the last MINUTES.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        settings = load_influx_settings()
    except ConfigurationError as exc:
        raise SystemExit(str(exc)) from exc

    service = InfluxDBService.from_settings(settings)
    try:
        if args.occupancy:
            rows = service.recent_occupancy(args.occupancy)
        else:
            rows = run_demo(service)
    except (EmissionError, QueryError) as exc:
        raise SystemExit(f"Error: {exc}") from exc
    finally:
        service.close()

    print(f"{len(rows)} rows returned")
    for row in rows:
        print(row)


if __name__ == "__main__":
    main()
