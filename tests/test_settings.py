from pathlib import Path

import pytest

from errors import ConfigurationError
from settings import DEFAULT_HTTP_TIMEOUT, load_influx_settings, load_settings

BASE_ENV = {
    "INFLUXDB_URL": "http://localhost:8086",
    "INFLUXDB_TOKEN": "secret",
    "INFLUXDB_ORG": "cesi",
    "INFLUXDB_BUCKET": "parking",
}


def test_defaults():
    settings = load_settings(dict(BASE_ENV))
    assert settings.influx.url == "http://localhost:8086"
    assert settings.influx.timeout == DEFAULT_HTTP_TIMEOUT
    assert settings.timezone == "Europe/Paris"
    assert settings.tick_seconds == 60.0
    assert settings.facilities_path is None


def test_optional_overrides():
    env = dict(
        BASE_ENV,
        SIM_TIMEZONE="America/New_York",
        SIM_TICK_SECONDS="5",
        INFLUXDB_TIMEOUT="2.5",
        PARKING_FACILITIES_JSON="lots.json",
    )
    settings = load_settings(env)
    assert settings.timezone == "America/New_York"
    assert settings.tick_seconds == 5.0
    assert settings.influx.timeout == 2.5
    assert settings.facilities_path == Path("lots.json")


def test_missing_values_are_all_reported():
    env = dict(BASE_ENV, INFLUXDB_TOKEN="  ")
    del env["INFLUXDB_BUCKET"]
    with pytest.raises(ConfigurationError) as excinfo:
        load_influx_settings(env)
    message = str(excinfo.value)
    assert "INFLUXDB_TOKEN" in message
    assert "INFLUXDB_BUCKET" in message
    assert "INFLUXDB_URL" not in message


@pytest.mark.parametrize(
    "overrides",
    [
        {"SIM_TIMEZONE": "Mars/Olympus_Mons"},
        {"SIM_TICK_SECONDS": "soon"},
        {"SIM_TICK_SECONDS": "0"},
        {"INFLUXDB_TIMEOUT": "-1"},
    ],
)
def test_invalid_optional_values(overrides):
    with pytest.raises(ConfigurationError):
        load_settings(dict(BASE_ENV, **overrides))
