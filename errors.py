"""Exception types shared by the simulator, the registry and the InfluxDB client."""

from __future__ import annotations


class SimulatorError(Exception):
    """Base class for every error raised by the parking simulator."""


class ConfigurationError(SimulatorError):
    """Startup configuration is missing or invalid. Always fatal."""


class EmissionError(SimulatorError):
    """A sample could not be written to InfluxDB. The sample is dropped."""


class QueryError(SimulatorError):
    """A Flux query against InfluxDB failed."""
