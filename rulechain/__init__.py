"""Rule chain execution engine for IoT telemetry events."""

__version__ = "0.1.0"
