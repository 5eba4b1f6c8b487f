"""Base definitions for the live measurement bridge - data contracts, protocols and errors"""
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

# Measurement name every live point is written under
LIVE_MEASUREMENT = "liveMeasurement"


@dataclass(frozen=True)
class MeasurementPoint:
    """
    One scalar value forwarded to the time-series sink.

    Attributes:
        timestamp: Time the point was written (receipt time, UTC).
        field_name: Wire label of the field, e.g. "power".
        value: Numeric value as float.
        category: Measurement name, always "liveMeasurement" for the feed.
    """
    timestamp: datetime
    field_name: str
    value: float
    category: str = LIVE_MEASUREMENT


class MeasurementSink(Protocol):
    """
    Protocol for egress sinks (InfluxDB, test doubles, etc).

    Implementations must not raise from write(): failures are logged by
    the sink and never reach the session.
    """

    async def write(
        self,
        timestamp: datetime,
        field_name: str,
        value: float,
        category: str,
    ) -> None:
        ...


class SessionError(Exception):
    """A subscription session ended and must be reconnected."""


class ConnectFailed(SessionError):
    """TCP, TLS or WebSocket handshake failure."""


class ReadFailed(SessionError):
    """Transport error while reading after a successful handshake."""


class SessionTimeout(SessionError):
    """No frame arrived within the read timeout."""


class DiscoveryError(Exception):
    """The HTTP bootstrap could not find a websocket URL or home."""
