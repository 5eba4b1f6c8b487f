"""Classifies inbound subscription frames and forwards measurements to the sink"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from sources.base import LIVE_MEASUREMENT, MeasurementPoint, MeasurementSink
from sources.fields import Field

ACK_TYPE = "connection_ack"

# Catalog fields whose values are text, never written to the sink
TEXT_FIELDS = {Field.TIMESTAMP.value, Field.CURRENCY.value}


class MessageKind(Enum):
    DATA = "data"
    ACK = "ack"
    ANOMALY = "anomaly"
    UNPARSEABLE = "unparseable"


@dataclass
class InboundMessage:
    """
    Result of classifying one text frame.

    Attributes:
        kind: Which shape the frame matched.
        measurement: liveMeasurement object, only set for DATA.
        msg_type: Top-level "type" of the frame, if it had one.
        raw: The decoded frame (or None when it did not parse).
        error: Parser error text for UNPARSEABLE frames.
    """
    kind: MessageKind
    measurement: dict[str, Any] = field(default_factory=dict)
    msg_type: Optional[str] = None
    raw: Any = None
    error: Optional[str] = None


def _live_measurement(decoded: Any) -> Optional[dict]:
    if not isinstance(decoded, dict):
        return None
    payload = decoded.get("payload")
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    measurement = data.get(LIVE_MEASUREMENT)
    if not isinstance(measurement, dict):
        return None
    return measurement


def classify_message(text: str | bytes) -> InboundMessage:
    """
    Work out what kind of frame the server sent. Never raises.

    A frame carrying payload.data.liveMeasurement is DATA regardless of its
    type (graphql-transport-ws uses "next", graphql-ws uses "data").
    """
    try:
        decoded = json.loads(text)
    except (ValueError, TypeError) as e:
        return InboundMessage(kind=MessageKind.UNPARSEABLE, error=str(e))

    msg_type = decoded.get("type") if isinstance(decoded, dict) else None
    if not isinstance(msg_type, str):
        msg_type = None

    measurement = _live_measurement(decoded)
    if measurement is not None:
        return InboundMessage(
            kind=MessageKind.DATA, measurement=measurement, msg_type=msg_type, raw=decoded
        )

    if msg_type == ACK_TYPE:
        return InboundMessage(kind=MessageKind.ACK, msg_type=msg_type, raw=decoded)

    return InboundMessage(kind=MessageKind.ANOMALY, msg_type=msg_type, raw=decoded)


def _as_float(value: Any) -> Optional[float]:
    # bool is an int subclass but never a measurement
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return float(value)
    except OverflowError:
        # JSON integers have no size limit
        return None


class MeasurementDispatcher:
    """
    Turns one liveMeasurement object into sink writes, one per field.

    Writes are awaited one after another so a message is fully forwarded
    before the session reads the next frame.
    """

    def __init__(
        self,
        sink: MeasurementSink,
        category: str = LIVE_MEASUREMENT,
        logger: Optional[logging.Logger] = None,
    ):
        self.sink = sink
        self.category = category
        self.logger = logger or logging.getLogger(__name__)

    async def dispatch(self, measurement: Mapping[str, Any]) -> list[MeasurementPoint]:
        """
        Forward every numeric field of a measurement.

        Values that are not a finite-size number (text fields such as
        timestamp/currency, nulls for fields the meter does not report,
        integers too large for a float) are skipped with a log line.

        Returns:
            The points handed to the sink, in write order.
        """
        written = []
        for field_name, raw_value in measurement.items():
            value = _as_float(raw_value)
            if value is None:
                if raw_value is None:
                    self.logger.debug(f"Skipping {field_name}: no value")
                elif field_name in TEXT_FIELDS:
                    self.logger.debug(f"Skipping text field {field_name}: {raw_value!r}")
                elif isinstance(raw_value, int) and not isinstance(raw_value, bool):
                    self.logger.warning(f"Skipping field {field_name}: value out of float range")
                else:
                    self.logger.warning(
                        f"Skipping non-numeric field {field_name}: {raw_value!r}"
                    )
                continue

            point = MeasurementPoint(datetime.now(timezone.utc), field_name, value, self.category)
            await self.sink.write(point.timestamp, point.field_name, point.value, point.category)
            written.append(point)

        return written
