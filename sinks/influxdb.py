"""InfluxDB egress module - writes live measurement points"""
import asyncio
import logging
from datetime import datetime

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

logger = logging.getLogger(__name__)


def build_point(timestamp: datetime, field_name: str, value: float, category: str) -> Point:
    """
    One point per field: measurement = category, tag field_name, field value.
    """
    return (
        Point(category)
        .tag("field_name", field_name)
        .field("value", float(value))
        .time(timestamp, WritePrecision.NS)
    )


class InfluxSink:
    """
    InfluxDB sink.

    Works against InfluxDB 2.x (token + org + bucket) and against 1.8+ through
    its v2 compatibility API, where the bucket is "database" or
    "database/retention_policy" and the token is "user:password" (or empty).
    """

    def __init__(self, url: str, database: str, token: str = "", org: str = "-"):
        """
        Initialize the sink.

        Args:
            url: InfluxDB base URL, e.g. http://localhost:8086
            database: Database (1.x) or bucket (2.x) name
            token: API token, or "user:password" for 1.x
            org: Organization, ignored by 1.x
        """
        self.url = url
        self.database = database
        self.org = org
        self.client = InfluxDBClient(url=url, token=token, org=org)
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)

    def _perform_write(self, point: Point) -> None:
        """
        Executes the write.
        Is ran in a thread to not block the main loop.
        """
        try:
            self.write_api.write(bucket=self.database, org=self.org, record=point)
            logger.debug("InfluxDB: Writing success")
        except Exception as e:
            # Losing a point is acceptable, killing the session is not
            logger.error(f"InfluxDB: Writing failed: {e}")

    async def write(self, timestamp: datetime, field_name: str, value: float, category: str) -> None:
        """
        Offloads the blocking write to a thread.
        """
        point = build_point(timestamp, field_name, value, category)
        await asyncio.to_thread(self._perform_write, point)

    def close(self) -> None:
        self.write_api.close()
        self.client.close()
