import pytest
from pytest_socket import disable_socket

from sources.base import MeasurementPoint


def pytest_runtest_setup():
    """
    Runs before every test.
    We disable network access. Every attempt to connect
    (HTTP, DNS, InfluxDB, WebSocket) will immediately raise a SocketBlockedError.
    """
    disable_socket(allow_unix_socket=True)


class RecordingSink:
    """Keeps every write as a MeasurementPoint instead of storing it"""

    def __init__(self):
        self.points = []

    async def write(self, timestamp, field_name, value, category):
        self.points.append(MeasurementPoint(timestamp, field_name, value, category))

    def fields(self):
        return [(p.field_name, p.value, p.category) for p in self.points]


@pytest.fixture
def sink():
    return RecordingSink()
