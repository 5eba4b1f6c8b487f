from datetime import datetime, timezone

import pytest
from sinks.influxdb import InfluxSink, build_point

TIMESTAMP = datetime(2025, 12, 26, 18, 0, 0, tzinfo=timezone.utc)


def test_build_point_line_protocol():
    point = build_point(TIMESTAMP, "power", 1234.5, "liveMeasurement")

    assert point.to_line_protocol() == (
        "liveMeasurement,field_name=power value=1234.5 "
        f"{int(TIMESTAMP.timestamp()) * 1_000_000_000}"
    )


def test_build_point_coerces_value_to_float():
    point = build_point(TIMESTAMP, "minPower", 100, "liveMeasurement")

    assert "value=100.0 " in point.to_line_protocol()


@pytest.mark.asyncio
async def test_write_uses_database_as_bucket(mocker):
    mock_client_cls = mocker.patch('sinks.influxdb.InfluxDBClient')
    write_api = mock_client_cls.return_value.write_api.return_value

    sink = InfluxSink(url="http://influx:8086", database="tibber", token="user:pass")
    await sink.write(TIMESTAMP, "power", 1500.0, "liveMeasurement")

    mock_client_cls.assert_called_once_with(url="http://influx:8086", token="user:pass", org="-")
    write_api.write.assert_called_once()
    kwargs = write_api.write.call_args.kwargs
    assert kwargs["bucket"] == "tibber"
    assert kwargs["record"].to_line_protocol().startswith(
        "liveMeasurement,field_name=power value=1500.0 "
    )


@pytest.mark.asyncio
async def test_write_failure_is_logged_not_raised(mocker, caplog):
    mock_client_cls = mocker.patch('sinks.influxdb.InfluxDBClient')
    write_api = mock_client_cls.return_value.write_api.return_value
    write_api.write.side_effect = RuntimeError("database not found")

    sink = InfluxSink(url="http://influx:8086", database="tibber")
    await sink.write(TIMESTAMP, "power", 1500.0, "liveMeasurement")

    assert "InfluxDB: Writing failed: database not found" in caplog.text


def test_close_releases_client(mocker):
    mock_client_cls = mocker.patch('sinks.influxdb.InfluxDBClient')

    sink = InfluxSink(url="http://influx:8086", database="tibber")
    sink.close()

    mock_client_cls.return_value.write_api.return_value.close.assert_called_once()
    mock_client_cls.return_value.close.assert_called_once()
