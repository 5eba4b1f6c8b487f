import json

import pytest
from sources.fields import Field
from sources.query import SubscriptionQueryBuilder


def test_connection_message():
    request = SubscriptionQueryBuilder("test-token", "home-1").with_field(Field.POWER).build()

    assert request.connection() == '{"type":"connection_init","payload":{"token":"test-token"}}'


def test_subscription_message_matches_template():
    request = (
        SubscriptionQueryBuilder("test-token", "test-home-123")
        .with_field(Field.POWER)
        .with_field(Field.ACCUMULATED_CONSUMPTION_LAST_HOUR)
        .build()
    )

    expected = (
        '{"id":"1","type":"subscribe","payload":{"variables":{},"extensions":{},'
        '"query":"subscription {\\n  liveMeasurement(homeId: \\"test-home-123\\") {\\n'
        '    power\\naccumulatedConsumptionLastHour\\n}\\n}\\n"}}'
    )
    assert request.subscription() == expected


def test_fields_keep_order_and_duplicates():
    request = (
        SubscriptionQueryBuilder("t", "h")
        .with_field(Field.MAX_POWER)
        .with_field(Field.POWER)
        .with_field(Field.MAX_POWER)
        .build()
    )

    query = json.loads(request.subscription())["payload"]["query"]
    assert "    maxPower\npower\nmaxPower\n}" in query


def test_with_field_returns_new_builder():
    base = SubscriptionQueryBuilder("t", "h")
    extended = base.with_field(Field.POWER)

    assert base.fields == ()
    assert extended.fields == (Field.POWER,)


def test_build_is_deterministic():
    first = SubscriptionQueryBuilder("t", "h").with_fields(Field.POWER, Field.MIN_POWER).build()
    second = SubscriptionQueryBuilder("t", "h").with_fields(Field.POWER, Field.MIN_POWER).build()

    assert first.connection() == second.connection()
    assert first.subscription() == second.subscription()


def test_build_without_fields_raises():
    with pytest.raises(ValueError):
        SubscriptionQueryBuilder("t", "h").build()


def test_quotes_in_inputs_are_escaped():
    """Messages stay valid JSON even when token or home id contain quotes"""
    request = SubscriptionQueryBuilder('to"ken', 'ho"me').with_field(Field.POWER).build()

    assert json.loads(request.connection())["payload"]["token"] == 'to"ken'
    query = json.loads(request.subscription())["payload"]["query"]
    assert 'liveMeasurement(homeId: "ho\\"me")' in query
