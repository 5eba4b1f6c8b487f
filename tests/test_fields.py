import pytest
from sources.fields import Field, to_wire_label, wire_labels


def test_wire_label_power():
    assert to_wire_label(Field.POWER) == "power"
    assert to_wire_label(Field.POWER) == to_wire_label(Field.POWER)


@pytest.mark.parametrize("field,label", [
    (Field.MIN_POWER, "minPower"),
    (Field.ACCUMULATED_CONSUMPTION_LAST_HOUR, "accumulatedConsumptionLastHour"),
    (Field.VOLTAGE_PHASE1, "voltagePhase1"),
    (Field.CURRENT_L3, "currentL3"),
    (Field.SIGNAL_STRENGTH, "signalStrength"),
])
def test_wire_labels_are_camel_case(field, label):
    assert to_wire_label(field) == label
    assert str(field) == label


def test_wire_labels_are_unique():
    labels = wire_labels()
    assert len(labels) == len(Field)
    assert len(set(labels)) == len(labels)


def test_from_label_round_trip():
    for field in Field:
        assert Field.from_label(to_wire_label(field)) is field


def test_from_label_unknown_raises():
    with pytest.raises(ValueError):
        Field.from_label("Power")
