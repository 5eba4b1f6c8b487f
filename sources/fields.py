"""Catalog of live measurement fields supported by the Tibber subscription"""
from enum import Enum


class Field(Enum):
    """
    Scalar quantities available on Tibber's liveMeasurement subscription.

    The enum value is the exact camelCase label used on the wire.
    """

    TIMESTAMP = "timestamp"
    POWER = "power"
    LAST_METER_CONSUMPTION = "lastMeterConsumption"
    ACCUMULATED_CONSUMPTION = "accumulatedConsumption"
    ACCUMULATED_PRODUCTION = "accumulatedProduction"
    ACCUMULATED_CONSUMPTION_LAST_HOUR = "accumulatedConsumptionLastHour"
    ACCUMULATED_PRODUCTION_LAST_HOUR = "accumulatedProductionLastHour"
    ACCUMULATED_COST = "accumulatedCost"
    ACCUMULATED_REWARD = "accumulatedReward"
    CURRENCY = "currency"
    MIN_POWER = "minPower"
    AVERAGE_POWER = "averagePower"
    MAX_POWER = "maxPower"
    POWER_PRODUCTION = "powerProduction"
    POWER_REACTIVE = "powerReactive"
    POWER_PRODUCTION_REACTIVE = "powerProductionReactive"
    MIN_POWER_PRODUCTION = "minPowerProduction"
    MAX_POWER_PRODUCTION = "maxPowerProduction"
    LAST_METER_PRODUCTION = "lastMeterProduction"
    POWER_FACTOR = "powerFactor"
    VOLTAGE_PHASE1 = "voltagePhase1"
    VOLTAGE_PHASE2 = "voltagePhase2"
    VOLTAGE_PHASE3 = "voltagePhase3"
    CURRENT_L1 = "currentL1"
    CURRENT_L2 = "currentL2"
    CURRENT_L3 = "currentL3"
    SIGNAL_STRENGTH = "signalStrength"

    @property
    def wire_label(self) -> str:
        return self.value

    @classmethod
    def from_label(cls, label: str) -> "Field":
        """Look up a field by its wire label. Raises ValueError if unknown."""
        return cls(label)

    def __str__(self) -> str:
        return self.value


def to_wire_label(field: Field) -> str:
    """Return the label Tibber expects for this field in a subscription query."""
    return field.wire_label


def wire_labels() -> list[str]:
    """All supported wire labels, in catalog order."""
    return [field.value for field in Field]
