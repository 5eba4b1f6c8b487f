"""Builds the graphql-transport-ws messages for a liveMeasurement subscription"""
import json
from dataclasses import dataclass, replace

from sources.fields import Field, to_wire_label

SUBSCRIPTION_ID = "1"

QUERY_TEMPLATE = (
    "subscription {{\n"
    "  liveMeasurement(homeId: {home_id}) {{\n"
    "    {fields}\n"
    "}}\n"
    "}}\n"
)


def _compact(message: dict) -> str:
    return json.dumps(message, separators=(",", ":"))


@dataclass(frozen=True)
class SubscriptionRequest:
    """
    The two outbound frames of a subscription session.

    Attributes:
        token: Tibber API token sent in connection_init.
        home_id: Home the measurements are requested for.
        fields: Selected fields, in query order.
    """
    token: str
    home_id: str
    fields: tuple[Field, ...]

    @property
    def query(self) -> str:
        labels = "\n".join(to_wire_label(field) for field in self.fields)
        # json.dumps yields a valid GraphQL string literal for the id
        return QUERY_TEMPLATE.format(home_id=json.dumps(self.home_id), fields=labels)

    def connection(self) -> str:
        """connection_init frame carrying the token."""
        return _compact({"type": "connection_init", "payload": {"token": self.token}})

    def subscription(self) -> str:
        """subscribe frame carrying the liveMeasurement query."""
        return _compact({
            "id": SUBSCRIPTION_ID,
            "type": "subscribe",
            "payload": {
                "variables": {},
                "extensions": {},
                "query": self.query,
            },
        })


@dataclass(frozen=True)
class SubscriptionQueryBuilder:
    """
    Immutable builder for a SubscriptionRequest.

    Every with_field() call returns a new builder, so partial builders can
    be shared and chained:

        request = (
            SubscriptionQueryBuilder(token, home_id)
            .with_field(Field.POWER)
            .with_field(Field.MIN_POWER)
            .build()
        )
    """
    token: str
    home_id: str
    fields: tuple[Field, ...] = ()

    def with_field(self, field: Field) -> "SubscriptionQueryBuilder":
        """Append a field. Order is kept and duplicates are allowed."""
        return replace(self, fields=self.fields + (field,))

    def with_fields(self, *fields: Field) -> "SubscriptionQueryBuilder":
        return replace(self, fields=self.fields + tuple(fields))

    def build(self) -> SubscriptionRequest:
        if not self.fields:
            raise ValueError("A subscription needs at least one field")
        return SubscriptionRequest(token=self.token, home_id=self.home_id, fields=self.fields)
