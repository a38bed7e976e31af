from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta

import pytest
from botocore.exceptions import ClientError

from war_bot.lifecycle import EventStateMachine
from war_bot.models import MatchFormat, SignalKind, WarCreationParams
from war_bot.pool import PoolRegistry

COUNTER_EXPRESSION = re.compile(r"^SET (\w+) = if_not_exists\(\1, (:\w+)\) \+ (:\w+)$")


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 16, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTable:
    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}

    def get_item(self, *, Key):
        return {"Item": self.items.get((Key["pk"], Key["sk"]))}

    def put_item(self, *, Item):
        self.items[(Item["pk"], Item["sk"])] = dict(Item)

    def update_item(
        self, *, Key, UpdateExpression, ExpressionAttributeValues, ReturnValues="NONE"
    ):
        item = self.items.setdefault((Key["pk"], Key["sk"]), dict(Key))
        updated = {}
        counter = COUNTER_EXPRESSION.match(UpdateExpression)
        if counter:
            name, base, step = counter.groups()
            current = item.get(name, ExpressionAttributeValues[base])
            item[name] = updated[name] = current + ExpressionAttributeValues[step]
        else:
            assignments = UpdateExpression.removeprefix("SET ").split(",")
            for assignment in assignments:
                name, placeholder = (part.strip() for part in assignment.split("="))
                item[name] = updated[name] = ExpressionAttributeValues[placeholder]
        if ReturnValues == "UPDATED_NEW":
            return {"Attributes": updated}
        return {}

    def query(self, *, KeyConditionExpression, Select="COUNT", **_kwargs):
        pk_value = None
        sk_prefix = ""
        for condition in KeyConditionExpression._values:  # type: ignore[attr-defined]
            key, value = condition._values  # type: ignore[attr-defined]
            if key.name == "pk":  # pragma: no branch - helper
                pk_value = value
            elif key.name == "sk":
                sk_prefix = value
        matching_keys = [
            key
            for key in sorted(self.items)
            if key[0] == pk_value and key[1].startswith(sk_prefix)
        ]
        items = [self.items[key] for key in matching_keys]
        if Select == "COUNT":
            return {"Count": len(items)}
        return {"Items": [item.copy() for item in items], "Count": len(items)}

    def delete_item(self, *, Key, ConditionExpression):
        del ConditionExpression  # pragma: no cover - unused in fake implementation
        item_key = (Key["pk"], Key["sk"])
        if item_key not in self.items:
            raise ClientError(
                {
                    "Error": {
                        "Code": "ConditionalCheckFailedException",
                        "Message": "Item not found",
                    }
                },
                "DeleteItem",
            )
        self.items.pop(item_key)


def make_params(
    team_size: int = 6,
    match_format: MatchFormat = MatchFormat.BO3,
    opponent: str = "RivalClan",
) -> WarCreationParams:
    return WarCreationParams(
        team_size=team_size,
        match_format=match_format,
        opponent=opponent,
        start_date=date(2024, 5, 3),
        start_time="8:30 PM",
    )


def sign_up(
    machine: EventStateMachine,
    clock: FakeClock,
    event_id: int,
    participant_ids,
    kind: SignalKind = SignalKind.AVAILABLE,
) -> None:
    for participant_id in participant_ids:
        clock.advance(seconds=1)
        machine.pool.signal(event_id, participant_id, kind, f"P{participant_id}")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def machine(clock: FakeClock) -> EventStateMachine:
    return EventStateMachine(PoolRegistry(clock=clock), clock=clock)


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()
