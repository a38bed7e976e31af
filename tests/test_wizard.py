from __future__ import annotations

from datetime import date, timedelta

import pytest

from conftest import FakeClock
from war_bot.errors import IncompleteWizardError, InvalidFieldValueError
from war_bot.models import MatchFormat
from war_bot.wizard import WizardField, WizardRegistry


@pytest.fixture
def wizards(clock: FakeClock) -> WizardRegistry:
    return WizardRegistry(timezone="America/New_York", clock=clock)


def fill(wizards: WizardRegistry, admin_id: int) -> None:
    wizards.set_field(admin_id, WizardField.TEAM_SIZE, 8)
    wizards.set_field(admin_id, WizardField.FORMAT, "bo3")
    wizards.set_field(admin_id, WizardField.OPPONENT, "  Rival   Clan ")
    wizards.set_field(admin_id, WizardField.DATE, date(2024, 5, 3))
    wizards.set_field(admin_id, WizardField.TIME, "20:30")


def test_complete_returns_params_and_closes_session(wizards):
    wizards.start(1)
    fill(wizards, 1)

    params = wizards.complete(1)

    assert params.team_size == 8
    assert params.match_format is MatchFormat.BO3
    assert params.opponent == "Rival Clan"
    assert params.start_date == date(2024, 5, 3)
    assert params.start_time == "8:30 PM"
    assert wizards.get(1) is None
    with pytest.raises(IncompleteWizardError):
        wizards.complete(1)


def test_complete_lists_missing_fields(wizards):
    wizards.start(1)
    wizards.set_field(1, WizardField.TEAM_SIZE, "6v6")

    with pytest.raises(IncompleteWizardError) as excinfo:
        wizards.complete(1)

    assert "format" in str(excinfo.value)
    assert "start time" in str(excinfo.value)
    assert wizards.get(1) is not None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        (WizardField.TEAM_SIZE, 5),
        (WizardField.TEAM_SIZE, "9v9"),
        (WizardField.FORMAT, "bo7"),
        (WizardField.FORMAT, 3),
        (WizardField.OPPONENT, "   "),
        (WizardField.OPPONENT, "x" * 51),
        (WizardField.DATE, date(2024, 4, 30)),
        (WizardField.DATE, date(2024, 5, 16)),
        (WizardField.DATE, "not a date"),
        (WizardField.DATE, 20240503),
        (WizardField.TIME, "3:00 PM"),
        (WizardField.TIME, "8:15 PM"),
        (WizardField.TIME, "25:00"),
        (WizardField.TIME, 2030),
    ],
)
def test_invalid_value_leaves_session_untouched(wizards, name, value):
    session = wizards.start(1)
    fill(wizards, 1)
    before = (
        session.team_size,
        session.match_format,
        session.opponent,
        session.start_date,
        session.start_time,
    )

    with pytest.raises(InvalidFieldValueError):
        wizards.set_field(1, name, value)

    after = (
        session.team_size,
        session.match_format,
        session.opponent,
        session.start_date,
        session.start_time,
    )
    assert after == before


def test_date_window_includes_today_and_last_day(wizards):
    choices = wizards.date_choices()

    assert choices[0] == date(2024, 5, 1)
    assert choices[-1] == date(2024, 5, 15)
    wizards.start(1)
    assert wizards.set_field(1, WizardField.DATE, "05/15").start_date == date(2024, 5, 15)


def test_today_follows_configured_timezone(clock):
    clock.now = clock.now.replace(hour=2)
    wizards = WizardRegistry(timezone="America/New_York", clock=clock)

    assert wizards.today() == date(2024, 4, 30)


def test_time_choices_cover_evening_window(wizards):
    choices = wizards.time_choices()

    assert choices[0] == "5:00 PM"
    assert choices[-1] == "11:30 PM"
    assert len(choices) == 14


def test_custom_time_override(wizards):
    wizards.start(1)
    session = wizards.set_field(1, WizardField.TIME, "After scrims ~9ish", override=True)

    assert session.start_time == "After scrims ~9ish"
    assert session.time_override is True
    with pytest.raises(InvalidFieldValueError):
        wizards.set_field(1, WizardField.TIME, "  ", override=True)


def test_start_replaces_existing_session(wizards):
    wizards.start(1)
    fill(wizards, 1)

    fresh = wizards.start(1, surface_id=55)

    assert fresh.team_size is None
    assert fresh.surface_id == 55
    assert len(wizards) == 1


def test_sessions_are_isolated_per_admin(wizards):
    wizards.start(1)
    wizards.start(2)
    wizards.set_field(1, WizardField.OPPONENT, "Alpha")

    assert wizards.get(2).opponent is None
    wizards.cancel(2)
    wizards.cancel(2)
    assert wizards.get(2) is None
    assert wizards.get(1).opponent == "Alpha"


def test_session_cap_evicts_least_recent(clock):
    wizards = WizardRegistry(max_sessions=2, clock=clock)
    wizards.start(1)
    wizards.start(2)
    wizards.set_field(1, WizardField.OPPONENT, "Alpha")
    wizards.start(3)

    assert wizards.get(2) is None
    assert wizards.get(1) is not None
    assert wizards.get(3) is not None


def test_evict_idle_sessions(wizards, clock):
    wizards.start(1)
    clock.advance(hours=1)
    wizards.start(2)
    clock.advance(hours=1, minutes=30)

    evicted = wizards.evict_idle(timedelta(hours=2))

    assert evicted == [1]
    assert wizards.get(2) is not None


def test_field_on_missing_session_raises(wizards):
    with pytest.raises(IncompleteWizardError):
        wizards.set_field(99, WizardField.OPPONENT, "Alpha")
    with pytest.raises(IncompleteWizardError):
        wizards.attach_surface(99, 1)
