from __future__ import annotations

from conftest import make_params, sign_up
from war_bot.models import SignalKind, WarState
from war_bot.reconciliation import OutcomeKind, ReconciliationEngine
from war_bot.roster import RosterSelector

FULL_TEAM = list(range(1, 7))


def locked(machine, clock, pool_ids, team_size=6):
    event = machine.create(make_params(team_size=team_size))
    sign_up(machine, clock, event.event_id, pool_ids)
    RosterSelector(machine).auto_select(event.event_id)
    return event


def withdraw(machine, event_id, participant_id):
    machine.pool.retract(event_id, participant_id)
    return ReconciliationEngine(machine).on_signal_retracted(event_id, participant_id)


def test_starter_withdrawal_promotes_earliest_backup(machine, clock):
    event = locked(machine, clock, range(1, 9))

    outcome = withdraw(machine, event.event_id, 1)

    assert outcome.kind is OutcomeKind.PROMOTED
    assert outcome.withdrawn.participant_id == 1
    assert outcome.promoted.participant_id == 7
    assert event.state is WarState.LOCKED
    assert event.roster.starter_ids == [2, 3, 4, 5, 6, 7]
    assert event.roster.backup_ids == [8]


def test_backup_withdrawal_leaves_starters_alone(machine, clock):
    event = locked(machine, clock, range(1, 9))
    locked_at = event.locked_at
    clock.advance(minutes=5)

    outcome = withdraw(machine, event.event_id, 7)

    assert outcome.kind is OutcomeKind.BACKUP_REMOVED
    assert outcome.changed
    assert event.roster.starter_ids == FULL_TEAM
    assert event.roster.backup_ids == [8]
    assert event.locked_at == locked_at


def test_late_signup_is_eligible_for_promotion(machine, clock):
    event = locked(machine, clock, FULL_TEAM)
    sign_up(machine, clock, event.event_id, [9])
    assert event.roster.backup_ids == []

    outcome = withdraw(machine, event.event_id, 2)

    assert outcome.kind is OutcomeKind.PROMOTED
    assert event.roster.starter_ids == [1, 3, 4, 5, 6, 9]


def test_exhausted_pool_reopens_with_single_escalation(machine, clock):
    event = locked(machine, clock, FULL_TEAM)

    outcome = withdraw(machine, event.event_id, 6)

    assert outcome.kind is OutcomeKind.REOPENED
    assert outcome.escalation is not None
    assert outcome.escalation.missing_starters == 1
    assert event.state is WarState.OPEN
    assert event.roster is None
    assert [entry.participant_id for entry in machine.pool.available(event.event_id)] == [
        1,
        2,
        3,
        4,
        5,
    ]


def test_unavailable_players_are_never_promoted(machine, clock):
    event = locked(machine, clock, FULL_TEAM)
    sign_up(machine, clock, event.event_id, [10], kind=SignalKind.UNAVAILABLE)

    outcome = withdraw(machine, event.event_id, 1)

    assert outcome.kind is OutcomeKind.REOPENED


def test_non_roster_player_changes_nothing(machine, clock):
    event = locked(machine, clock, FULL_TEAM)
    sign_up(machine, clock, event.event_id, [9], kind=SignalKind.UNAVAILABLE)

    outcome = withdraw(machine, event.event_id, 9)

    assert outcome.kind is OutcomeKind.NONE
    assert not outcome.changed
    assert event.roster.starter_ids == FULL_TEAM


def test_open_or_started_war_is_not_reconciled(machine, clock):
    open_event = machine.create(make_params())
    sign_up(machine, clock, open_event.event_id, [1, 2])
    assert withdraw(machine, open_event.event_id, 1).kind is OutcomeKind.NONE

    started = locked(machine, clock, range(1, 8))
    machine.record_map_score(started.event_id, our_score=6, opp_score=1)
    outcome = withdraw(machine, started.event_id, 1)

    assert outcome.kind is OutcomeKind.NONE
    assert started.roster.starter_ids == FULL_TEAM


def test_repeated_withdrawals_keep_roster_valid(machine, clock):
    event = locked(machine, clock, range(1, 10))

    for participant_id in (1, 2, 3):
        outcome = withdraw(machine, event.event_id, participant_id)
        assert outcome.kind is OutcomeKind.PROMOTED
        starters = event.roster.starter_ids
        assert len(starters) == len(set(starters)) == 6
        assert not set(starters) & set(event.roster.backup_ids)

    assert event.roster.starter_ids == [4, 5, 6, 7, 8, 9]
    assert withdraw(machine, event.event_id, 9).escalation.missing_starters == 1
