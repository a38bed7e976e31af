"""War sign-up and roster coordination helpers."""

from .errors import (
    EventNotFoundError,
    IncompleteWizardError,
    InsufficientPoolError,
    InvalidFieldValueError,
    InvalidStateError,
    RosterInvariantError,
    TerminalStateError,
    UnauthorizedError,
    UnresolvedParticipantError,
    WarBotError,
)
from .interfaces import Notification, NotificationKind, Signal
from .lifecycle import EventStateMachine, IdAllocator
from .models import (
    MatchFormat,
    Roster,
    RosterMember,
    SignalKind,
    WarCreationParams,
    WarSnapshot,
    WarState,
)
from .pool import PoolRegistry
from .reconciliation import Escalation, OutcomeKind, ReconciliationEngine
from .roster import RosterSelector
from .service import WarCoordinator
from .storage import WarStorage
from .wizard import WizardField, WizardRegistry

__all__ = [
    "EventNotFoundError",
    "IncompleteWizardError",
    "InsufficientPoolError",
    "InvalidFieldValueError",
    "InvalidStateError",
    "RosterInvariantError",
    "TerminalStateError",
    "UnauthorizedError",
    "UnresolvedParticipantError",
    "WarBotError",
    "Notification",
    "NotificationKind",
    "Signal",
    "EventStateMachine",
    "IdAllocator",
    "MatchFormat",
    "Roster",
    "RosterMember",
    "SignalKind",
    "WarCreationParams",
    "WarSnapshot",
    "WarState",
    "PoolRegistry",
    "Escalation",
    "OutcomeKind",
    "ReconciliationEngine",
    "RosterSelector",
    "WarCoordinator",
    "WarStorage",
    "WizardField",
    "WizardRegistry",
]
