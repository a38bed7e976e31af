from __future__ import annotations

from typing import ClassVar


class WarBotError(Exception):
    """Base class for expected, user-facing failures.

    ``str(exc)`` is safe to show directly to the member who triggered it.
    """

    default_reason: ClassVar[str] = "That action could not be completed."

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class InvalidStateError(WarBotError):
    default_reason = "That action is not available at this stage of the war."


class InsufficientPoolError(WarBotError):
    default_reason = "Not enough players have signed up to fill the roster yet."


class UnresolvedParticipantError(WarBotError):
    default_reason = "One or more of those players could not be found in the sign-up pool."


class InvalidFieldValueError(WarBotError, ValueError):
    default_reason = "That value is not allowed."


class IncompleteWizardError(WarBotError):
    default_reason = "The war setup is not finished yet. Run /warbot new to start again."


class TerminalStateError(WarBotError):
    default_reason = "This war is already over and can no longer be changed."


class UnauthorizedError(WarBotError):
    default_reason = "You do not have permission to manage wars."


class EventNotFoundError(WarBotError):
    default_reason = "War not found."


class RosterInvariantError(RuntimeError):
    """Raised when a roster breaks its own invariants (a bug, never user input)."""


__all__ = [
    "WarBotError",
    "InvalidStateError",
    "InsufficientPoolError",
    "UnresolvedParticipantError",
    "InvalidFieldValueError",
    "IncompleteWizardError",
    "TerminalStateError",
    "UnauthorizedError",
    "EventNotFoundError",
    "RosterInvariantError",
]
