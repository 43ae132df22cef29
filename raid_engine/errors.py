"""
Raid error taxonomy.

Every rejection inside the engine is raised as a RaidError subclass and caught once
at the action boundary (RaidSession.step), where it becomes an actionResult event.
"""

from __future__ import annotations

from typing import Any, Dict


class RaidError(Exception):
    code = "RaidError"
    # Set when the rejection itself moved state (e.g. a forced spectator transition).
    state_changed = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class RaidNotFound(RaidError):
    code = "RaidNotFound"


class RaidFull(RaidError):
    code = "RaidFull"


class PlayerNotFound(RaidError):
    code = "PlayerNotFound"


class NotYourTurn(RaidError):
    code = "NotYourTurn"


class InvalidPhase(RaidError):
    code = "InvalidPhase"


class CardKnockedOut(RaidError):
    code = "CardKnockedOut"


class BenchUnavailable(RaidError):
    code = "BenchUnavailable"


class CheerUnavailable(RaidError):
    code = "CheerUnavailable"


class CheerExhausted(RaidError):
    code = "CheerExhausted"


class DebugDisabled(RaidError):
    code = "DebugDisabled"


class UnknownActionType(RaidError):
    code = "UnknownActionType"


class InvalidAction(RaidError):
    code = "InvalidAction"

