from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pinguard.store.base import AttemptRecord

DEFAULT_TITLE = "Verify PIN"
DEFAULT_DESCRIPTION = "Enter your PIN to continue with this operation"


@dataclass(frozen=True)
class VerificationRequest:
    title: str = DEFAULT_TITLE
    description: str = DEFAULT_DESCRIPTION
    # Force a prompt even inside the session trust window.
    bypass_session: bool = False


class VerificationOutcome(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"


class GuardState(str, Enum):
    IDLE = "idle"
    CHECKING_SESSION = "checking_session"
    LOCKED = "locked"
    AWAITING_INPUT = "awaiting_input"
    VERIFYING = "verifying"
    RESOLVED = "resolved"


class ReasonCode(str, Enum):
    """Why the controller landed where it did; wording lives in messages.py."""

    PROMPT = "prompt"
    SESSION_ACTIVE = "session_active"
    VERIFIED = "verified"
    WRONG_PIN = "wrong_pin"
    LOCKED_OUT = "locked_out"
    STILL_LOCKED = "still_locked"
    LOCKOUT_EXPIRED = "lockout_expired"
    CANCELLED = "cancelled"
    STORE_UNAVAILABLE = "store_unavailable"
    CREDENTIAL_CHECK_FAILED = "credential_check_failed"


@dataclass(frozen=True)
class StepResult:
    state: GuardState
    reason: ReasonCode
    record: AttemptRecord
    outcome: Optional[VerificationOutcome] = None
    remaining_ms: int = 0
    attempts_remaining: Optional[int] = None
    lockout_ms: int = 0  # full duration of the active tier while locked

    @property
    def resolved(self) -> bool:
        return self.state is GuardState.RESOLVED
