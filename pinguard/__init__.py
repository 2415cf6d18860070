"""PIN guard: step-up re-authentication before sensitive actions."""

from __future__ import annotations

from .app_lock import InactivityLock
from .client import GuardClient, Prompt
from .controller import GuardController
from .errors import (
    CredentialCheckError,
    GuardStateError,
    PinGuardError,
    StoreUnavailableError,
)
from .messages import PromptView
from .models import (
    GuardState,
    ReasonCode,
    StepResult,
    VerificationOutcome,
    VerificationRequest,
)
from .policy import DEFAULT_POLICY, LockoutPolicy, LockoutTier, tier
from .session import SessionGate
from .settings import GuardSettings, get_settings
from .store import (
    AttemptRecord,
    AttemptStore,
    MemoryAttemptStore,
    RedisAttemptStore,
    VerificationSession,
)

__version__ = "0.1.0"

__all__ = [
    "AttemptRecord",
    "AttemptStore",
    "CredentialCheckError",
    "DEFAULT_POLICY",
    "GuardClient",
    "GuardController",
    "GuardSettings",
    "GuardState",
    "GuardStateError",
    "InactivityLock",
    "LockoutPolicy",
    "LockoutTier",
    "MemoryAttemptStore",
    "PinGuardError",
    "Prompt",
    "PromptView",
    "ReasonCode",
    "RedisAttemptStore",
    "SessionGate",
    "StepResult",
    "StoreUnavailableError",
    "VerificationOutcome",
    "VerificationRequest",
    "VerificationSession",
    "get_settings",
    "tier",
]
