"""Attempt store interface and persisted value containers."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class AttemptRecord:
    failed_count: int = 0
    lockout_until: Optional[int] = None  # epoch ms

    def is_locked(self, now_ms: int) -> bool:
        return self.lockout_until is not None and now_ms < self.lockout_until

    def is_expired(self, now_ms: int) -> bool:
        return self.lockout_until is not None and now_ms >= self.lockout_until


EMPTY_RECORD = AttemptRecord()


@dataclass(frozen=True)
class VerificationSession:
    last_success_at: Optional[int] = None  # epoch ms


@runtime_checkable
class AttemptStore(Protocol):
    """Identity-scoped persisted attempt state.

    Each mutating method is a single read-modify-write; implementations must
    make it atomic with respect to other callers sharing the same backing store.
    """

    async def load(self, identity: str) -> AttemptRecord:
        ...

    async def load_session(self, identity: str) -> VerificationSession:
        ...

    async def record_failure(self, identity: str, now_ms: int) -> AttemptRecord:
        """Increment the failure count and stamp the lockout for the new count."""
        ...

    async def record_success(self, identity: str, now_ms: int) -> None:
        """Clear failures and lockout; stamp ``last_success_at``."""
        ...

    async def clear_expired_lockout(self, identity: str, now_ms: int) -> AttemptRecord:
        """Reset the record when its lockout deadline has passed."""
        ...

    async def purge(self, identity: str) -> bool:
        return False

    async def inspect(self, identity: str) -> Mapping[str, Any]:
        raise NotImplementedError


def mask_identity(identity: str, pii_ok: bool = False) -> str:
    """Return a log-safe representation of ``identity``.

    Unless ``pii_ok`` (``GuardSettings.log_pii_ok``) opts in, the identity is
    replaced with a short SHA-256 prefix so log lines stay correlatable.
    """

    if pii_ok:
        return identity
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()
    return f"hash:{digest[:16]}"
