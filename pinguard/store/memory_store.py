"""In-memory attempt store (tests, single-process apps)."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

from pinguard.policy import DEFAULT_POLICY, LockoutPolicy
from pinguard.store.base import (
    EMPTY_RECORD,
    AttemptRecord,
    AttemptStore,
    VerificationSession,
)


class MemoryAttemptStore(AttemptStore):
    """Simple in-memory store; NOT shared across processes."""

    backend = "memory"

    def __init__(self, policy: Optional[LockoutPolicy] = None) -> None:
        self.policy = policy or DEFAULT_POLICY
        # Records are created lazily on first failure.
        self._records: Dict[str, AttemptRecord] = {}
        self._sessions: Dict[str, VerificationSession] = {}
        self._mu = asyncio.Lock()

    async def load(self, identity: str) -> AttemptRecord:
        async with self._mu:
            return self._records.get(identity, EMPTY_RECORD)

    async def load_session(self, identity: str) -> VerificationSession:
        async with self._mu:
            return self._sessions.get(identity, VerificationSession())

    async def record_failure(self, identity: str, now_ms: int) -> AttemptRecord:
        async with self._mu:
            prev = self._records.get(identity, EMPTY_RECORD)
            count = prev.failed_count + 1
            rec = AttemptRecord(
                failed_count=count,
                lockout_until=self.policy.lockout_until(count, now_ms),
            )
            self._records[identity] = rec
            return rec

    async def record_success(self, identity: str, now_ms: int) -> None:
        async with self._mu:
            self._records.pop(identity, None)
            self._sessions[identity] = VerificationSession(last_success_at=now_ms)

    async def clear_expired_lockout(self, identity: str, now_ms: int) -> AttemptRecord:
        async with self._mu:
            rec = self._records.get(identity, EMPTY_RECORD)
            if rec.is_expired(now_ms):
                self._records.pop(identity, None)
                return EMPTY_RECORD
            return rec

    async def purge(self, identity: str) -> bool:
        async with self._mu:
            before = identity in self._records or identity in self._sessions
            self._records.pop(identity, None)
            self._sessions.pop(identity, None)
            return before

    async def inspect(self, identity: str) -> Mapping[str, Any]:
        async with self._mu:
            rec = self._records.get(identity, EMPTY_RECORD)
            sess = self._sessions.get(identity, VerificationSession())
            return {
                "backend": self.backend,
                "failed_count": rec.failed_count,
                "lockout_until": rec.lockout_until,
                "last_success_at": sess.last_success_at,
            }

    def seed(
        self,
        identity: str,
        record: Optional[AttemptRecord] = None,
        session: Optional[VerificationSession] = None,
    ) -> None:
        """Preload persisted state, e.g. to simulate a record from a prior run."""
        if record is not None:
            self._records[identity] = record
        if session is not None:
            self._sessions[identity] = session
