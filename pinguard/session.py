"""Session trust window: skip the prompt shortly after a successful check."""

from __future__ import annotations

from dataclasses import dataclass

from pinguard.models import VerificationRequest
from pinguard.store.base import VerificationSession

SESSION_DURATION_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class SessionGate:
    session_duration_ms: int = SESSION_DURATION_MS

    def should_bypass(
        self,
        request: VerificationRequest,
        session: VerificationSession,
        now_ms: int,
    ) -> bool:
        if request.bypass_session:
            return False
        last = session.last_success_at
        if last is None:
            return False
        elapsed = now_ms - last
        # A success stamped in the future (clock skew) grants nothing.
        if elapsed < 0:
            return False
        return elapsed < self.session_duration_ms
