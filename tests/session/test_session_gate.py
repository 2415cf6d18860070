from __future__ import annotations

from pinguard.models import VerificationRequest
from pinguard.session import SESSION_DURATION_MS, SessionGate
from pinguard.store.base import VerificationSession

NOW = 1_700_000_000_000


def test_no_prior_success_never_bypasses() -> None:
    gate = SessionGate()
    assert gate.should_bypass(VerificationRequest(), VerificationSession(), NOW) is False


def test_recent_success_bypasses() -> None:
    gate = SessionGate()
    sess = VerificationSession(last_success_at=NOW - 10_000)
    assert gate.should_bypass(VerificationRequest(), sess, NOW) is True


def test_forced_reverification_ignores_session() -> None:
    gate = SessionGate()
    sess = VerificationSession(last_success_at=NOW - 10_000)
    req = VerificationRequest(bypass_session=True)
    assert gate.should_bypass(req, sess, NOW) is False


def test_window_is_exclusive_at_five_minutes() -> None:
    gate = SessionGate()
    assert SESSION_DURATION_MS == 300_000
    just_inside = VerificationSession(last_success_at=NOW - SESSION_DURATION_MS + 1)
    at_edge = VerificationSession(last_success_at=NOW - SESSION_DURATION_MS)
    assert gate.should_bypass(VerificationRequest(), just_inside, NOW) is True
    assert gate.should_bypass(VerificationRequest(), at_edge, NOW) is False


def test_future_dated_success_does_not_bypass() -> None:
    gate = SessionGate()
    sess = VerificationSession(last_success_at=NOW + 60_000)
    assert gate.should_bypass(VerificationRequest(), sess, NOW) is False


def test_custom_duration() -> None:
    gate = SessionGate(session_duration_ms=1_000)
    sess = VerificationSession(last_success_at=NOW - 1_500)
    assert gate.should_bypass(VerificationRequest(), sess, NOW) is False
