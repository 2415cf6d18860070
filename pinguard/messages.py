"""
User-facing wording for guard steps.

The controller only produces reason codes and numbers; this module turns them
into the strings a prompt renders. Nothing here touches persisted state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from pinguard.models import GuardState, ReasonCode, StepResult, VerificationRequest

LOCKED_HEADLINE = "Account Temporarily Locked"
UNAVAILABLE_MESSAGE = "Verification is temporarily unavailable. Please try again later."


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def minutes_ceil(ms: int) -> int:
    return max(1, math.ceil(ms / 60_000))


def format_countdown(remaining_ms: int) -> str:
    """``m:ss`` for a countdown display; negative values clamp to ``0:00``."""
    remaining = max(0, int(remaining_ms))
    minutes = remaining // 60_000
    seconds = (remaining % 60_000) // 1000
    return f"{minutes}:{seconds:02d}"


def error_message(step: StepResult) -> Optional[str]:
    reason = step.reason
    if reason is ReasonCode.WRONG_PIN:
        n = step.attempts_remaining
        if n is None:
            return "Incorrect PIN."
        return f"Incorrect PIN. {_plural(n, 'attempt')} remaining before lockout."
    if reason is ReasonCode.LOCKED_OUT:
        duration = step.lockout_ms or step.remaining_ms
        return f"Too many failed attempts. Locked for {_plural(minutes_ceil(duration), 'minute')}."
    if reason is ReasonCode.STILL_LOCKED:
        return (
            "Too many failed attempts. "
            f"Try again in {_plural(minutes_ceil(step.remaining_ms), 'minute')}."
        )
    if reason in (ReasonCode.STORE_UNAVAILABLE, ReasonCode.CREDENTIAL_CHECK_FAILED):
        return UNAVAILABLE_MESSAGE
    return None


def warning_message(failed_count: int, attempts_remaining: Optional[int]) -> Optional[str]:
    if failed_count <= 0 or attempts_remaining is None:
        return None
    return (
        f"{_plural(failed_count, 'failed attempt')}. "
        f"Account will be locked after {attempts_remaining} more failed "
        f"attempt{'' if attempts_remaining == 1 else 's'}."
    )


@dataclass(frozen=True)
class PromptView:
    """Everything a prompt needs to draw the current step."""

    title: str
    description: str
    state: GuardState
    error: Optional[str] = None
    warning: Optional[str] = None
    locked: bool = False
    headline: Optional[str] = None
    countdown: Optional[str] = None
    failed_count: int = 0
    attempts_remaining: Optional[int] = None


def render(request: VerificationRequest, step: StepResult) -> PromptView:
    locked = step.state is GuardState.LOCKED
    failed = step.record.failed_count
    return PromptView(
        title=request.title,
        description=request.description,
        state=step.state,
        error=error_message(step),
        warning=None if locked else warning_message(failed, step.attempts_remaining),
        locked=locked,
        headline=LOCKED_HEADLINE if locked else None,
        countdown=format_countdown(step.remaining_ms) if locked else None,
        failed_count=failed,
        attempts_remaining=step.attempts_remaining,
    )
