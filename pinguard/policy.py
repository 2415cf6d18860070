"""
Lockout policy: cumulative failed attempts → lockout duration.

Tiers are (min_failed_count, duration_ms) pairs; the highest threshold satisfied
by the current count wins. Thresholds are inclusive, so the failure that brings
the count to a threshold is the one that triggers the lock.

Pure functions only. The store uses the policy to stamp ``lockout_until`` and
the controller uses it to tell the user how many attempts remain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

MINUTE_MS = 60_000


@dataclass(frozen=True)
class LockoutTier:
    min_failed_count: int
    duration_ms: int


def _default_tiers() -> Tuple[LockoutTier, ...]:
    return (
        LockoutTier(3, 1 * MINUTE_MS),  # 3 failures -> 1 minute
        LockoutTier(5, 5 * MINUTE_MS),  # 5 failures -> 5 minutes
        LockoutTier(10, 30 * MINUTE_MS),  # 10 failures -> 30 minutes
    )


@dataclass(frozen=True)
class LockoutPolicy:
    tiers: Tuple[LockoutTier, ...] = field(default_factory=_default_tiers)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.tiers, key=lambda t: t.min_failed_count))
        if not ordered:
            raise ValueError("Lockout policy needs at least one tier")
        prev: Optional[LockoutTier] = None
        for t in ordered:
            if t.min_failed_count < 1 or t.duration_ms <= 0:
                raise ValueError(f"Invalid lockout tier: {t}")
            if prev is not None:
                if t.min_failed_count == prev.min_failed_count:
                    raise ValueError(f"Duplicate lockout threshold: {t.min_failed_count}")
                if t.duration_ms < prev.duration_ms:
                    raise ValueError("Lockout durations must not shrink as thresholds grow")
            prev = t
        # frozen dataclass: bypass __setattr__ to store the normalized order
        object.__setattr__(self, "tiers", ordered)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[int, int]]) -> "LockoutPolicy":
        """Build from ``(threshold, duration_ms)`` pairs in any order."""
        return cls(tiers=tuple(LockoutTier(int(n), int(ms)) for n, ms in pairs))

    @property
    def lowest_threshold(self) -> int:
        return self.tiers[0].min_failed_count

    def tier(self, failed_count: int) -> int:
        """Lockout duration in milliseconds for ``failed_count`` failures."""
        for t in reversed(self.tiers):
            if failed_count >= t.min_failed_count:
                return t.duration_ms
        return 0

    def lockout_until(self, failed_count: int, now_ms: int) -> Optional[int]:
        duration = self.tier(failed_count)
        if duration <= 0:
            return None
        return now_ms + duration

    def next_threshold(self, failed_count: int) -> Optional[int]:
        for t in self.tiers:
            if t.min_failed_count > failed_count:
                return t.min_failed_count
        return None

    def attempts_before_next_tier(self, failed_count: int) -> Optional[int]:
        """How many more failures trigger the next tier; ``None`` past the top."""
        nxt = self.next_threshold(failed_count)
        if nxt is None:
            return None
        return nxt - failed_count

    def as_pairs(self) -> Tuple[Tuple[int, int], ...]:
        return tuple((t.min_failed_count, t.duration_ms) for t in self.tiers)


DEFAULT_POLICY = LockoutPolicy()


def tier(failed_count: int) -> int:
    """Default-policy shortcut for :meth:`LockoutPolicy.tier`."""
    return DEFAULT_POLICY.tier(failed_count)
