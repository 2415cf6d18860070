from __future__ import annotations

import pytest

from pinguard.policy import DEFAULT_POLICY, LockoutPolicy, LockoutTier, tier

MIN = 60_000


@pytest.mark.parametrize(
    "failed, expected",
    [
        (0, 0),
        (1, 0),
        (2, 0),
        (3, 1 * MIN),
        (4, 1 * MIN),
        (5, 5 * MIN),
        (9, 5 * MIN),
        (10, 30 * MIN),
        (250, 30 * MIN),
    ],
)
def test_default_tiers(failed: int, expected: int) -> None:
    assert tier(failed) == expected


def test_tier_is_monotonic_non_decreasing() -> None:
    durations = [DEFAULT_POLICY.tier(n) for n in range(0, 40)]
    assert durations == sorted(durations)


def test_threshold_is_inclusive() -> None:
    # the failure that reaches the threshold is the one that locks
    assert DEFAULT_POLICY.tier(2) == 0
    assert DEFAULT_POLICY.lockout_until(3, now_ms=1000) == 1000 + MIN
    assert DEFAULT_POLICY.lockout_until(2, now_ms=1000) is None


def test_attempts_before_next_tier() -> None:
    p = DEFAULT_POLICY
    assert p.lowest_threshold == 3
    assert p.attempts_before_next_tier(0) == 3
    assert p.attempts_before_next_tier(2) == 1
    assert p.attempts_before_next_tier(4) == 1
    assert p.attempts_before_next_tier(5) == 5
    assert p.attempts_before_next_tier(10) is None


def test_from_pairs_sorts_by_threshold() -> None:
    p = LockoutPolicy.from_pairs([(10, 30 * MIN), (3, MIN), (5, 5 * MIN)])
    assert [t.min_failed_count for t in p.tiers] == [3, 5, 10]
    assert p.as_pairs() == ((3, MIN), (5, 5 * MIN), (10, 30 * MIN))


def test_custom_single_tier() -> None:
    p = LockoutPolicy(tiers=(LockoutTier(2, 10_000),))
    assert p.tier(1) == 0
    assert p.tier(2) == 10_000
    assert p.tier(50) == 10_000
    assert p.attempts_before_next_tier(2) is None


@pytest.mark.parametrize(
    "tiers",
    [
        (),
        (LockoutTier(0, 1000),),
        (LockoutTier(3, 0),),
        (LockoutTier(3, 1000), LockoutTier(3, 2000)),
        (LockoutTier(3, 5000), LockoutTier(5, 1000)),
    ],
)
def test_invalid_tiers_rejected(tiers) -> None:
    with pytest.raises(ValueError):
        LockoutPolicy(tiers=tiers)
