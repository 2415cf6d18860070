"""Prometheus metrics for guard flows."""
from __future__ import annotations

from typing import Iterable, Tuple

from prometheus_client import Counter, Histogram


def _label_tuple(labels: Iterable[str] | None) -> Tuple[str, ...]:
    return tuple(labels) if labels else ()


def metric_counter(
    name: str,
    documentation: str,
    labels: Iterable[str] | None = None,
) -> Counter:
    return Counter(name, documentation, _label_tuple(labels))


def metric_histogram(
    name: str,
    documentation: str,
    labels: Iterable[str] | None = None,
) -> Histogram:
    return Histogram(name, documentation, _label_tuple(labels))


VERIFICATIONS = metric_counter(
    "pinguard_verifications_total",
    "Resolved verification flows",
    ["outcome", "reason"],
)
FAILED_ATTEMPTS = metric_counter(
    "pinguard_failed_attempts_total",
    "Wrong PIN submissions recorded against the attempt store",
)
LOCKOUTS = metric_counter(
    "pinguard_lockouts_total",
    "Lockouts started, by tier threshold",
    ["tier"],
)
SESSION_BYPASS = metric_counter(
    "pinguard_session_bypass_total",
    "Flows approved from the session trust window without a prompt",
)
INFRA_ERRORS = metric_counter(
    "pinguard_infra_errors_total",
    "Attempt store or credential predicate failures",
    ["operation"],
)
FLOW_SECONDS = metric_histogram(
    "pinguard_flow_seconds",
    "Wall time from request_verification to resolution",
    ["outcome"],
)
