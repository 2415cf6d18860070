"""Attempt store package exports."""

from __future__ import annotations

from .base import (
    EMPTY_RECORD,
    AttemptRecord,
    AttemptStore,
    VerificationSession,
    mask_identity,
)
from .memory_store import MemoryAttemptStore
from .redis_store import RedisAttemptStore

__all__ = [
    "AttemptStore",
    "AttemptRecord",
    "VerificationSession",
    "EMPTY_RECORD",
    "MemoryAttemptStore",
    "RedisAttemptStore",
    "mask_identity",
]
