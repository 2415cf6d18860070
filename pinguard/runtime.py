from __future__ import annotations

from typing import Optional

from redis.asyncio import Redis, from_url as redis_from_url

from pinguard.client import GuardClient, Prompt
from pinguard.controller import Clock, PinPredicate
from pinguard.settings import GuardSettings, get_settings
from pinguard.store.base import AttemptStore
from pinguard.store.memory_store import MemoryAttemptStore
from pinguard.store.redis_store import RedisAttemptStore
from pinguard.telemetry.logging import configure_root_logging, reset_logging_config

# Lazily initialized singletons for process lifetime.
_redis: Optional[Redis] = None
_store: Optional[AttemptStore] = None


def redis_client(cfg: Optional[GuardSettings] = None) -> Redis:
    """
    Return the Redis client built from PIN_GUARD_REDIS_URL.
    Raises if memory URL is configured since that mode does not need Redis.
    """
    cfg = cfg or get_settings()
    if cfg.redis_url.startswith("memory://"):
        raise RuntimeError("In-memory attempt store does not use redis_client()")

    global _redis
    if _redis is None:
        _redis = redis_from_url(
            cfg.redis_url,
            decode_responses=False,
            socket_timeout=cfg.redis_socket_timeout_s,
            socket_connect_timeout=cfg.redis_socket_timeout_s,
        )
    return _redis


def attempt_store(cfg: Optional[GuardSettings] = None) -> AttemptStore:
    """
    Factory for the process-wide attempt store.
    Chooses Redis vs memory from PIN_GUARD_STORE_BACKEND and PIN_GUARD_REDIS_URL.
    """
    global _store
    if _store is not None:
        return _store

    cfg = cfg or get_settings()
    backend = cfg.store_backend
    # If backend says memory but a real Redis URL is present, prefer Redis.
    if backend == "memory" and not cfg.redis_url.startswith("memory://"):
        backend = "redis"

    if backend == "redis":
        _store = RedisAttemptStore(
            redis_client(cfg),
            ns=cfg.redis_namespace,
            policy=cfg.policy(),
            log_pii_ok=cfg.log_pii_ok,
        )
    else:
        _store = MemoryAttemptStore(policy=cfg.policy())
    return _store


def build_client(
    identity: str,
    verify_pin: PinPredicate,
    prompt: Prompt,
    *,
    clock: Optional[Clock] = None,
) -> GuardClient:
    cfg = get_settings()
    configure_root_logging(cfg.log_level, json_lines=cfg.log_json)
    return GuardClient(
        identity,
        attempt_store(cfg),
        verify_pin,
        prompt,
        settings=cfg,
        clock=clock,
    )


def reset_runtime() -> None:
    global _redis, _store
    _redis = None
    _store = None
    reset_logging_config()
