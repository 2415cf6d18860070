"""Redis-backed attempt store with atomic Lua read-modify-write."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, cast

from redis.asyncio import Redis
from redis.exceptions import RedisError

from pinguard.errors import StoreUnavailableError
from pinguard.policy import DEFAULT_POLICY, LockoutPolicy
from pinguard.store.base import (
    EMPTY_RECORD,
    AttemptRecord,
    AttemptStore,
    VerificationSession,
    mask_identity,
)

log = logging.getLogger("pinguard.store")


def _ns(ns: str, *parts: str) -> str:
    return ":".join((ns, *parts))


# Lua: increment failed_count and stamp lockout_until from the tier table.
# ARGV[1] = now_ms, ARGV[2] = tier count, then (threshold, duration_ms) pairs
# in ascending threshold order. Returns {failed_count, lockout_until or -1}.
_RECORD_FAILURE_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local ntiers = tonumber(ARGV[2])
local count = tonumber(redis.call('HGET', key, 'failed_count') or '0') + 1
local duration = 0
for i = 0, ntiers - 1 do
  local threshold = tonumber(ARGV[3 + i * 2])
  local ms = tonumber(ARGV[4 + i * 2])
  if count >= threshold then
    duration = ms
  end
end
redis.call('HSET', key, 'failed_count', count)
if duration > 0 then
  local until_ms = now + duration
  redis.call('HSET', key, 'lockout_until', until_ms)
  return {count, until_ms}
end
redis.call('HDEL', key, 'lockout_until')
return {count, -1}
"""

# Lua: clear failures and lockout, stamp last_success_at.
_RECORD_SUCCESS_LUA = """
local key = KEYS[1]
redis.call('HDEL', key, 'failed_count', 'lockout_until')
redis.call('HSET', key, 'last_success_at', ARGV[1])
return 1
"""

# Lua: reset the record when lockout_until <= now. Returns the resulting record.
_CLEAR_EXPIRED_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local until_raw = redis.call('HGET', key, 'lockout_until')
local count = tonumber(redis.call('HGET', key, 'failed_count') or '0')
if until_raw then
  local until_ms = tonumber(until_raw)
  if until_ms <= now then
    redis.call('HDEL', key, 'failed_count', 'lockout_until')
    return {0, -1}
  end
  return {count, until_ms}
end
return {count, -1}
"""


def _to_int(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode()
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return None


def _record_from_reply(reply: Sequence[Any]) -> AttemptRecord:
    count = _to_int(reply[0]) or 0
    until = _to_int(reply[1])
    if until is not None and until < 0:
        until = None
    return AttemptRecord(failed_count=count, lockout_until=until)


class RedisAttemptStore(AttemptStore):
    """One hash per identity: failed_count, lockout_until, last_success_at."""

    backend = "redis"

    def __init__(
        self,
        redis: Redis,
        ns: str = "pinguard",
        policy: Optional[LockoutPolicy] = None,
        log_pii_ok: bool = False,
    ) -> None:
        self.r = redis
        self.ns = ns
        self.policy = policy or DEFAULT_POLICY
        self.log_pii_ok = log_pii_ok

    def _k(self, identity: str) -> str:
        return _ns(self.ns, identity, "attempts")

    def _unavailable(self, operation: str, identity: str, exc: BaseException) -> StoreUnavailableError:
        log.error(
            "attempt store %s failed",
            operation,
            extra={"identity": mask_identity(identity, self.log_pii_ok), "error": repr(exc)},
        )
        return StoreUnavailableError(
            f"redis attempt store unavailable during {operation}",
            backend=self.backend,
            operation=operation,
        )

    async def _eval(self, script: str, numkeys: int, *args: Any) -> Any:
        """Typed wrapper to satisfy mypy on redis-py's .eval return type."""
        return await cast(Any, self.r).eval(script, numkeys, *args)

    def _tier_args(self) -> List[int]:
        pairs = self.policy.as_pairs()
        args: List[int] = [len(pairs)]
        for threshold, duration_ms in pairs:
            args.extend((threshold, duration_ms))
        return args

    async def load(self, identity: str) -> AttemptRecord:
        try:
            count_raw, until_raw = await self.r.hmget(
                self._k(identity), ["failed_count", "lockout_until"]
            )
        except (RedisError, OSError) as exc:
            raise self._unavailable("load", identity, exc) from exc
        count = _to_int(count_raw) or 0
        until = _to_int(until_raw)
        if count == 0 and until is None:
            return EMPTY_RECORD
        return AttemptRecord(failed_count=count, lockout_until=until)

    async def load_session(self, identity: str) -> VerificationSession:
        try:
            raw = await self.r.hget(self._k(identity), "last_success_at")
        except (RedisError, OSError) as exc:
            raise self._unavailable("load_session", identity, exc) from exc
        return VerificationSession(last_success_at=_to_int(raw))

    async def record_failure(self, identity: str, now_ms: int) -> AttemptRecord:
        try:
            reply = await self._eval(
                _RECORD_FAILURE_LUA, 1, self._k(identity), int(now_ms), *self._tier_args()
            )
        except (RedisError, OSError) as exc:
            raise self._unavailable("record_failure", identity, exc) from exc
        return _record_from_reply(reply)

    async def record_success(self, identity: str, now_ms: int) -> None:
        try:
            await self._eval(_RECORD_SUCCESS_LUA, 1, self._k(identity), int(now_ms))
        except (RedisError, OSError) as exc:
            raise self._unavailable("record_success", identity, exc) from exc

    async def clear_expired_lockout(self, identity: str, now_ms: int) -> AttemptRecord:
        try:
            reply = await self._eval(_CLEAR_EXPIRED_LUA, 1, self._k(identity), int(now_ms))
        except (RedisError, OSError) as exc:
            raise self._unavailable("clear_expired_lockout", identity, exc) from exc
        return _record_from_reply(reply)

    async def purge(self, identity: str) -> bool:
        try:
            res = await self.r.delete(self._k(identity))
        except (RedisError, OSError) as exc:
            raise self._unavailable("purge", identity, exc) from exc
        return bool(res)

    async def inspect(self, identity: str) -> Mapping[str, Any]:
        try:
            raw = await self.r.hgetall(self._k(identity))
        except (RedisError, OSError) as exc:
            raise self._unavailable("inspect", identity, exc) from exc
        data = {
            (k.decode() if isinstance(k, (bytes, bytearray)) else str(k)): _to_int(v)
            for k, v in (raw or {}).items()
        }
        return {
            "backend": self.backend,
            "failed_count": data.get("failed_count") or 0,
            "lockout_until": data.get("lockout_until"),
            "last_success_at": data.get("last_success_at"),
        }
