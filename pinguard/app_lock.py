"""
Whole-app lock after a period of inactivity.

Independent of the step-up guard: no attempt counting, no lockout tiers. The
host app calls ``touch()`` on user activity; a background checker locks the
app once the idle time exceeds the timeout, and ``unlock()`` re-opens it with
a correct PIN.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from pinguard.settings import GuardSettings, get_settings

Clock = Callable[[], float]
PinPredicate = Callable[[str], Union[bool, Awaitable[bool]]]
OnLock = Callable[[], Optional[Awaitable[None]]]

log = logging.getLogger("pinguard.app_lock")


class InactivityLock:
    def __init__(
        self,
        verify_pin: PinPredicate,
        *,
        timeout_s: Optional[float] = None,
        check_interval_s: Optional[float] = None,
        clock: Optional[Clock] = None,
        on_lock: Optional[OnLock] = None,
        settings: Optional[GuardSettings] = None,
    ) -> None:
        cfg = settings or get_settings()
        self._verify_pin = verify_pin
        self.timeout_s = float(timeout_s if timeout_s is not None else cfg.inactivity_timeout_s)
        self.check_interval_s = float(
            check_interval_s if check_interval_s is not None else cfg.inactivity_check_s
        )
        self._clock: Clock = clock or time.monotonic
        self._on_lock = on_lock
        self._locked = False
        self._last_activity = self._clock()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def is_locked(self) -> bool:
        return self._locked

    def idle_seconds(self) -> float:
        return max(0.0, self._clock() - self._last_activity)

    def touch(self) -> None:
        if not self._locked:
            self._last_activity = self._clock()

    async def lock(self) -> None:
        if self._locked:
            return
        self._locked = True
        log.info("app locked", extra={"idle_s": round(self.idle_seconds(), 1)})
        if self._on_lock is not None:
            res = self._on_lock()
            if inspect.isawaitable(res):
                await res

    async def check(self) -> bool:
        """Lock when idle past the timeout; returns the lock state."""
        if not self._locked and self.idle_seconds() > self.timeout_s:
            await self.lock()
        return self._locked

    async def unlock(self, candidate: str) -> bool:
        result = self._verify_pin(candidate)
        if inspect.isawaitable(result):
            result = await result
        if not result:
            return False
        self._locked = False
        self._last_activity = self._clock()
        log.info("app unlocked")
        return True

    # ---------------------- background checker ----------------------

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval_s)
            await self.check()

    async def aclose(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def __aenter__(self) -> "InactivityLock":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
