"""
Guard controller: one verification flow, end to end.

States:
- idle → checking_session on open()
- checking_session → resolved(approved) inside the session trust window
- checking_session → locked | awaiting_input from the persisted attempt record
- locked: countdown derived from lockout_until - now on every tick; submissions
  are rejected without touching the predicate; expiry clears the record
- awaiting_input → verifying on submit()
- verifying → resolved(approved) | locked | awaiting_input
- awaiting_input / locked → resolved(denied) on cancel()

Only the attempt store carries state between flows. While locked, an asyncio
task polls tick(); it is torn down as soon as the flow leaves the locked state
and in aclose().
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from typing import Awaitable, Callable, Optional, Union

from pinguard import messages
from pinguard.errors import (
    CredentialCheckError,
    GuardStateError,
    PinGuardError,
    StoreUnavailableError,
)
from pinguard.metrics import FAILED_ATTEMPTS, INFRA_ERRORS, LOCKOUTS, SESSION_BYPASS, VERIFICATIONS
from pinguard.models import (
    GuardState,
    ReasonCode,
    StepResult,
    VerificationOutcome,
    VerificationRequest,
)
from pinguard.policy import DEFAULT_POLICY, LockoutPolicy
from pinguard.session import SessionGate
from pinguard.store.base import EMPTY_RECORD, AttemptRecord, AttemptStore, mask_identity
from pinguard.telemetry.logging import bind

Clock = Callable[[], int]
PinPredicate = Callable[[str], Union[bool, Awaitable[bool]]]
OnChange = Callable[[StepResult], Optional[Awaitable[None]]]

_infra_log = logging.getLogger("pinguard.infra")


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class GuardController:
    def __init__(
        self,
        identity: str,
        store: AttemptStore,
        verify_pin: PinPredicate,
        request: Optional[VerificationRequest] = None,
        *,
        policy: Optional[LockoutPolicy] = None,
        session_gate: Optional[SessionGate] = None,
        clock: Optional[Clock] = None,
        poll_interval_s: Optional[float] = 1.0,
        on_change: Optional[OnChange] = None,
        log_pii_ok: bool = False,
    ) -> None:
        self.identity = identity
        self._log_identity = mask_identity(identity, log_pii_ok)
        self.request = request or VerificationRequest()
        self._store = store
        self._verify_pin = verify_pin
        self._policy = policy or getattr(store, "policy", None) or DEFAULT_POLICY
        self._gate = session_gate or SessionGate()
        self._clock: Clock = clock or wall_clock_ms
        self._poll_interval_s = poll_interval_s
        self._on_change = on_change

        self._state = GuardState.IDLE
        self._record: AttemptRecord = EMPTY_RECORD
        self._last: Optional[StepResult] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._done = asyncio.Event()
        self.outcome: Optional[VerificationOutcome] = None
        self.error: Optional[PinGuardError] = None

        self.flow_id = uuid.uuid4().hex[:12]
        self._log = bind(
            logging.getLogger("pinguard.controller"),
            identity=self._log_identity,
            flow_id=self.flow_id,
        )

    # ---------------------- introspection ----------------------

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def record(self) -> AttemptRecord:
        return self._record

    @property
    def resolved(self) -> bool:
        return self._state is GuardState.RESOLVED

    @property
    def last_result(self) -> Optional[StepResult]:
        return self._last

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def remaining_ms(self) -> int:
        until = self._record.lockout_until
        if until is None:
            return 0
        return max(0, until - self._clock())

    def view(self) -> messages.PromptView:
        step = self._last or self._snapshot(ReasonCode.PROMPT)
        return messages.render(self.request, step)

    async def wait_resolved(self) -> VerificationOutcome:
        await self._done.wait()
        assert self.outcome is not None
        return self.outcome

    # ---------------------- transitions ----------------------

    async def open(self) -> StepResult:
        if self._state is not GuardState.IDLE:
            raise GuardStateError(f"flow already opened (state={self._state.value})")
        self._set_state(GuardState.CHECKING_SESSION)
        now = self._clock()
        try:
            session = await self._store.load_session(self.identity)
            if self._gate.should_bypass(self.request, session, now):
                SESSION_BYPASS.inc()
                return self._resolve(VerificationOutcome.APPROVED, ReasonCode.SESSION_ACTIVE)
            record = await self._store.load(self.identity)
            if record.is_expired(now):
                record = await self._store.clear_expired_lockout(self.identity, now)
        except StoreUnavailableError as exc:
            self._fail_closed("open", exc)
            raise
        self._record = record
        if record.is_locked(now):
            return self._enter_locked(ReasonCode.PROMPT)
        self._set_state(GuardState.AWAITING_INPUT)
        return self._snapshot(ReasonCode.PROMPT)

    async def submit(self, candidate: str) -> StepResult:
        if self._state is GuardState.LOCKED:
            await self._refresh_lock()
            if self._state is GuardState.LOCKED:
                self._log.info("submission rejected while locked")
                return self._snapshot(ReasonCode.STILL_LOCKED)
        if self._state is not GuardState.AWAITING_INPUT:
            raise GuardStateError(f"cannot submit while {self._state.value}")

        self._set_state(GuardState.VERIFYING)
        try:
            ok = await self._check(candidate)
        except Exception as exc:
            INFRA_ERRORS.labels(operation="verify_pin").inc()
            _infra_log.exception(
                "pin predicate raised",
                extra={"identity": self._log_identity, "flow_id": self.flow_id},
            )
            err = CredentialCheckError("pin predicate raised")
            self.error = err
            self._resolve(VerificationOutcome.DENIED, ReasonCode.CREDENTIAL_CHECK_FAILED)
            raise err from exc

        now = self._clock()
        try:
            if ok:
                await self._store.record_success(self.identity, now)
            else:
                record = await self._store.record_failure(self.identity, now)
        except StoreUnavailableError as exc:
            self._fail_closed("submit", exc)
            raise

        if ok:
            self._record = EMPTY_RECORD
            return self._resolve(VerificationOutcome.APPROVED, ReasonCode.VERIFIED)

        FAILED_ATTEMPTS.inc()
        self._record = record
        if record.lockout_until is not None:
            threshold = self._tier_threshold(record.failed_count)
            LOCKOUTS.labels(tier=str(threshold)).inc()
            self._log.warning(
                "lockout started",
                extra={
                    "failed_count": record.failed_count,
                    "lockout_ms": self._policy.tier(record.failed_count),
                },
            )
            return self._enter_locked(ReasonCode.LOCKED_OUT)
        self._set_state(GuardState.AWAITING_INPUT)
        return self._snapshot(ReasonCode.WRONG_PIN)

    async def tick(self) -> StepResult:
        """Recompute the countdown; clears the lockout once its deadline passes."""
        if self._state is not GuardState.LOCKED:
            return self._last or self._snapshot(ReasonCode.PROMPT)
        return await self._refresh_lock()

    def cancel(self) -> StepResult:
        if self.resolved:
            assert self._last is not None
            return self._last
        return self._resolve(VerificationOutcome.DENIED, ReasonCode.CANCELLED)

    async def aclose(self) -> None:
        """Cancel an unresolved flow and wait for the countdown task to stop."""
        if not self.resolved:
            self.cancel()
        task = self._poll_task
        self._poll_task = None
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def __aenter__(self) -> "GuardController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---------------------- internals ----------------------

    async def _check(self, candidate: str) -> bool:
        result = self._verify_pin(candidate)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def _refresh_lock(self) -> StepResult:
        reason = self._last.reason if self._last is not None else ReasonCode.PROMPT
        now = self._clock()
        if self._record.is_locked(now):
            return self._snapshot(reason)
        try:
            record = await self._store.clear_expired_lockout(self.identity, now)
        except StoreUnavailableError as exc:
            self._fail_closed("clear_expired_lockout", exc)
            raise
        if self._state is not GuardState.LOCKED:
            # another caller (poll vs submit) already handled the expiry
            return self._last or self._snapshot(reason)
        self._record = record
        if record.is_locked(now):
            # persisted deadline moved (another context failed meanwhile)
            return self._snapshot(reason)
        self._stop_poll()
        self._log.info("lockout expired")
        self._set_state(GuardState.AWAITING_INPUT)
        return self._snapshot(ReasonCode.LOCKOUT_EXPIRED)

    def _enter_locked(self, reason: ReasonCode) -> StepResult:
        self._set_state(GuardState.LOCKED)
        step = self._snapshot(reason)
        self._start_poll()
        return step

    def _start_poll(self) -> None:
        if self._poll_interval_s is None or self.polling:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._poll_task = loop.create_task(self._poll_lock())

    def _stop_poll(self) -> None:
        task = self._poll_task
        if task is None or task.done():
            return
        # the poll loop exits by itself on the state change
        if task is asyncio.current_task():
            return
        task.cancel()

    async def _poll_lock(self) -> None:
        assert self._poll_interval_s is not None
        while self._state is GuardState.LOCKED:
            await asyncio.sleep(self._poll_interval_s)
            if self._state is not GuardState.LOCKED:
                break
            try:
                step = await self._refresh_lock()
            except StoreUnavailableError:
                # already resolved fail-closed; the flow owner reads self.error
                step = self._last or self._snapshot(ReasonCode.STORE_UNAVAILABLE)
            await self._notify(step)

    async def _notify(self, step: StepResult) -> None:
        if self._on_change is None:
            return
        res = self._on_change(step)
        if inspect.isawaitable(res):
            await res

    def _fail_closed(self, operation: str, exc: StoreUnavailableError) -> None:
        INFRA_ERRORS.labels(operation=exc.operation or operation).inc()
        _infra_log.error(
            "attempt store unavailable; failing closed",
            extra={
                "identity": self._log_identity,
                "flow_id": self.flow_id,
                "operation": exc.operation or operation,
                "backend": exc.backend,
            },
        )
        self.error = exc
        self._resolve(VerificationOutcome.DENIED, ReasonCode.STORE_UNAVAILABLE)

    def _resolve(self, outcome: VerificationOutcome, reason: ReasonCode) -> StepResult:
        self.outcome = outcome
        self._set_state(GuardState.RESOLVED)
        self._stop_poll()
        VERIFICATIONS.labels(outcome=outcome.value, reason=reason.value).inc()
        self._log.info("flow resolved", extra={"outcome": outcome.value, "reason": reason.value})
        step = self._snapshot(reason)
        self._done.set()
        return step

    def _set_state(self, new: GuardState) -> None:
        if new is self._state:
            return
        self._log.debug(
            "guard transition",
            extra={"state_from": self._state.value, "state_to": new.value},
        )
        self._state = new

    def _tier_threshold(self, failed_count: int) -> int:
        current = 0
        for n, _ in self._policy.as_pairs():
            if failed_count >= n:
                current = n
        return current

    def _snapshot(self, reason: ReasonCode) -> StepResult:
        attempts = None
        lockout_ms = 0
        if self._state is GuardState.AWAITING_INPUT:
            attempts = self._policy.attempts_before_next_tier(self._record.failed_count)
        elif self._state is GuardState.LOCKED:
            lockout_ms = self._policy.tier(self._record.failed_count)
        step = StepResult(
            state=self._state,
            reason=reason,
            record=self._record,
            outcome=self.outcome,
            remaining_ms=self.remaining_ms() if self._state is GuardState.LOCKED else 0,
            attempts_remaining=attempts,
            lockout_ms=lockout_ms,
        )
        self._last = step
        return step
