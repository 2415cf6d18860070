"""
Single entry point for sensitive-action callers.

    client = GuardClient("user-42", store, verify_pin, prompt)
    if await client.request_verification(title="Delete card") is VerificationOutcome.APPROVED:
        await delete_card(...)

Wrong PINs and lockouts never raise; they resolve the flow. Infrastructure
failures always resolve DENIED first, then either raise (fail_mode="raise") or
are returned as DENIED (fail_mode="deny"), after being reported on the
``pinguard.infra`` logger and metric.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import weakref
from typing import Optional, Protocol, runtime_checkable

from pinguard import messages
from pinguard.controller import Clock, GuardController, OnChange, PinPredicate
from pinguard.errors import CredentialCheckError, StoreUnavailableError
from pinguard.messages import PromptView
from pinguard.metrics import FLOW_SECONDS
from pinguard.models import (
    DEFAULT_DESCRIPTION,
    DEFAULT_TITLE,
    StepResult,
    VerificationOutcome,
    VerificationRequest,
)
from pinguard.session import SessionGate
from pinguard.settings import GuardSettings, get_settings
from pinguard.store.base import AttemptStore, mask_identity
from pinguard.telemetry.logging import bind


@runtime_checkable
class Prompt(Protocol):
    """The renderable PIN prompt driven by the controller.

    ``next_input`` returns the entered PIN, or ``None`` when the user dismisses
    the prompt. Prompts may also define ``async render(view)``; it is called
    whenever the lockout countdown changes between inputs.
    """

    async def next_input(self, view: PromptView) -> Optional[str]:
        ...


# One open flow per identity per process; later callers queue on the lock.
_FLOW_LOCKS: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _flow_lock(identity: str) -> asyncio.Lock:
    lock = _FLOW_LOCKS.get(identity)
    if lock is None:
        lock = asyncio.Lock()
        _FLOW_LOCKS[identity] = lock
    return lock


class GuardClient:
    def __init__(
        self,
        identity: str,
        store: AttemptStore,
        verify_pin: PinPredicate,
        prompt: Prompt,
        *,
        settings: Optional[GuardSettings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.identity = identity
        self.store = store
        self.settings = settings or get_settings()
        self._verify_pin = verify_pin
        self._prompt = prompt
        self._clock = clock
        self._gate = SessionGate(self.settings.session_duration_ms)
        self.last_result: Optional[StepResult] = None
        self._log = bind(
            logging.getLogger("pinguard.client"),
            identity=mask_identity(identity, self.settings.log_pii_ok),
        )

    async def request_verification(
        self,
        request: Optional[VerificationRequest] = None,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        bypass_session: bool = False,
    ) -> VerificationOutcome:
        req = request or VerificationRequest(
            title=title or DEFAULT_TITLE,
            description=description or DEFAULT_DESCRIPTION,
            bypass_session=bypass_session,
        )
        lock = _flow_lock(self.identity)
        if lock.locked():
            self._log.info("verification queued behind open flow")

        async with lock:
            started = time.perf_counter()
            controller = self._new_controller(req)
            try:
                outcome = await self._drive(controller)
            except (StoreUnavailableError, CredentialCheckError):
                if self.settings.fail_mode != "deny":
                    raise
                outcome = VerificationOutcome.DENIED
            finally:
                await controller.aclose()
                self.last_result = controller.last_result
                final = controller.outcome or VerificationOutcome.DENIED
                FLOW_SECONDS.labels(outcome=final.value).observe(time.perf_counter() - started)
        return outcome

    async def reset(self) -> bool:
        """Operator reset: drop every persisted key for this identity."""
        purged = await self.store.purge(self.identity)
        self._log.warning("attempt state purged", extra={"purged": purged})
        return purged

    def _new_controller(self, request: VerificationRequest) -> GuardController:
        return GuardController(
            self.identity,
            self.store,
            self._verify_pin,
            request,
            policy=getattr(self.store, "policy", None) or self.settings.policy(),
            session_gate=self._gate,
            clock=self._clock,
            poll_interval_s=self.settings.poll_interval_s,
            on_change=self._renderer(request),
            log_pii_ok=self.settings.log_pii_ok,
        )

    def _renderer(self, request: VerificationRequest) -> Optional[OnChange]:
        render = getattr(self._prompt, "render", None)
        if render is None:
            return None

        async def _on_change(step: StepResult) -> None:
            res = render(messages.render(request, step))
            if inspect.isawaitable(res):
                await res

        return _on_change

    async def _drive(self, controller: GuardController) -> VerificationOutcome:
        await controller.open()
        while not controller.resolved:
            input_task = asyncio.ensure_future(self._prompt.next_input(controller.view()))
            done_task = asyncio.ensure_future(controller.wait_resolved())
            try:
                await asyncio.wait({input_task, done_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                pending = [t for t in (input_task, done_task) if not t.done()]
                for t in pending:
                    t.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
            if controller.resolved:
                # resolved from the countdown task (store failure)
                break
            candidate = input_task.result()
            if candidate is None:
                controller.cancel()
                break
            await controller.submit(candidate)
        if controller.error is not None:
            raise controller.error
        assert controller.outcome is not None
        return controller.outcome
