# tests/conftest.py
from __future__ import annotations

import asyncio
import inspect
import sys
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pinguard.messages import PromptView  # noqa: E402
from pinguard.settings import GuardSettings, reset_settings  # noqa: E402
from pinguard.store.memory_store import MemoryAttemptStore  # noqa: E402

CORRECT_PIN = "4321"
T0 = 1_700_000_000_000  # epoch ms


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start_ms: int = T0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> int:
        self.now_ms += ms
        return self.now_ms

    def advance_s(self, seconds: float) -> int:
        return self.advance(int(seconds * 1000))


class ScriptedPrompt:
    """Prompt that replays queued inputs; ``None`` dismisses the prompt."""

    def __init__(self, inputs: Iterable[Optional[str]] = ()) -> None:
        self.inputs: List[Optional[str]] = list(inputs)
        self.views: List[PromptView] = []
        self.rendered: List[PromptView] = []

    async def next_input(self, view: PromptView) -> Optional[str]:
        self.views.append(view)
        if not self.inputs:
            return None
        return self.inputs.pop(0)

    async def render(self, view: PromptView) -> None:
        self.rendered.append(view)


def verify_pin(candidate: str) -> bool:
    return candidate == CORRECT_PIN


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    for name in ("PIN_GUARD_STORE_BACKEND", "PIN_GUARD_REDIS_URL", "PIN_GUARD_TIERS"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> MemoryAttemptStore:
    return MemoryAttemptStore()


@pytest.fixture()
def prompt_factory():
    return ScriptedPrompt


@pytest.fixture()
def pin_check():
    return verify_pin


@pytest.fixture()
def settings() -> GuardSettings:
    # poll disabled by a long interval; tests drive tick() or the clock directly
    return GuardSettings(poll_interval_s=60.0)


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None
