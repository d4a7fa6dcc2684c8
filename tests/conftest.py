"""
Shared fixtures: a deterministic clock and an in-memory host.
"""

import asyncio
import random
import textwrap
from typing import Optional

import pytest

from retroscript import (
    ScriptEngine, EngineConfig, EngineLimits, HostServices, HeadlessDialogs,
)
from retroscript.host import Clock


class FakeClock(Clock):
    """Clock whose time only moves when a script sleeps or a test advances it."""

    def __init__(self, now_ms: float = 1_700_000_000_000.0):
        self.now_ms = now_ms
        self.seconds = 0.0

    def now(self) -> float:
        return self.now_ms + self.seconds * 1000.0

    def monotonic(self) -> float:
        return self.seconds

    def advance(self, seconds: float) -> None:
        self.seconds += seconds

    async def sleep(self, ms: float) -> None:
        self.seconds += max(0.0, ms) / 1000.0
        await asyncio.sleep(0)


class PendingDialogs(HeadlessDialogs):
    """Dialogs that never answer until the test resolves them."""

    def __init__(self):
        super().__init__()
        self.opened = asyncio.Event()
        self.answer: Optional[asyncio.Future] = None

    async def confirm(self, message: str) -> bool:
        self.messages.append(("confirm", message))
        self.answer = asyncio.get_running_loop().create_future()
        self.opened.set()
        return await self.answer


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def host(clock):
    return HostServices.in_memory(clock=clock, random=random.Random(1234))


@pytest.fixture
def engine(host):
    return ScriptEngine(host)


def make_engine(host, **limits) -> ScriptEngine:
    """Engine with selected limits overridden."""
    return ScriptEngine(host, EngineConfig(limits=EngineLimits(**limits)))


def script(source: str) -> str:
    return textwrap.dedent(source).strip("\n")
