"""Pytest configuration and lightweight asyncio support.

Async tests are marked ``@pytest.mark.asyncio`` but run without
``pytest-asyncio``: this shim accepts the ``--asyncio-mode`` flag so pytest
startup does not abort, and executes coroutine test functions on a fresh
event loop.

Shared fakes for the network-facing tests live here too.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import List

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register a no-op ``--asyncio-mode`` option for compatibility."""

    parser.addoption(
        "--asyncio-mode",
        action="store",
        default="auto",
        help="Compat shim for async tests without pytest-asyncio",
    )


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute coroutine test functions on an event loop.

    Returning ``True`` tells pytest the call was handled, preventing the
    default (which would error on an un-awaited coroutine).
    """

    test_obj = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_obj):
        return None

    bound_args = {
        name: value
        for name, value in pyfuncitem.funcargs.items()
        if name in inspect.signature(test_obj).parameters
    }

    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_obj(**bound_args))
    finally:
        loop.close()
        asyncio.set_event_loop(None)

    return True


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> FakeSleep:
    """Make the executor's default sleep instant; returns the recorder."""
    recorder = FakeSleep()
    monkeypatch.setattr("core.reliability.backoff_sleep", recorder)
    return recorder

