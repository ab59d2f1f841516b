"""
Shared pytest fixtures for sane tests.

Provides a mock AI backend, controllable timers and clock, and a temporary
vault so no test touches the network or waits on real time.
"""

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from sane.config import SaneConfig
from sane.providers.base import hash_embedding
from sane.vault import FileVault


class MockBackend:
    """
    Deterministic mock backend for testing.

    Embeddings come from ``vectors`` when the text is listed there, else from
    the hash fallback. ``enhance`` returns ``response`` and records each call.
    """

    name = "mock"
    native_embeddings = True

    def __init__(self, configured: bool = True, rate_per_1k: float = 0.01):
        self.configured = configured
        self.rate_per_1k = rate_per_1k
        self.vectors: dict[str, list[float]] = {}
        self.response = json.dumps({
            "tags": ["mock-tag"],
            "keywords": ["mock keyword"],
            "links": ["Related Note"],
            "summary": "A mock summary.",
        })
        self.embed_calls: list[str] = []
        self.enhance_calls: list[tuple[str, list[str]]] = []
        self.embed_error: Exception | None = None
        self.enhance_error: Exception | None = None

    def is_configured(self) -> bool:
        return self.configured

    def embed(self, text: str) -> list[float]:
        self.embed_calls.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        if text in self.vectors:
            return list(self.vectors[text])
        return hash_embedding(text)

    def enhance(self, text: str, related_texts: list[str]) -> str:
        self.enhance_calls.append((text, list(related_texts)))
        if self.enhance_error is not None:
            raise self.enhance_error
        return self.response

    def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
        return tokens / 1000 * self.rate_per_1k


class FakeTimer:
    """threading.Timer stand-in that only fires when told to."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.function(*self.args, **self.kwargs)


class FakeTimerFactory:
    """Records every timer the code under test creates."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(interval, function, args=args, kwargs=kwargs)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]


class FakeClock:
    """Callable returning a settable local time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def mock_backend():
    """Create a fresh, configured MockBackend."""
    return MockBackend()


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 15, 30, 0))


@pytest.fixture
def vault(tmp_path: Path) -> FileVault:
    """Empty vault directory."""
    root = tmp_path / "vault"
    root.mkdir()
    return FileVault(root)


@pytest.fixture
def config(tmp_path: Path) -> SaneConfig:
    """Config with a manual trigger and state outside the vault."""
    return SaneConfig(
        state_path=tmp_path / "state",
        provider="local",
        trigger="manual",
    )
