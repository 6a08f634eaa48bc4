import sys
import os
from typing import Callable, Dict, Tuple

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from session_manager import SessionManager
from timer_registry import TimerKind, TimerRegistry


class ManualTimers(TimerRegistry):
    """Timer registry that never sleeps; tests fire timers explicitly."""

    def __init__(self):
        super().__init__()
        self.pending: Dict[Tuple[str, TimerKind], Tuple[float, Callable[[], None]]] = {}

    def set(self, session_id, kind, delay, callback):
        self.pending[(session_id, kind)] = (delay, callback)

    def cancel(self, session_id, kind):
        return self.pending.pop((session_id, kind), None) is not None

    def cancel_all(self):
        self.pending.clear()

    def is_pending(self, session_id, kind):
        return (session_id, kind) in self.pending

    def delay(self, session_id, kind) -> float:
        return self.pending[(session_id, kind)][0]

    def fire(self, session_id, kind):
        _, callback = self.pending.pop((session_id, kind))
        callback()


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def manual_timers():
    return ManualTimers()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(manual_timers, clock):
    return SessionManager(timers=manual_timers, clock=clock)
