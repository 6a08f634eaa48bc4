import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Tuple

logger = logging.getLogger(__name__)


class TimerKind(str, Enum):
    QUESTION_COUNTDOWN = "QUESTION_COUNTDOWN"
    QUESTION_DURATION = "QUESTION_DURATION"


class TimerRegistry:
    """Pending delayed callbacks keyed by (session_id, kind).

    At most one timer of each kind is pending per session. Everything runs on
    the event loop, so set/cancel never race with a firing callback.
    """

    def __init__(self):
        self._timers: Dict[Tuple[str, TimerKind], asyncio.Task] = {}

    def set(self, session_id: str, kind: TimerKind, delay: float, callback: Callable[[], None]):
        self.cancel(session_id, kind)
        key = (session_id, kind)
        self._timers[key] = asyncio.get_running_loop().create_task(self._run(key, delay, callback))
        logger.debug("Armed %s timer for session %s (%.2fs)", kind.value, session_id, delay)

    async def _run(self, key: Tuple[str, TimerKind], delay: float, callback: Callable[[], None]):
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        try:
            callback()
        except Exception:
            logger.exception("Timer callback %s failed for session %s", key[1].value, key[0])

    def cancel(self, session_id: str, kind: TimerKind) -> bool:
        task = self._timers.pop((session_id, kind), None)
        if task is None:
            return False
        task.cancel()
        logger.debug("Cancelled %s timer for session %s", kind.value, session_id)
        return True

    def cancel_session(self, session_id: str):
        for kind in TimerKind:
            self.cancel(session_id, kind)

    def cancel_all(self):
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()

    def is_pending(self, session_id: str, kind: TimerKind) -> bool:
        return (session_id, kind) in self._timers
