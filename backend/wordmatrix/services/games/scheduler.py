import logging
import threading
from typing import Dict, Optional, Tuple

from wordmatrix import socketio

logger = logging.getLogger(__name__)


class RoomTimers:
    """Cancellable delayed transitions, at most one pending per room.

    Scheduling a new timer for a room supersedes the previous one; a
    superseded or cancelled timer wakes up, sees its token is stale and does
    nothing.
    """

    def __init__(self, app, spawn=None, sleep=None):
        self.app = app
        self._spawn = spawn or socketio.start_background_task
        self._sleep = sleep or socketio.sleep
        self._pending: Dict[str, Tuple[str, int, object]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        cfg = self.app.config
        return not (cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'))

    def pending(self, room_code: str) -> Optional[Tuple[str, int]]:
        with self._lock:
            entry = self._pending.get(room_code)
        return (entry[0], entry[1]) if entry else None

    def schedule(self, room_code: str, stage: str, round_number: int, delay: float, fn, *args):
        if not self.enabled:
            logger.debug('[timer-skip] room=%s stage=%s round=%s scheduler disabled', room_code, stage, round_number)
            return None
        token = object()
        with self._lock:
            self._pending[room_code] = (stage, round_number, token)
        logger.info('[timer-set] room=%s stage=%s round=%s delay=%.1fs', room_code, stage, round_number, delay)
        self._spawn(self._worker, room_code, stage, round_number, token, delay, fn, args)
        return token

    def cancel(self, room_code: str) -> bool:
        with self._lock:
            entry = self._pending.pop(room_code, None)
        if entry:
            logger.info('[timer-cancel] room=%s stage=%s round=%s', room_code, entry[0], entry[1])
        return entry is not None

    def _claim(self, room_code, token) -> bool:
        with self._lock:
            entry = self._pending.get(room_code)
            if entry is None or entry[2] is not token:
                return False
            del self._pending[room_code]
            return True

    def _worker(self, room_code, stage, round_number, token, delay, fn, args):
        hb = int(self.app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
        if hb > 0:
            slept = 0.0
            while slept < delay:
                step = min(hb, delay - slept)
                self._sleep(step)
                slept += step
                logger.info('[timer-heartbeat] room=%s stage=%s round=%s remaining=%.1fs',
                            room_code, stage, round_number, max(0.0, delay - slept))
        else:
            self._sleep(delay)

        if not self._claim(room_code, token):
            logger.info('[timer-abort] room=%s stage=%s round=%s superseded or cancelled', room_code, stage, round_number)
            return

        logger.info('[timer-fire] room=%s stage=%s round=%s', room_code, stage, round_number)
        with self.app.app_context():
            try:
                fn(*args)
            except Exception:
                logger.exception('[timer-error] room=%s stage=%s round=%s', room_code, stage, round_number)
