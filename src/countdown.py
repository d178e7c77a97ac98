"""
Countdown for a timed attempt.

Remaining time is recomputed from the attempt's absolute started_at on every tick,
so a reload (or a suspended tab) never drifts. The timeout callback fires at most once
even when both the "expired on load" check and the live tick reach zero.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from engine import TICK_SECONDS
from src.models import elapsed_seconds, utcnow

logger = logging.getLogger(__name__)


def remaining_seconds(started_at: datetime, limit_seconds: int, now: datetime) -> int:
    """max(0, limit - floor(now - started_at))"""
    return max(0, limit_seconds - elapsed_seconds(started_at, now))


def format_clock(seconds: Optional[int]) -> str:
    if seconds is None:
        return "--:--"
    m, s = divmod(max(0, int(seconds)), 60)
    return f"{m:02d}:{s:02d}"


class RepeatingTimer:
    """Calls fn every interval seconds on a daemon thread until cancel()."""

    def __init__(self, interval: float, fn: Callable[[], None], name: str = "repeating-timer"):
        self.interval = interval
        self.fn = fn
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "RepeatingTimer":
        self._thread.start()
        return self

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.fn()
            except Exception as e:
                logger.error(f"Timer {self._thread.name} callback failed: {e}")

    def cancel(self) -> None:
        self._stop.set()
        # cancel() may be called from fn itself (e.g. a timeout that submits)
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self.interval + 1)

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()


class CountdownController:
    """Derives remaining time from started_at and fires on_timeout exactly once."""

    def __init__(
        self,
        started_at: datetime,
        limit_seconds: int,
        on_timeout: Callable[[], None],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.started_at = started_at
        self.limit_seconds = limit_seconds
        self.on_timeout = on_timeout
        self.clock = clock
        self.remaining: Optional[int] = None
        self._lock = threading.Lock()
        self._fired = False
        self._cancelled = False
        self._timer: Optional[RepeatingTimer] = None

    @property
    def fired(self) -> bool:
        return self._fired

    def tick(self, now: Optional[datetime] = None) -> int:
        """Recompute remaining time; fire the timeout when it reaches zero."""
        now = now or self.clock()
        self.remaining = remaining_seconds(self.started_at, self.limit_seconds, now)
        if self.remaining <= 0:
            self._fire()
        return self.remaining

    def check_on_load(self, now: Optional[datetime] = None) -> bool:
        """True when the limit already elapsed before the page was opened (timeout fired)."""
        return self.tick(now) == 0

    def _fire(self) -> None:
        with self._lock:
            if self._fired or self._cancelled:
                return
            self._fired = True
        logger.info(f"Countdown expired ({self.limit_seconds}s limit, started {self.started_at.isoformat()})")
        self.on_timeout()

    def start(self, interval: float = TICK_SECONDS) -> None:
        if self._timer is None and not self._cancelled:
            self._timer = RepeatingTimer(interval, self.tick, name="countdown").start()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
