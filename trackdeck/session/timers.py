"""Cancelable one-shot timers.

The continuation engine never sleeps; it asks a scheduler to call it back
later and keeps the returned CancelToken. Skips and resets cancel the token,
and the callback re-checks the world before acting.

``ManualScheduler`` advances simulated time explicitly and is used by tests
and headless runs. The Qt application uses ``engine.qt_runtime.QtScheduler``.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class CancelToken:
    """Handle for a scheduled callback."""

    __slots__ = ("_cancelled", "_fired", "_on_cancel", "label")

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None, label: str = ""):
        self._cancelled = False
        self._fired = False
        self._on_cancel = on_cancel
        self.label = label

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._fired

    def cancel(self) -> bool:
        """Cancel if still pending; returns True when this call cancelled it."""
        if not self.active:
            return False
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
        return True

    def _mark_fired(self) -> bool:
        if not self.active:
            return False
        self._fired = True
        return True


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None], label: str = "") -> CancelToken:
        ...


class ManualScheduler:
    """Deterministic scheduler driven by :meth:`advance`."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)
        self._queue: List[Tuple[float, int, CancelToken, Callable[[], None]]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay_s: float, callback: Callable[[], None], label: str = "") -> CancelToken:
        token = CancelToken(label=label)
        heapq.heappush(self._queue, (self.now + max(0.0, float(delay_s)), next(self._seq), token, callback))
        return token

    def pending_count(self) -> int:
        return sum(1 for _, _, token, _ in self._queue if token.active)

    def advance(self, seconds: float) -> int:
        """Move time forward, running due callbacks in order; returns how many ran."""
        target = self.now + max(0.0, float(seconds))
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, token, callback = heapq.heappop(self._queue)
            self.now = due
            if token._mark_fired():
                callback()
                ran += 1
        self.now = target
        return ran
