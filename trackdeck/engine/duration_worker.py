"""Background duration probing so adding many tracks stays responsive."""
from __future__ import annotations

import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Deque, Optional, Tuple, TYPE_CHECKING
import logging

from .audio_utils import probe_audio_duration

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from ..session.items import ItemTree

logger = logging.getLogger(__name__)

DurationResult = Tuple["DurationJob", Optional[float], Optional[BaseException]]


@dataclass(frozen=True)
class DurationJob:
    """Represents a single duration probe for a track."""

    track_id: str
    path: str
    submitted_at: float = field(default_factory=time.perf_counter)


class DurationWorker:
    """Runs duration probes on a thread pool; results are applied on the main thread."""

    def __init__(
        self,
        probe: Callable[[str], Optional[float]] = probe_audio_duration,
        *,
        max_workers: int = 1,
        thread_name_prefix: str = "duration-probe",
    ) -> None:
        self._probe = probe
        self._lock = Lock()
        self._pending: dict[Future, DurationJob] = {}
        self._completed: Deque[DurationResult] = deque()
        self._shutdown = False
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=thread_name_prefix,
        )

    def submit(self, job: DurationJob) -> bool:
        """Queue a probe if the worker is active and the track is not already queued."""
        if self._shutdown:
            return False
        with self._lock:
            if any(pending.track_id == job.track_id for pending in self._pending.values()):
                return False
        future = self._executor.submit(self._probe, job.path)
        with self._lock:
            self._pending[future] = job
        future.add_done_callback(self._on_future_done)
        return True

    def request_missing(self, tree: "ItemTree") -> int:
        """Queue probes for every track whose duration is still unknown."""
        queued = 0
        for track in tree.tracks:
            if track.duration is None and self.submit(DurationJob(track.id, track.path)):
                queued += 1
        if queued:
            logger.debug(f"[durations] Queued {queued} probe(s)")
        return queued

    def _on_future_done(self, future: Future) -> None:
        duration: Optional[float] = None
        exc: Optional[BaseException] = None
        if not future.cancelled():
            try:
                duration = future.result()
            except Exception as err:
                exc = err

        with self._lock:
            job = self._pending.pop(future, None)
            if job and not future.cancelled():
                self._completed.append((job, duration, exc))

    def drain_completed(self) -> list[DurationResult]:
        """Return and clear all completed job results."""
        with self._lock:
            return list(self._completed.popleft() for _ in range(len(self._completed)))

    def apply_completed(self, tree: "ItemTree") -> int:
        """Store drained durations in *tree*; returns how many tracks were updated."""
        updated = 0
        for job, duration, exc in self.drain_completed():
            if exc is not None:
                logger.warning(f"[durations] Probe failed for {job.path}: {exc}")
                continue
            if duration is not None and tree.update_track_duration(job.track_id, duration):
                updated += 1
        return updated

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def wait_idle(self, *, timeout: float = 1.0) -> bool:
        """Spin until no probe is in flight or timeout expires."""
        deadline = time.perf_counter() + timeout
        while self.pending_count() and time.perf_counter() < deadline:
            time.sleep(0.005)
        return self.pending_count() == 0

    def cancel_pending(self, *, drop_completed: bool = False) -> None:
        with self._lock:
            for future in list(self._pending.keys()):
                future.cancel()
            self._pending.clear()
            if drop_completed:
                self._completed.clear()

    def shutdown(self, *, wait: bool = False, cancel_futures: bool = True) -> None:
        if self._shutdown:
            return
        self._shutdown = True
        if cancel_futures:
            self.cancel_pending(drop_completed=False)
        self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)
