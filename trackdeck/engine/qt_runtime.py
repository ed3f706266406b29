"""Qt integration: QTimer-based scheduler and the player runtime object.

Everything runs on the Qt main thread. The runtime polls the audio backend
(end-of-media and position), applies durations resolved in the background
and re-emits scheduler events as Qt signals for the UI.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Set

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from ..session.document import PlaylistDocument
from ..session.engine import ContinuationEngine
from ..session.events import SessionEvent, SessionEventEmitter, SessionEventType
from ..session.timers import CancelToken
from .duration_worker import DurationWorker

logger = logging.getLogger(__name__)


class QtScheduler:
    """Single-shot QTimers behind the CancelToken interface."""

    def __init__(self, parent: Optional[QObject] = None):
        self._parent = parent
        self._timers: Set[QTimer] = set()

    def call_later(self, delay_s: float, callback: Callable[[], None], label: str = "") -> CancelToken:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)

        def _dispose() -> None:
            timer.stop()
            self._timers.discard(timer)
            timer.deleteLater()

        token = CancelToken(on_cancel=_dispose, label=label)

        def _fire() -> None:
            self._timers.discard(timer)
            timer.deleteLater()
            if token._mark_fired():
                callback()

        timer.timeout.connect(_fire)
        timer.start(max(0, int(round(delay_s * 1000))))
        self._timers.add(timer)
        return token

    def active_count(self) -> int:
        return len(self._timers)


class PlayerRuntime(QObject):
    """Wires a playlist document, an audio backend and the engine into the Qt loop."""

    trackChanged = pyqtSignal(object)     # current track id or None
    statusChanged = pyqtSignal(str)       # PlaybackStatus value
    errorOccurred = pyqtSignal(str)
    sessionEnded = pyqtSignal()
    timelineChanged = pyqtSignal(object)  # TimelineProjection

    def __init__(
        self,
        document: PlaylistDocument,
        audio=None,
        *,
        poll_interval_ms: int = 200,
        duration_worker: Optional[DurationWorker] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        if audio is None:
            from .audio import PygameAudioBackend
            audio = PygameAudioBackend()
        self.document = document
        self.audio = audio
        self.scheduler = QtScheduler(self)
        self.events = SessionEventEmitter()
        self.engine = ContinuationEngine(
            document.tree, document.state, document.policy, audio, self.scheduler, self.events
        )
        self.projector = document.build_projector()
        self.durations = duration_worker or DurationWorker()

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(poll_interval_ms)
        self._poll_timer.timeout.connect(self._tick)

        self.events.subscribe_all(self._on_event)
        document.tree.add_change_listener(self._on_tree_changed)

    def start(self) -> None:
        self.durations.request_missing(self.document.tree)
        self._poll_timer.start()
        logger.info(f"[runtime] Started for '{self.document.name}'")

    def stop(self) -> None:
        self._poll_timer.stop()
        self.durations.shutdown()
        self.audio.stop()
        logger.info("[runtime] Stopped")

    def project(self):
        return self.projector.project(current_position=self.engine.position)

    def _tick(self) -> None:
        poll = getattr(self.audio, "poll", None)
        if poll is not None:
            poll()
        self.durations.apply_completed(self.document.tree)

    def _on_tree_changed(self) -> None:
        self.durations.request_missing(self.document.tree)
        self.timelineChanged.emit(self.project())

    def _on_event(self, event: SessionEvent) -> None:
        if event.event_type is SessionEventType.ERROR:
            self.errorOccurred.emit((event.data or {}).get("message", ""))
        elif event.event_type is SessionEventType.SESSION_END:
            self.sessionEnded.emit()
        self.trackChanged.emit(self.document.state.current_track_id)
        self.statusChanged.emit(self.engine.status.value)
        self.timelineChanged.emit(self.project())
