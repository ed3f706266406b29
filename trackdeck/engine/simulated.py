"""Audio backend that plays nothing and only tracks simulated time.

Used for dry runs (``trackdeck simulate``) and tests: playing a track
schedules its end-of-media on the given scheduler after the remaining
duration, so a ManualScheduler can fast-forward a whole session.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set, Tuple

from ..session.errors import PlaybackError
from ..session.models import Track
from ..session.timers import CancelToken, ManualScheduler
from .audio_utils import normalize_volume

logger = logging.getLogger(__name__)


class SimulatedAudioBackend:
    """Deterministic stand-in for a real audio device.

    Args:
        scheduler: Clock and timer source (usually a ManualScheduler)
        default_duration: Length used for tracks whose duration is unknown
        failing_paths: Paths whose ``load`` raises PlaybackError
    """

    def __init__(
        self,
        scheduler: ManualScheduler,
        default_duration: float = 180.0,
        failing_paths: Optional[Set[str]] = None,
    ):
        self.scheduler = scheduler
        self.default_duration = default_duration
        self.failing_paths = set(failing_paths or ())
        self.volume = 1.0
        self.track: Optional[Track] = None
        self.playing = False
        self.calls: List[Tuple[str, Optional[str]]] = []
        self._listener = None
        self._position = 0.0
        self._started_at = 0.0
        self._end_token: Optional[CancelToken] = None

    def set_listener(self, listener) -> None:
        self._listener = listener

    def _record(self, name: str) -> None:
        self.calls.append((name, self.track.id if self.track else None))

    def _length(self) -> float:
        if self.track is None:
            return 0.0
        return self.track.duration if self.track.duration is not None else self.default_duration

    def _cancel_end(self) -> None:
        if self._end_token is not None:
            self._end_token.cancel()
            self._end_token = None

    def load(self, track: Track) -> None:
        self._cancel_end()
        if track.path in self.failing_paths:
            self.track = None
            raise PlaybackError(f"Cannot decode {track.path}", track.id)
        self.track = track
        self.playing = False
        self._position = 0.0
        self._record("load")

    def play(self) -> None:
        if self.track is None:
            raise PlaybackError("Nothing loaded")
        if self.playing:
            return
        self.playing = True
        self._started_at = self.scheduler.time()
        self._record("play")
        remaining = max(0.0, self._length() - self._position)
        self._end_token = self.scheduler.call_later(remaining, self._finish, label="end-of-media")

    def pause(self) -> None:
        if not self.playing:
            return
        self._position = self.position()
        self.playing = False
        self._cancel_end()
        self._record("pause")

    def stop(self) -> None:
        self._cancel_end()
        self._record("stop")
        self.track = None
        self.playing = False
        self._position = 0.0

    def seek(self, seconds: float) -> None:
        was_playing = self.playing
        if was_playing:
            self.pause()
        self._position = max(0.0, float(seconds))
        if was_playing:
            self.play()

    def set_volume(self, volume: float) -> None:
        self.volume = normalize_volume(volume)

    def position(self) -> float:
        if self.playing:
            return self._position + (self.scheduler.time() - self._started_at)
        return self._position

    def fail(self, message: str) -> None:
        """Simulate a runtime decode error reported by the device."""
        self._cancel_end()
        self.playing = False
        if self._listener is not None:
            self._listener.on_error(message)

    def _finish(self) -> None:
        self._end_token = None
        self.playing = False
        self._position = self._length()
        logger.debug("simulated end of media: %s", self.track.id if self.track else None)
        if self._listener is not None:
            self._listener.on_ended()
