# trackdeck/engine/audio.py
"""pygame-backed audio engine for the continuation engine.

Streams one track at a time through ``pygame.mixer.music``. pygame has no
end-of-media callback usable without its own event loop, so :meth:`poll`
must be called periodically (the Qt runtime drives it with a QTimer); it
reports position and detects when playback finished.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pygame

from ..logging_utils import BurstSampler
from ..session.errors import PlaybackError
from ..session.models import Track
from .audio_utils import ensure_mixer, normalize_volume, probe_audio_duration

logger = logging.getLogger(__name__)


class PygameAudioBackend:
    """Single-stream music player implementing the scheduler's audio contract."""

    def __init__(self, volume: float = 1.0):
        self._listener = None
        self._track: Optional[Track] = None
        self._playing = False
        self._paused = False
        self._offset = 0.0
        self._volume = normalize_volume(volume)
        self._poll_sampler = BurstSampler(interval_s=5.0)
        self.init_ok = ensure_mixer()
        if self.init_ok:
            logger.info("pygame mixer initialized")

    def set_listener(self, listener) -> None:
        self._listener = listener

    @property
    def track(self) -> Optional[Track]:
        return self._track

    @property
    def is_playing(self) -> bool:
        return self._playing and not self._paused

    # -------- loading --------------------------------------------------------
    def load(self, track: Track) -> None:
        if not self.init_ok:
            raise PlaybackError("Audio output is not available", track.id)
        if not Path(track.path).exists():
            raise PlaybackError(f"File not found: {track.path}", track.id)
        try:
            pygame.mixer.music.load(track.path)
        except pygame.error as e:
            raise PlaybackError(f"Cannot decode {track.path}: {e}", track.id) from e
        pygame.mixer.music.set_volume(self._volume)
        self._track = track
        self._playing = False
        self._paused = False
        self._offset = 0.0
        logger.debug("loaded %s", track.path)

        if track.duration is None and self._listener is not None:
            duration = probe_audio_duration(track.path)
            if duration is not None:
                self._listener.on_duration_known(duration)

    # -------- playback -------------------------------------------------------
    def play(self) -> None:
        if self._track is None:
            raise PlaybackError("Nothing loaded")
        try:
            if self._paused:
                pygame.mixer.music.unpause()
            else:
                pygame.mixer.music.play(start=self._offset)
        except pygame.error as e:
            raise PlaybackError(f"Playback failed: {e}", self._track.id) from e
        self._playing = True
        self._paused = False

    def pause(self) -> None:
        if self._playing and not self._paused:
            pygame.mixer.music.pause()
            self._paused = True

    def stop(self) -> None:
        if pygame.mixer.get_init():
            pygame.mixer.music.stop()
            pygame.mixer.music.unload()
        self._track = None
        self._playing = False
        self._paused = False
        self._offset = 0.0

    def seek(self, seconds: float) -> None:
        self._offset = max(0.0, float(seconds))
        if self._paused:
            # unpause() would resume at the old position; restart from the offset instead
            self._paused = False
            self._playing = False
        elif self._playing:
            pygame.mixer.music.play(start=self._offset)

    def set_volume(self, volume: float) -> None:
        self._volume = normalize_volume(volume)
        if pygame.mixer.get_init():
            pygame.mixer.music.set_volume(self._volume)

    def position(self) -> float:
        if not self._playing:
            return self._offset
        return self._offset + max(0, pygame.mixer.music.get_pos()) / 1000.0

    # -------- polling --------------------------------------------------------
    def poll(self) -> None:
        """Report position and detect end of media; call from the main thread."""
        if not self._playing or self._paused or self._listener is None:
            return
        if pygame.mixer.music.get_busy():
            position = self.position()
            self._listener.on_position_changed(position)
            polled = self._poll_sampler.record()
            if polled is not None:
                logger.debug(f"[audio.trace] {polled} position updates, now at {position:.1f}s")
            return
        self._playing = False
        logger.debug("end of media: %s", self._track.path if self._track else None)
        self._listener.on_ended()
