"""
Playback continuation engine.

State machine that decides what happens when the active track ends or is
skipped, driving an external audio backend:

    IDLE ──start_session──▶ PLAYING ──on_ended──▶ ENDED ──advance──▶ PLAYING / LOADED / IDLE
                              ▲                                          │
                              └──────── pause timer / play() ────────────┘

Advancing marks the finished track played, resolves its effective
transition settings, scans forward for the next eligible track (marking
disabled tracks passed over as played) and then continues, loads paused,
or loads paused with a cancelable resume timer.

Audio failures are recorded on the session and halt advancing until the
user intervenes (skip, play, or reset).
"""

from __future__ import annotations
from enum import Enum
from typing import Optional, Protocol
import logging

from .errors import PlaybackError
from .events import SessionEvent, SessionEventEmitter, SessionEventType
from .items import ItemTree
from .models import ActionAfterTrack, Track
from .policy import PolicyResolver
from .state import SessionState
from .timers import CancelToken, Scheduler

logger = logging.getLogger(__name__)


class PlaybackStatus(str, Enum):
    IDLE = "idle"        # No current track (or halted after an error)
    LOADED = "loaded"    # Current track loaded, audio paused
    PLAYING = "playing"
    ENDED = "ended"      # End of media reported, not yet advanced


class AudioListener(Protocol):
    def on_duration_known(self, seconds: float) -> None: ...
    def on_position_changed(self, seconds: float) -> None: ...
    def on_ended(self) -> None: ...
    def on_error(self, message: str) -> None: ...


class AudioBackend(Protocol):
    """Audio engine contract. ``load`` and ``play`` raise PlaybackError on failure."""

    def load(self, track: Track) -> None: ...
    def play(self) -> None: ...
    def pause(self) -> None: ...
    def stop(self) -> None: ...
    def seek(self, seconds: float) -> None: ...
    def set_volume(self, volume: float) -> None: ...
    def set_listener(self, listener: Optional[AudioListener]) -> None: ...


class ContinuationEngine:
    """Drives playback through the playlist according to transition policies.

    Args:
        tree: Playlist tree
        state: Session state bound to the same tree
        policy: Resolver for effective transition settings
        audio: Audio backend
        scheduler: Provides the cancelable pause timer
        events: Optional emitter; a private one is created when omitted
    """

    def __init__(
        self,
        tree: ItemTree,
        state: SessionState,
        policy: PolicyResolver,
        audio: AudioBackend,
        scheduler: Scheduler,
        events: Optional[SessionEventEmitter] = None,
    ):
        self.tree = tree
        self.state = state
        self.policy = policy
        self.audio = audio
        self.scheduler = scheduler
        self.events = events or SessionEventEmitter()

        self.status = PlaybackStatus.IDLE
        self.position = 0.0
        self._advancing = False
        self._pause_token: Optional[CancelToken] = None

        audio.set_listener(self)
        state.add_current_removed_listener(self._on_current_removed)

    # ===== Queries =====

    @property
    def current_track(self) -> Optional[Track]:
        if self.state.current_track_id is None:
            return None
        return self.tree.get_track(self.state.current_track_id)

    @property
    def pause_pending(self) -> bool:
        return self._pause_token is not None and self._pause_token.active

    def _emit(self, event_type: SessionEventType, **data) -> None:
        self.events.emit(SessionEvent(event_type, data=data or None))

    # ===== Triggers =====

    def start_session(self) -> bool:
        """Enter active mode and play the first eligible track.

        Returns:
            True if playback started, False when already active or nothing is eligible
        """
        if self.state.is_active:
            logger.debug("[session] start ignored: session already active")
            return False
        first = next((t for t in self.tree.tracks if self.state.is_track_eligible(t.id)), None)
        if first is None:
            logger.info("[session] start ignored: no eligible track")
            return False
        self.state.start()
        logger.info(f"[session] Session started with '{first.name}'")
        self._emit(SessionEventType.SESSION_START, track_id=first.id)
        self._load(first, autoplay=True)
        return True

    def on_track_ended(self) -> bool:
        """End-of-media from the audio backend."""
        if self.status is not PlaybackStatus.PLAYING:
            logger.debug(f"[session] end-of-media ignored in status {self.status.value}")
            return False
        self.status = PlaybackStatus.ENDED
        if not self.state.is_active:
            return False
        return self._advance(skip=False)

    def skip_next(self) -> bool:
        """Move to the next eligible track immediately, ignoring pause policies."""
        if not self.state.is_active:
            return False
        self._cancel_pause()
        return self._advance(skip=True)

    def reset_session(self) -> None:
        """Stop playback and return to preparation with all marks cleared."""
        self._cancel_pause()
        self._stop_audio()
        self.state.reset()
        self.status = PlaybackStatus.IDLE
        self.position = 0.0
        logger.info("[session] Session reset")
        self._emit(SessionEventType.SESSION_RESET)

    def play(self) -> bool:
        """Resume the loaded track (manual play, also clears a pending pause timer)."""
        if self.current_track is None or self.status is PlaybackStatus.PLAYING:
            return False
        self._cancel_pause()
        self.state.error = None
        return self._play_current()

    def pause(self) -> bool:
        """Pause playback; a pending resume timer is cancelled too."""
        self._cancel_pause()
        if self.status is not PlaybackStatus.PLAYING:
            return False
        self.audio.pause()
        self.status = PlaybackStatus.LOADED
        self._emit(SessionEventType.TRACK_PAUSED, track_id=self.state.current_track_id)
        return True

    def seek(self, seconds: float) -> None:
        if self.current_track is not None:
            self.audio.seek(max(0.0, float(seconds)))
            self.position = max(0.0, float(seconds))

    def set_volume(self, volume: float) -> None:
        self.audio.set_volume(volume)

    # ===== Audio listener =====

    def on_ended(self) -> None:
        self.on_track_ended()

    def on_duration_known(self, seconds: float) -> None:
        if self.state.current_track_id is not None:
            self.tree.update_track_duration(self.state.current_track_id, seconds)

    def on_position_changed(self, seconds: float) -> None:
        self.position = float(seconds)

    def on_error(self, message: str) -> None:
        self._fail(message, self.state.current_track_id)

    # ===== Internals =====

    def _advance(self, skip: bool) -> bool:
        if self._advancing:
            logger.debug("[session] advance already in flight; trigger dropped")
            return False
        self._advancing = True
        try:
            current_id = self.state.current_track_id
            settings = None
            if current_id is not None:
                self.state.mark_played(current_id)
                settings = self.policy.get_effective_settings(current_id)
                self._emit(SessionEventType.TRACK_ENDED, track_id=current_id, skipped=skip)

            next_track = self._find_next(current_id)
            if next_track is None:
                self._finish()
                return True

            action = ActionAfterTrack.CONTINUE if (skip or settings is None) else settings.action_after_track
            if action is ActionAfterTrack.CONTINUE:
                self._load(next_track, autoplay=True)
            elif action is ActionAfterTrack.PAUSE_INDEFINITE:
                self._load(next_track, autoplay=False)
            elif self._load(next_track, autoplay=False):
                self._schedule_resume(next_track.id, settings.pause_duration_seconds)
            return True
        finally:
            self._advancing = False

    def _find_next(self, current_id: Optional[str]) -> Optional[Track]:
        tracks = self.tree.tracks
        start = 0
        if current_id is not None:
            position = self.tree.track_position(current_id)
            start = position + 1 if position >= 0 else 0
        for track in tracks[start:]:
            if track.id in self.state.played_track_ids:
                continue
            if self.state.is_track_or_group_disabled(track.id):
                self.state.mark_played(track.id)
                self._emit(SessionEventType.TRACK_SKIPPED, track_id=track.id)
                continue
            return track
        return None

    def _load(self, track: Track, autoplay: bool) -> bool:
        self._cancel_pause()
        self.state.set_current(track.id)
        self.position = 0.0
        try:
            self.audio.load(track)
        except PlaybackError as e:
            self._fail(str(e), track.id)
            return False
        self.status = PlaybackStatus.LOADED
        logger.debug(f"[session] Loaded '{track.name}' (autoplay={autoplay})")
        if not autoplay:
            self._emit(SessionEventType.TRACK_LOADED, track_id=track.id)
            return True
        return self._play_current()

    def _play_current(self) -> bool:
        track_id = self.state.current_track_id
        try:
            self.audio.play()
        except PlaybackError as e:
            self._fail(str(e), track_id)
            return False
        self.status = PlaybackStatus.PLAYING
        self.state.error = None
        self._emit(SessionEventType.TRACK_STARTED, track_id=track_id)
        return True

    def _schedule_resume(self, track_id: str, seconds: float) -> None:
        def _resume() -> None:
            if (
                self.state.is_active
                and self.state.current_track_id == track_id
                and self.status is PlaybackStatus.LOADED
            ):
                logger.debug(f"[session] Pause elapsed; resuming {track_id}")
                self._emit(SessionEventType.PAUSE_ELAPSED, track_id=track_id)
                self._play_current()
            else:
                logger.debug(f"[session] Stale pause timer for {track_id} ignored")

        self._pause_token = self.scheduler.call_later(seconds, _resume, label=f"pause:{track_id}")
        logger.info(f"[session] Pausing {seconds:.1f}s before next track")
        self._emit(SessionEventType.PAUSE_SCHEDULED, track_id=track_id, seconds=seconds)

    def _cancel_pause(self) -> None:
        if self._pause_token is not None:
            if self._pause_token.cancel():
                logger.debug("[session] Pending pause timer cancelled")
            self._pause_token = None

    def _finish(self) -> None:
        self._cancel_pause()
        self._stop_audio()
        self.state.current_track_id = None
        self.status = PlaybackStatus.IDLE
        self.position = 0.0
        logger.info("[session] Reached end of playlist")
        self._emit(SessionEventType.SESSION_END)

    def _fail(self, message: str, track_id: Optional[str]) -> None:
        self._cancel_pause()
        self.state.error = message
        self.status = PlaybackStatus.IDLE
        logger.error(f"[session] Playback error on {track_id}: {message}")
        self._emit(SessionEventType.ERROR, track_id=track_id, message=message)

    def _stop_audio(self) -> None:
        try:
            self.audio.stop()
        except PlaybackError as e:
            logger.warning(f"[session] Audio stop failed: {e}")

    def _on_current_removed(self, track_id: str) -> None:
        self._cancel_pause()
        self._stop_audio()
        self.status = PlaybackStatus.IDLE
        self.position = 0.0
