"""Session event system for broadcasting scheduler state changes.

Provides event types, event data structures, and an event emitter so the
continuation engine can notify UI/logging code without depending on it.

Usage:
    emitter = SessionEventEmitter()
    emitter.subscribe(SessionEventType.TRACK_STARTED, lambda evt: print(evt.data["track_id"]))
    emitter.emit(SessionEvent(SessionEventType.TRACK_STARTED, data={"track_id": "abc"}))
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Any, Optional
import logging
import time


class SessionEventType(Enum):
    """Types of events that can occur during a session."""

    # Session lifecycle
    SESSION_START = auto()     # Active session started
    SESSION_END = auto()       # No eligible track left
    SESSION_RESET = auto()     # Back to preparation mode

    # Track lifecycle
    TRACK_LOADED = auto()      # Next track loaded and left paused
    TRACK_STARTED = auto()     # Track playing
    TRACK_PAUSED = auto()      # Playback paused manually
    TRACK_ENDED = auto()       # Track finished or was skipped
    TRACK_SKIPPED = auto()     # Disabled track passed over during advance

    # Timed pause between tracks
    PAUSE_SCHEDULED = auto()
    PAUSE_ELAPSED = auto()

    # Error events
    ERROR = auto()             # Audio engine failure


@dataclass
class SessionEvent:
    """Represents a session event with optional payload data.

    Attributes:
        event_type: Type of event that occurred
        data: Optional dictionary with event-specific data
        timestamp: Optional timestamp (set by emitter when missing)
    """
    event_type: SessionEventType
    data: Optional[dict[str, Any]] = None
    timestamp: Optional[float] = None

    def __str__(self) -> str:
        if self.data:
            data_str = ", ".join(f"{k}={v}" for k, v in self.data.items())
            return f"SessionEvent({self.event_type.name}, {data_str})"
        return f"SessionEvent({self.event_type.name})"


class SessionEventEmitter:
    """Event bus for session state changes.

    Supports multiple subscribers per event type. A failing subscriber is
    logged and does not prevent the others from running.
    """

    def __init__(self):
        self._subscribers: dict[SessionEventType, list[Callable[[SessionEvent], None]]] = {}
        self.logger = logging.getLogger(__name__)

    def subscribe(
        self,
        event_type: SessionEventType,
        callback: Callable[[SessionEvent], None]
    ) -> None:
        """Subscribe to a specific event type.

        Args:
            event_type: Type of event to listen for
            callback: Function to call when event occurs (receives SessionEvent)
        """
        callbacks = self._subscribers.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)
            self.logger.debug(f"[events] Subscribed to {event_type.name} (total={len(callbacks)})")

    def subscribe_all(self, callback: Callable[[SessionEvent], None]) -> None:
        for event_type in SessionEventType:
            self.subscribe(event_type, callback)

    def unsubscribe(
        self,
        event_type: SessionEventType,
        callback: Callable[[SessionEvent], None]
    ) -> None:
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            self.logger.debug(f"[events] Unsubscribed from {event_type.name} (total={len(callbacks)})")

    def emit(self, event: SessionEvent) -> None:
        """Emit an event to all subscribed callbacks."""
        if event.timestamp is None:
            event.timestamp = time.time()

        self.logger.debug(f"[events] Emitting: {event}")

        for callback in list(self._subscribers.get(event.event_type, [])):
            try:
                callback(event)
            except Exception as e:
                self.logger.error(f"[events] Callback error for {event.event_type.name}: {e}", exc_info=True)

    def clear_all(self) -> None:
        """Remove all event subscribers."""
        self._subscribers.clear()
        self.logger.debug("[events] Cleared all subscribers")
