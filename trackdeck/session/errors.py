"""Exception types raised by the playlist scheduler."""

from __future__ import annotations

from typing import Iterable, Optional


class TrackDeckError(Exception):
    """Base class for scheduler errors."""


class GroupingError(TrackDeckError):
    """Group creation was rejected; the tree is unchanged."""


class NonConsecutiveSelectionError(GroupingError):
    """Selected siblings are not adjacent in their container."""


class MixedContainerError(GroupingError):
    """Selected items live in different containers."""


class CycleViolation(TrackDeckError):
    """A group would end up inside itself."""

    def __init__(self, item_id: str, target_id: str):
        super().__init__(f"Cannot move {item_id} into {target_id}: would create a cycle")
        self.item_id = item_id
        self.target_id = target_id


class LockedItemError(TrackDeckError):
    """Played or currently playing items cannot be edited during a session."""

    def __init__(self, item_ids: Iterable[str]):
        self.item_ids = tuple(item_ids)
        super().__init__(f"Items are locked by the active session: {', '.join(self.item_ids)}")


class CapacityExceeded(TrackDeckError):
    """Target workspace cannot hold the incoming tracks."""

    def __init__(self, workspace_id: str, max_tracks: int, attempted: int):
        super().__init__(
            f"Workspace {workspace_id} is limited to {max_tracks} tracks (attempted {attempted})"
        )
        self.workspace_id = workspace_id
        self.max_tracks = max_tracks
        self.attempted = attempted


class PlaybackError(TrackDeckError):
    """Audio engine failed to load or play a track."""

    def __init__(self, message: str, track_id: Optional[str] = None):
        super().__init__(message)
        self.track_id = track_id
