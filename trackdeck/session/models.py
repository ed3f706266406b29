"""
Playlist Data Models - tracks, groups and their transition settings.

A playlist is an ordered tree:
- Track: a single audio file with an optional (lazily resolved) duration
- Group: a named, ordered container of tracks and nested groups
- TransitionSettings: what happens after a track finishes

Tracks and groups are immutable values. The live tree (ItemTree) stores
them by id and hands out detached snapshots of groups.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple, Union
import uuid


class ActionAfterTrack(str, Enum):
    """What the player does once a track finishes."""
    CONTINUE = "continue"                        # Start the next track immediately
    PAUSE_THEN_CONTINUE = "pauseThenContinue"    # Load next, wait, then play
    PAUSE_INDEFINITE = "pauseIndefinite"         # Load next and wait for the user


def new_item_id() -> str:
    """Return a fresh globally unique item id."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class TransitionSettings:
    """
    Per-item override of the after-track behavior.

    Attributes:
        action_after_track: Override action, or None to inherit
        pause_duration_seconds: Override pause length, or None to inherit
    """
    action_after_track: Optional[ActionAfterTrack] = None
    pause_duration_seconds: Optional[float] = None

    def __post_init__(self):
        if isinstance(self.action_after_track, str) and not isinstance(self.action_after_track, ActionAfterTrack):
            object.__setattr__(self, "action_after_track", ActionAfterTrack(self.action_after_track))

    def is_empty(self) -> bool:
        return self.action_after_track is None and self.pause_duration_seconds is None

    def validate(self) -> tuple[bool, str]:
        """
        Validate override values.

        Returns:
            (is_valid, error_message)
        """
        if self.pause_duration_seconds is not None and self.pause_duration_seconds < 0:
            return False, f"pause_duration_seconds must be non-negative, got {self.pause_duration_seconds}"
        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "action_after_track": self.action_after_track.value if self.action_after_track else None,
            "pause_duration_seconds": self.pause_duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional[TransitionSettings]:
        """Deserialize from dict; returns None for missing or empty data."""
        if not data:
            return None
        settings = cls(
            action_after_track=data.get("action_after_track"),
            pause_duration_seconds=data.get("pause_duration_seconds"),
        )
        return None if settings.is_empty() else settings


@dataclass(frozen=True)
class Track:
    """
    Single playable audio file.

    Attributes:
        id: Unique id across the whole tree
        path: Filesystem path of the audio file
        name: Display name
        duration: Length in seconds, None until resolved
        settings: Optional transition override
    """
    id: str
    path: str
    name: str = ""
    duration: Optional[float] = None
    settings: Optional[TransitionSettings] = None

    @classmethod
    def create(cls, path: str, name: Optional[str] = None, duration: Optional[float] = None) -> Track:
        """Build a track with a fresh id, defaulting the name to the file stem."""
        if name is None:
            stem = str(path).replace("\\", "/").rsplit("/", 1)[-1]
            name = stem.rsplit(".", 1)[0] if "." in stem else stem
        return cls(id=new_item_id(), path=str(path), name=name, duration=duration)

    def validate(self) -> tuple[bool, str]:
        if not self.id:
            return False, "Track id cannot be empty"
        if not self.path:
            return False, f"Track {self.id} has no path"
        if self.duration is not None and self.duration < 0:
            return False, f"Track {self.id} duration must be non-negative, got {self.duration}"
        if self.settings is not None:
            return self.settings.validate()
        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "path": self.path,
            "name": self.name,
            "duration": self.duration,
        }
        if self.settings is not None:
            data["settings"] = self.settings.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Track:
        return cls(
            id=data["id"],
            path=data["path"],
            name=data.get("name", ""),
            duration=data.get("duration"),
            settings=TransitionSettings.from_dict(data.get("settings")),
        )


@dataclass(frozen=True)
class Group:
    """
    Named container of tracks and nested groups.

    Instances handed out by ItemTree are snapshots; editing them does not
    affect the tree.

    Attributes:
        id: Unique id across the whole tree
        name: Display name
        items: Ordered children
        settings: Optional transition override applied to contained tracks
    """
    id: str
    name: str
    items: Tuple["Item", ...] = field(default_factory=tuple)
    settings: Optional[TransitionSettings] = None

    def __post_init__(self):
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))

    def validate(self) -> tuple[bool, str]:
        if not self.id:
            return False, "Group id cannot be empty"
        if self.settings is not None:
            ok, msg = self.settings.validate()
            if not ok:
                return ok, msg
        for child in self.items:
            ok, msg = child.validate()
            if not ok:
                return ok, msg
        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "items": [child.to_dict() for child in self.items],
        }
        if self.settings is not None:
            data["settings"] = self.settings.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Group:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            items=tuple(item_from_dict(child) for child in data.get("items", [])),
            settings=TransitionSettings.from_dict(data.get("settings")),
        )


Item = Union[Track, Group]


def is_group(item: Any) -> bool:
    return isinstance(item, Group)


def is_track(item: Any) -> bool:
    return isinstance(item, Track)


def item_from_dict(data: Dict[str, Any]) -> Item:
    """Deserialize a track or group; groups are recognized by their ``items`` key."""
    if "items" in data:
        return Group.from_dict(data)
    return Track.from_dict(data)


def with_settings(item: Item, settings: Optional[TransitionSettings]) -> Item:
    """Return a copy of *item* carrying *settings* (None clears the override)."""
    if settings is not None and settings.is_empty():
        settings = None
    return replace(item, settings=settings)


@dataclass(frozen=True)
class DisplayItem:
    """
    Row of the flattened, indented playlist view.

    Attributes:
        item: Track or group snapshot
        level: Nesting depth (0 for root items)
        sequential_index: Running track number, -1 for group headers
    """
    item: Item
    level: int
    sequential_index: int


def tracks_in(items: List[Item]) -> List[Track]:
    """Pre-order list of the tracks contained in *items*."""
    result: List[Track] = []
    for item in items:
        if isinstance(item, Group):
            result.extend(tracks_in(list(item.items)))
        else:
            result.append(item)
    return result
