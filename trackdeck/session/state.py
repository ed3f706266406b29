"""
Session state - mode, played/disabled marks and the current track pointer.

State is keyed by item id and stays independent from the tree structure.
It listens to the tree's removal notifications so ids of deleted items are
dropped immediately.
"""

from __future__ import annotations
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Any
import logging

from .items import ItemTree

logger = logging.getLogger(__name__)


class SessionMode(str, Enum):
    """Two-phase session lifecycle."""
    PREPARATION = "preparation"  # Assembling / previewing the playlist
    ACTIVE = "active"            # Play-through in progress


class SessionState:
    """Played/disabled bookkeeping and locking rules for one playlist."""

    def __init__(self, tree: ItemTree):
        self.tree = tree
        self.mode = SessionMode.PREPARATION
        self.played_track_ids: Set[str] = set()
        self.disabled_track_ids: Set[str] = set()
        self.disabled_group_ids: Set[str] = set()
        self.current_track_id: Optional[str] = None
        self.error: Optional[str] = None

        # group id -> tracks that this group's disable added
        self._group_cascade: Dict[str, Set[str]] = {}
        self._current_removed_callbacks: List[Callable[[str], None]] = []

        tree.add_removal_listener(self.forget)

    # ===== Lifecycle =====

    @property
    def is_active(self) -> bool:
        return self.mode is SessionMode.ACTIVE

    def start(self) -> None:
        self.mode = SessionMode.ACTIVE
        self.error = None

    def reset(self) -> None:
        """Back to preparation with every mark and the current pointer cleared."""
        self.mode = SessionMode.PREPARATION
        self.played_track_ids.clear()
        self.disabled_track_ids.clear()
        self.disabled_group_ids.clear()
        self._group_cascade.clear()
        self.current_track_id = None
        self.error = None

    def set_current(self, track_id: Optional[str]) -> None:
        if track_id is not None and self.tree.get_track(track_id) is None:
            raise KeyError(f"Unknown track: {track_id}")
        self.current_track_id = track_id

    def mark_played(self, track_id: str) -> None:
        self.played_track_ids.add(track_id)

    def is_track_played(self, track_id: str) -> bool:
        return track_id in self.played_track_ids

    def is_group_played(self, group_id: str) -> bool:
        tracks = self.tree.get_all_tracks_in_order([group_id])
        return bool(tracks) and all(t.id in self.played_track_ids for t in tracks)

    def add_current_removed_listener(self, callback: Callable[[str], None]) -> None:
        """Register *callback* to run when the current track is deleted from the tree."""
        if callback not in self._current_removed_callbacks:
            self._current_removed_callbacks.append(callback)

    def forget(self, item_ids: Iterable[str]) -> None:
        """Drop every mark held for *item_ids*."""
        ids = set(item_ids)
        self.played_track_ids -= ids
        self.disabled_track_ids -= ids
        self.disabled_group_ids -= ids
        for group_id in ids & set(self._group_cascade):
            del self._group_cascade[group_id]
        for cascaded in self._group_cascade.values():
            cascaded -= ids
        if self.current_track_id in ids:
            removed = self.current_track_id
            self.current_track_id = None
            logger.info(f"[session] Current track {removed} was removed from the playlist")
            for callback in list(self._current_removed_callbacks):
                try:
                    callback(removed)
                except Exception as e:
                    logger.error(f"[session] Current-removed callback failed: {e}", exc_info=True)

    # ===== Disabling =====

    def is_track_disabled(self, track_id: str) -> bool:
        return track_id in self.disabled_track_ids

    def is_group_disabled(self, group_id: str) -> bool:
        return group_id in self.disabled_group_ids

    def set_track_disabled(self, track_id: str, disabled: bool) -> bool:
        """Idempotently disable or enable one track; refused for the current track."""
        if track_id == self.current_track_id or self.tree.get_track(track_id) is None:
            return False
        if disabled:
            self.disabled_track_ids.add(track_id)
        else:
            self.disabled_track_ids.discard(track_id)
            for cascaded in self._group_cascade.values():
                cascaded.discard(track_id)
        return True

    def toggle_track_disabled(self, track_id: str) -> bool:
        return self.set_track_disabled(track_id, track_id not in self.disabled_track_ids)

    def set_group_disabled(self, group_id: str, disabled: bool) -> bool:
        """Disable a group and cascade onto its tracks, or reverse that cascade exactly."""
        if not self.tree.is_group(group_id):
            return False
        if disabled:
            if group_id in self.disabled_group_ids:
                return True
            self.disabled_group_ids.add(group_id)
            added = {
                t.id
                for t in self.tree.get_all_tracks_in_order([group_id])
                if t.id != self.current_track_id and t.id not in self.disabled_track_ids
            }
            self.disabled_track_ids |= added
            self._group_cascade[group_id] = added
            logger.debug(f"[session] Disabled group {group_id} (+{len(added)} track(s))")
            return True

        if group_id not in self.disabled_group_ids:
            return True
        self.disabled_group_ids.discard(group_id)
        cascaded = self._group_cascade.pop(group_id, set())
        still_covered: Set[str] = set()
        for other in self._group_cascade.values():
            still_covered |= other
        self.disabled_track_ids -= cascaded - still_covered
        logger.debug(f"[session] Enabled group {group_id} (-{len(cascaded - still_covered)} track(s))")
        return True

    def toggle_group_disabled(self, group_id: str) -> bool:
        return self.set_group_disabled(group_id, group_id not in self.disabled_group_ids)

    def is_track_or_group_disabled(self, item_id: str) -> bool:
        """True if the item or any enclosing group is disabled."""
        if item_id in self.disabled_track_ids or item_id in self.disabled_group_ids:
            return True
        return any(g in self.disabled_group_ids for g in self.tree.iter_ancestors(item_id))

    def is_track_eligible(self, track_id: str) -> bool:
        """Neither played nor disabled (directly or through a group)."""
        return track_id not in self.played_track_ids and not self.is_track_or_group_disabled(track_id)

    # ===== Locking =====

    def is_locked(self, item_id: str) -> bool:
        """Played, current, or containing such a track while a session is active."""
        if self.mode is SessionMode.PREPARATION:
            return False
        if item_id == self.current_track_id or item_id in self.played_track_ids:
            return True
        if self.tree.is_group(item_id):
            return any(
                t.id == self.current_track_id or t.id in self.played_track_ids
                for t in self.tree.get_all_tracks_in_order([item_id])
            )
        return False

    def locked_ids(self, item_ids: Iterable[str]) -> List[str]:
        return [item_id for item_id in item_ids if self.is_locked(item_id)]

    # ===== Serialization =====

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "played_track_ids": sorted(self.played_track_ids),
            "disabled_track_ids": sorted(self.disabled_track_ids),
            "disabled_group_ids": sorted(self.disabled_group_ids),
            "group_cascade": {k: sorted(v) for k, v in self._group_cascade.items()},
            "current_track_id": self.current_track_id,
            "error": self.error,
        }

    def load_dict(self, data: Dict[str, Any]) -> None:
        """Restore marks from plain data, ignoring ids that are not in the tree."""
        known = lambda ids: {i for i in ids if i in self.tree}  # noqa: E731
        self.mode = SessionMode(data.get("mode", SessionMode.PREPARATION.value))
        self.played_track_ids = known(data.get("played_track_ids", []))
        self.disabled_track_ids = known(data.get("disabled_track_ids", []))
        self.disabled_group_ids = known(data.get("disabled_group_ids", []))
        self._group_cascade = {
            k: known(v) for k, v in data.get("group_cascade", {}).items() if k in self.disabled_group_ids
        }
        current = data.get("current_track_id")
        self.current_track_id = current if current and self.tree.get_track(current) else None
        self.error = data.get("error")
