"""Independent playlists (workspaces) and transactional moves between them."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence
import logging

from .errors import CapacityExceeded, LockedItemError
from .items import ItemTree
from .models import Item, tracks_in, new_item_id
from .reorder import normalize_selection
from .state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_MAX_TRACKS = 150


@dataclass
class Workspace:
    """
    Named playlist with an optional track limit.

    Attributes:
        name: Display name
        tree: Items of this workspace
        max_tracks: Capacity in tracks, None for unlimited
        id: Unique workspace id
    """
    name: str
    tree: ItemTree = field(default_factory=ItemTree)
    max_tracks: Optional[int] = DEFAULT_MAX_TRACKS
    id: str = field(default_factory=new_item_id)

    def remaining_capacity(self) -> Optional[int]:
        if self.max_tracks is None:
            return None
        return max(0, self.max_tracks - self.tree.track_count)

    def add_items(self, items: Sequence[Item], index: Optional[int] = None) -> List[str]:
        """Append (or insert at *index*) items as one change.

        Raises:
            CapacityExceeded: If the tracks would not fit; nothing is added
            ValueError: On id collisions; nothing is added
        """
        incoming = len(tracks_in(list(items)))
        if self.max_tracks is not None and self.tree.track_count + incoming > self.max_tracks:
            raise CapacityExceeded(self.id, self.max_tracks, self.tree.track_count + incoming)
        added: List[str] = []
        with self.tree.transaction():
            for offset, item in enumerate(items):
                self.tree.add_item(item, None if index is None else index + offset)
                added.append(item.id)
        return added


def move_between_workspaces(
    item_ids: Iterable[str],
    source: Workspace,
    target: Workspace,
    index: Optional[int] = None,
    source_state: Optional[SessionState] = None,
) -> List[str]:
    """Move items from *source* into *target* root as one atomic operation.

    The source removal is rolled back if adding to the target fails, so
    tracks are never lost or duplicated.

    Args:
        item_ids: Items to move (nested selections are collapsed)
        source: Workspace the items come from
        target: Destination workspace
        index: Insert position in the target root, append when None
        source_state: Session state of the source, used for locking checks

    Returns:
        Moved ids

    Raises:
        LockedItemError: An item is locked by the source session
        CapacityExceeded: Target is full (source restored)
    """
    ids = normalize_selection(source.tree, item_ids)
    if not ids:
        return []
    if source_state is not None:
        locked = source_state.locked_ids(ids)
        if locked:
            raise LockedItemError(locked)

    snapshots = [source.tree.find_item_by_id(item_id) for item_id in ids]
    try:
        with source.tree.transaction():
            for item_id in ids:
                source.tree.remove_item(item_id)
            target.add_items(snapshots, index)
    except CapacityExceeded as e:
        logger.warning(f"[workspaces] Move to '{target.name}' rolled back: {e}")
        raise
    logger.info(f"[workspaces] Moved {len(ids)} item(s) from '{source.name}' to '{target.name}'")
    return ids
