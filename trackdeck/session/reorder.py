"""
Drag-and-drop editing of the playlist tree.

A drag carries a set of item ids. The selection is normalized first: ids
nested inside another selected group are dropped so content never moves
twice, and the rest is ordered as it appears in the playlist. A drop
targets either an item (top half inserts before it, bottom half inserts
after it, or into it at the front when it is a group) or an empty
container (append).

During an active session played and current items are locked: dragging
them, dropping next to them or deleting them raises LockedItemError before
anything changes. Items that would end up inside themselves are filtered
out of the batch and logged instead of failing the whole drop.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple
import logging

from .errors import CycleViolation, LockedItemError
from .items import ItemTree
from .models import Item
from .state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_GROUP_INSERT_INDEX = 0


class DropPosition(str, Enum):
    TOP = "top"        # Insert before the target
    BOTTOM = "bottom"  # Insert after the target, or into it for groups


@dataclass(frozen=True)
class DropTarget:
    """
    Where a drag ends.

    Attributes:
        item_id: Item under the cursor, or None for an empty-container drop
        position: Which half of the target row
        container_id: Container to append to when ``item_id`` is None (None means root)
    """
    item_id: Optional[str] = None
    position: DropPosition = DropPosition.BOTTOM
    container_id: Optional[str] = None


def normalize_selection(tree: ItemTree, item_ids: Iterable[str]) -> List[str]:
    """Known ids without those nested in another selected item, in playlist order."""
    selected = {item_id for item_id in item_ids if item_id in tree}
    top_level = [
        item_id for item_id in selected
        if not any(ancestor in selected for ancestor in tree.iter_ancestors(item_id))
    ]
    order = {item_id: i for i, item_id in enumerate(tree.display_order())}
    return sorted(top_level, key=order.__getitem__)


class PlaylistEditor:
    """Structural edits guarded by the session's locking rules."""

    def __init__(self, tree: ItemTree, state: SessionState):
        self.tree = tree
        self.state = state

    def _require_unlocked(self, item_ids: Sequence[str]) -> None:
        locked = self.state.locked_ids(item_ids)
        if locked:
            logger.warning(f"[items] Rejected edit of locked item(s): {', '.join(locked)}")
            raise LockedItemError(locked)

    def _resolve_destination(self, target: DropTarget, moving: Sequence[str]) -> Tuple[Optional[str], Optional[str]]:
        """Container id and the sibling to insert before (None appends)."""
        if target.item_id is None:
            if target.container_id is not None:
                if not self.tree.is_group(target.container_id):
                    raise KeyError(f"Unknown group: {target.container_id}")
                self._require_unlocked([target.container_id])
            return target.container_id, None

        if target.item_id not in self.tree:
            raise KeyError(f"Unknown drop target: {target.item_id}")
        self._require_unlocked([target.item_id])

        if self.tree.is_group(target.item_id) and target.position is DropPosition.BOTTOM:
            children = [c for c in self.tree.get_children_ids(target.item_id) if c not in moving]
            anchor = children[DEFAULT_GROUP_INSERT_INDEX] if len(children) > DEFAULT_GROUP_INSERT_INDEX else None
            return target.item_id, anchor

        container = self.tree.get_parent_id(target.item_id)
        if target.position is DropPosition.TOP:
            return container, target.item_id
        siblings = self.tree.get_children_ids(container)
        after = siblings[siblings.index(target.item_id) + 1:]
        anchor = next((s for s in after if s not in moving), None)
        return container, anchor

    def drop_items(self, item_ids: Iterable[str], target: DropTarget) -> List[str]:
        """Move dragged items to *target*.

        Returns:
            Ids that were actually moved, in their new order

        Raises:
            LockedItemError: A dragged item or the target is locked
            KeyError: The target does not exist
        """
        ids = normalize_selection(self.tree, item_ids)
        if not ids:
            return []
        self._require_unlocked(ids)
        if target.item_id is not None and target.item_id in ids:
            logger.info(f"[items] Drop target {target.item_id} is part of the drag; skipped")
            ids = [item_id for item_id in ids if item_id != target.item_id]
            if not ids:
                return []

        container, anchor = self._resolve_destination(target, ids)

        valid: List[str] = []
        for item_id in ids:
            if container is not None and self.tree.is_descendant_or_self(container, item_id):
                logger.info(f"[items] {CycleViolation(item_id, container)}; skipped")
                continue
            valid.append(item_id)
        if not valid:
            return []

        self.tree.move_items(valid, container, anchor)
        return valid

    def insert_items(self, items: Sequence[Item], target: Optional[DropTarget] = None) -> List[str]:
        """Insert new items (e.g. files dropped from the browser) at *target*."""
        container, anchor = self._resolve_destination(target or DropTarget(), [])
        index = None
        if anchor is not None:
            index = self.tree.get_children_ids(container).index(anchor)
        inserted: List[str] = []
        with self.tree.transaction():
            for offset, item in enumerate(items):
                self.tree.add_item(item, None if index is None else index + offset, group_id=container)
                inserted.append(item.id)
        return inserted

    def remove_items(self, item_ids: Iterable[str]) -> int:
        ids = normalize_selection(self.tree, item_ids)
        self._require_unlocked(ids)
        return self.tree.remove_items(ids)

    def remove_selected(self) -> int:
        removed = self.remove_items(self.tree.selected_ids)
        self.tree.deselect_all()
        return removed

    def move_item(self, from_index: int, to_index: int) -> bool:
        return self._move_within(None, from_index, to_index)

    def move_item_in_group(self, group_id: str, from_index: int, to_index: int) -> bool:
        return self._move_within(group_id, from_index, to_index)

    def _move_within(self, container_id: Optional[str], from_index: int, to_index: int) -> bool:
        siblings = self.tree.get_children_ids(container_id)
        if not (0 <= from_index < len(siblings)) or not (0 <= to_index < len(siblings)):
            return False
        self._require_unlocked([siblings[from_index], siblings[to_index]])
        if container_id is None:
            return self.tree.move_item(from_index, to_index)
        return self.tree.move_item_in_group(container_id, from_index, to_index)

    def create_group(self, item_ids: Iterable[str], name: Optional[str] = None) -> str:
        ids = list(item_ids)
        self._require_unlocked(ids)
        return self.tree.create_group(ids, name)

    def ungroup_group(self, group_id: str) -> bool:
        self._require_unlocked([group_id])
        return self.tree.ungroup_group(group_id)
