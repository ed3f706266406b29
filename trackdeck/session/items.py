"""
Hierarchical item model - the playlist tree.

Storage is an arena: every track and group lives in a flat ``id -> node``
table, nodes carry a parent pointer, and group nodes hold the ordered list
of their children's ids. The root container is an ordered id list. This
keeps lookups O(1), ancestor walks O(depth) and avoids rebuilding the whole
tree on every edit.

Every structural mutation re-derives the flat, playback-ordered track list
(``tracks``) consumed by the continuation engine and the timeline projector,
then notifies change listeners. Removals additionally notify removal
listeners with the ids that left the tree so session state never holds
stale ids.

Usage:
    tree = ItemTree()
    a = Track.create("/music/a.mp3")
    b = Track.create("/music/b.mp3")
    tree.add_item(a)
    tree.add_item(b)
    group_id = tree.create_group([a.id, b.id], name="Warmup")
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Iterator, List, Optional, Set, Union, Dict, Any
import logging

from .errors import (
    CycleViolation,
    GroupingError,
    MixedContainerError,
    NonConsecutiveSelectionError,
)
from .models import (
    DisplayItem,
    Group,
    Item,
    Track,
    TransitionSettings,
    item_from_dict,
    new_item_id,
    with_settings,
)

logger = logging.getLogger(__name__)


@dataclass
class _Node:
    """Arena slot. Group items are stored with an empty ``items`` tuple."""
    item: Item
    parent: Optional[str]
    children: Optional[List[str]] = None

    @property
    def is_group(self) -> bool:
        return self.children is not None

    def copy(self) -> _Node:
        return _Node(self.item, self.parent, list(self.children) if self.children is not None else None)


ChangeListener = Callable[[], None]
RemovalListener = Callable[[Set[str]], None]


class ItemTree:
    """Ordered tree of tracks and groups with id-based mutation primitives."""

    def __init__(self, items: Optional[Iterable[Item]] = None):
        self._nodes: Dict[str, _Node] = {}
        self._root: List[str] = []
        self._selection: Dict[str, None] = {}
        self._tracks: List[Track] = []
        self._track_index: Dict[str, int] = {}

        self._change_listeners: List[ChangeListener] = []
        self._removal_listeners: List[RemovalListener] = []
        self._batch_depth = 0
        self._pending_change = False
        self._pending_removed: Set[str] = set()

        for item in items or ():
            self._check_new_ids(item)
            self._root.append(self._insert_subtree(item, None))
        self._rebuild()

    # ===== Listeners =====

    def add_change_listener(self, callback: ChangeListener) -> None:
        if callback not in self._change_listeners:
            self._change_listeners.append(callback)

    def remove_change_listener(self, callback: ChangeListener) -> None:
        if callback in self._change_listeners:
            self._change_listeners.remove(callback)

    def add_removal_listener(self, callback: RemovalListener) -> None:
        """Register *callback* to receive the ids of items that left the tree."""
        if callback not in self._removal_listeners:
            self._removal_listeners.append(callback)

    def remove_removal_listener(self, callback: RemovalListener) -> None:
        if callback in self._removal_listeners:
            self._removal_listeners.remove(callback)

    def _mutated(self, removed: Optional[Set[str]] = None) -> None:
        self._rebuild()
        if removed:
            for item_id in removed:
                self._selection.pop(item_id, None)
            self._pending_removed |= removed
        self._pending_change = True
        if self._batch_depth == 0:
            self._flush_notifications()

    def _flush_notifications(self) -> None:
        removed, self._pending_removed = self._pending_removed, set()
        changed, self._pending_change = self._pending_change, False
        if removed:
            for callback in list(self._removal_listeners):
                try:
                    callback(set(removed))
                except Exception as e:
                    logger.error(f"[items] Removal listener failed: {e}", exc_info=True)
        if changed:
            for callback in list(self._change_listeners):
                try:
                    callback()
                except Exception as e:
                    logger.error(f"[items] Change listener failed: {e}", exc_info=True)

    @contextmanager
    def transaction(self) -> Iterator[ItemTree]:
        """Group several mutations into one atomic step.

        Notifications are deferred until the outermost block exits. If the
        block raises, the tree (and selection) is restored to the state it
        had on entry, pending notifications from the block are discarded and
        the exception propagates.
        """
        saved = self._capture()
        self._batch_depth += 1
        try:
            yield self
        except BaseException:
            self._restore(saved)
            self._batch_depth -= 1
            logger.debug("[items] Transaction rolled back")
            raise
        self._batch_depth -= 1
        if self._batch_depth == 0:
            self._flush_notifications()

    def _capture(self) -> tuple:
        return (
            {item_id: node.copy() for item_id, node in self._nodes.items()},
            list(self._root),
            dict(self._selection),
            self._pending_change,
            set(self._pending_removed),
        )

    def _restore(self, saved: tuple) -> None:
        nodes, root, selection, pending_change, pending_removed = saved
        self._nodes = nodes
        self._root = root
        self._selection = selection
        self._pending_change = pending_change
        self._pending_removed = pending_removed
        self._rebuild()

    # ===== Internal helpers =====

    def _rebuild(self) -> None:
        self._tracks = self._collect_tracks(self._root)
        self._track_index = {track.id: i for i, track in enumerate(self._tracks)}

    def _collect_tracks(self, ids: Iterable[str]) -> List[Track]:
        result: List[Track] = []
        stack = list(reversed(list(ids)))
        while stack:
            node = self._nodes[stack.pop()]
            if node.is_group:
                stack.extend(reversed(node.children))
            else:
                result.append(node.item)
        return result

    def _container(self, container_id: Optional[str]) -> List[str]:
        if container_id is None:
            return self._root
        node = self._nodes.get(container_id)
        if node is None or not node.is_group:
            raise KeyError(f"Unknown group: {container_id}")
        return node.children

    def _check_new_ids(self, item: Item) -> None:
        seen: Set[str] = set()
        stack: List[Item] = [item]
        while stack:
            current = stack.pop()
            if current.id in self._nodes or current.id in seen:
                raise ValueError(f"Duplicate item id: {current.id}")
            seen.add(current.id)
            if isinstance(current, Group):
                stack.extend(current.items)

    def _insert_subtree(self, item: Item, parent_id: Optional[str]) -> str:
        if isinstance(item, Group):
            node = _Node(replace(item, items=()), parent_id, [])
            self._nodes[item.id] = node
            for child in item.items:
                node.children.append(self._insert_subtree(child, item.id))
        else:
            self._nodes[item.id] = _Node(item, parent_id)
        return item.id

    def _snapshot(self, item_id: str) -> Item:
        node = self._nodes[item_id]
        if node.is_group:
            return replace(node.item, items=tuple(self._snapshot(child) for child in node.children))
        return node.item

    def _subtree_ids(self, item_id: str) -> List[str]:
        ids: List[str] = []
        stack = [item_id]
        while stack:
            current = stack.pop()
            ids.append(current)
            node = self._nodes[current]
            if node.is_group:
                stack.extend(node.children)
        return ids

    def _detach(self, item_id: str) -> Optional[str]:
        """Unlink *item_id* from its container; returns the former parent id."""
        node = self._nodes[item_id]
        self._container(node.parent).remove(item_id)
        parent = node.parent
        node.parent = None
        return parent

    def _attach(self, item_id: str, container_id: Optional[str], index: Optional[int]) -> None:
        siblings = self._container(container_id)
        if index is None or index >= len(siblings):
            siblings.append(item_id)
        else:
            siblings.insert(max(0, index), item_id)
        self._nodes[item_id].parent = container_id

    def _delete_subtree(self, item_id: str) -> Set[str]:
        removed = set(self._subtree_ids(item_id))
        for rid in removed:
            del self._nodes[rid]
        return removed

    def _prune_empty(self, group_id: Optional[str]) -> Set[str]:
        """Remove *group_id* and its ancestors while they are empty groups."""
        removed: Set[str] = set()
        current = group_id
        while current is not None:
            node = self._nodes.get(current)
            if node is None or not node.is_group or node.children:
                break
            parent = self._detach(current)
            del self._nodes[current]
            removed.add(current)
            logger.debug(f"[items] Pruned empty group {current}")
            current = parent
        return removed

    def _is_same_or_ancestor(self, candidate_id: str, item_id: Optional[str]) -> bool:
        """True if *candidate_id* is *item_id* or one of its ancestors."""
        current = item_id
        while current is not None:
            if current == candidate_id:
                return True
            current = self._nodes[current].parent
        return False

    # ===== Queries =====

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._nodes

    def __len__(self) -> int:
        return len(self._root)

    @property
    def items(self) -> List[Item]:
        """Snapshot of the root sequence."""
        return [self._snapshot(item_id) for item_id in self._root]

    @property
    def tracks(self) -> List[Track]:
        """All tracks in playback order."""
        return list(self._tracks)

    @property
    def track_count(self) -> int:
        return len(self._tracks)

    def track_position(self, track_id: str) -> int:
        """Playback-order position of *track_id*, or -1 when it is not a track."""
        return self._track_index.get(track_id, -1)

    def find_item_by_id(self, item_id: str) -> Optional[Item]:
        if item_id not in self._nodes:
            return None
        return self._snapshot(item_id)

    def get_track(self, track_id: str) -> Optional[Track]:
        node = self._nodes.get(track_id)
        if node is None or node.is_group:
            return None
        return node.item

    def get_item_settings(self, item_id: str) -> Optional[TransitionSettings]:
        node = self._nodes.get(item_id)
        return node.item.settings if node else None

    def is_group(self, item_id: str) -> bool:
        node = self._nodes.get(item_id)
        return node is not None and node.is_group

    def find_item_index(self, item_id: str) -> int:
        """Index of *item_id* within its own container, or -1."""
        node = self._nodes.get(item_id)
        if node is None:
            return -1
        return self._container(node.parent).index(item_id)

    def get_parent_id(self, item_id: str) -> Optional[str]:
        node = self._nodes.get(item_id)
        return node.parent if node else None

    def get_children_ids(self, container_id: Optional[str] = None) -> List[str]:
        return list(self._container(container_id))

    def get_item_path(self, item_id: str) -> List[str]:
        """Ancestor ids from the root down, ending with *item_id* itself."""
        if item_id not in self._nodes:
            return []
        path: List[str] = []
        current: Optional[str] = item_id
        while current is not None:
            path.append(current)
            current = self._nodes[current].parent
        path.reverse()
        return path

    def is_descendant_or_self(self, item_id: str, ancestor_id: str) -> bool:
        """True if *item_id* is *ancestor_id* or sits anywhere inside it."""
        if item_id not in self._nodes or ancestor_id not in self._nodes:
            return False
        return self._is_same_or_ancestor(ancestor_id, item_id)

    def display_order(self) -> List[str]:
        """Ids of every track and group in depth-first display order."""
        order: List[str] = []
        stack = list(reversed(self._root))
        while stack:
            item_id = stack.pop()
            order.append(item_id)
            node = self._nodes[item_id]
            if node.is_group:
                stack.extend(reversed(node.children))
        return order

    def iter_ancestors(self, item_id: str) -> Iterator[str]:
        """Yield enclosing group ids from the nearest outward."""
        node = self._nodes.get(item_id)
        current = node.parent if node else None
        while current is not None:
            yield current
            current = self._nodes[current].parent

    def get_all_tracks_in_order(self, roots: Optional[Iterable[Union[str, Item]]] = None) -> List[Track]:
        """Pre-order list of tracks for the whole tree or for the given subtrees."""
        if roots is None:
            return list(self._tracks)
        ids = []
        for root in roots:
            root_id = root if isinstance(root, str) else root.id
            if root_id in self._nodes:
                ids.append(root_id)
        return self._collect_tracks(ids)

    def flatten_for_display(self) -> List[DisplayItem]:
        """Depth-first rows; only tracks consume a sequential index."""
        rows: List[DisplayItem] = []
        counter = 0

        def walk(ids: List[str], level: int) -> None:
            nonlocal counter
            for item_id in ids:
                node = self._nodes[item_id]
                if node.is_group:
                    rows.append(DisplayItem(self._snapshot(item_id), level, -1))
                    walk(node.children, level + 1)
                else:
                    rows.append(DisplayItem(node.item, level, counter))
                    counter += 1

        walk(self._root, 0)
        return rows

    def group_item_count(self, group_id: str) -> int:
        """Number of tracks contained (transitively) in *group_id*."""
        if not self.is_group(group_id):
            return 0
        return len(self._collect_tracks([group_id]))

    def group_total_duration(self, group_id: str) -> float:
        """Sum of known track durations inside *group_id* (unknown count as 0)."""
        if not self.is_group(group_id):
            return 0.0
        return float(sum(t.duration or 0.0 for t in self._collect_tracks([group_id])))

    def count_groups(self) -> int:
        return sum(1 for node in self._nodes.values() if node.is_group)

    # ===== Mutations =====

    def add_item(self, item: Item, index: Optional[int] = None, group_id: Optional[str] = None) -> str:
        """Insert *item* (track or whole group snapshot) into the root or a group.

        Args:
            item: Track or Group to insert
            index: Position in the container; appends when None or past the end
            group_id: Target group, root when None

        Returns:
            The inserted item's id

        Raises:
            ValueError: If any id in *item* already exists in the tree
            KeyError: If *group_id* is not a group
        """
        self._container(group_id)
        self._check_new_ids(item)
        self._insert_subtree(item, group_id)
        self._attach(item.id, group_id, index)
        logger.debug(f"[items] Added {item.id} to {group_id or 'root'} at {index}")
        self._mutated()
        return item.id

    def remove_item(self, item_id: str) -> bool:
        """Remove a track or group anywhere in the tree, pruning emptied ancestors."""
        if item_id not in self._nodes:
            return False
        parent = self._detach(item_id)
        removed = self._delete_subtree(item_id)
        removed |= self._prune_empty(parent)
        logger.debug(f"[items] Removed {item_id} ({len(removed)} node(s))")
        self._mutated(removed)
        return True

    def remove_items(self, item_ids: Iterable[str]) -> int:
        """Remove several items as one change; returns how many were removed."""
        count = 0
        with self.transaction():
            for item_id in list(item_ids):
                if self.remove_item(item_id):
                    count += 1
        return count

    def clear(self) -> None:
        removed = set(self._nodes)
        self._nodes.clear()
        self._root.clear()
        self._mutated(removed)

    def _move_within(self, container_id: Optional[str], from_index: int, to_index: int) -> bool:
        siblings = self._container(container_id)
        if not (0 <= from_index < len(siblings)) or not (0 <= to_index < len(siblings)):
            return False
        if from_index == to_index:
            return True
        siblings.insert(to_index, siblings.pop(from_index))
        self._mutated()
        return True

    def move_item(self, from_index: int, to_index: int) -> bool:
        """Reorder within the root sequence."""
        return self._move_within(None, from_index, to_index)

    def move_item_in_group(self, group_id: str, from_index: int, to_index: int) -> bool:
        """Reorder within one group's own sequence."""
        if not self.is_group(group_id):
            return False
        return self._move_within(group_id, from_index, to_index)

    def add_item_to_group(self, group_id: str, item_id: str, index: Optional[int] = None) -> bool:
        """Relocate an existing item into *group_id*.

        Silently does nothing when the move would put a group inside itself.
        """
        if item_id == group_id or item_id not in self._nodes or not self.is_group(group_id):
            return False
        if self._is_same_or_ancestor(item_id, group_id):
            logger.debug(f"[items] Ignored cyclic move of {item_id} into {group_id}")
            return False
        old_parent = self._detach(item_id)
        self._attach(item_id, group_id, index)
        removed = self._prune_empty(old_parent)
        self._mutated(removed)
        return True

    def move_items(
        self,
        item_ids: Iterable[str],
        container_id: Optional[str] = None,
        before_id: Optional[str] = None,
    ) -> bool:
        """Relocate items, keeping their given order, into a container.

        Items are inserted in front of *before_id* (a child of the container)
        or appended when it is None. Former containers left empty are pruned.

        Raises:
            CycleViolation: If the container is one of the items or inside one
            KeyError: If the container or an item id is unknown
            ValueError: If *before_id* is not a child of the container or is moved too
        """
        ids = list(dict.fromkeys(item_ids))
        self._container(container_id)
        for item_id in ids:
            if item_id not in self._nodes:
                raise KeyError(f"Unknown item: {item_id}")
            if container_id is not None and self._is_same_or_ancestor(item_id, container_id):
                raise CycleViolation(item_id, container_id)
        if before_id is not None:
            if before_id in ids or self._nodes.get(before_id) is None or self._nodes[before_id].parent != container_id:
                raise ValueError(f"Invalid insertion anchor: {before_id}")
        if not ids:
            return False

        old_parents = [self._detach(item_id) for item_id in ids]
        siblings = self._container(container_id)
        index = siblings.index(before_id) if before_id is not None else len(siblings)
        for offset, item_id in enumerate(ids):
            self._attach(item_id, container_id, index + offset)
        removed: Set[str] = set()
        for parent in old_parents:
            removed |= self._prune_empty(parent)
        logger.debug(f"[items] Moved {len(ids)} item(s) into {container_id or 'root'} before {before_id}")
        self._mutated(removed)
        return True

    def create_group(self, item_ids: Iterable[str], name: Optional[str] = None) -> str:
        """Wrap consecutive siblings into a new group placed where the first one was.

        Returns:
            The new group's id

        Raises:
            GroupingError: Empty selection or unknown ids
            MixedContainerError: Items live in different containers
            NonConsecutiveSelectionError: Items are not adjacent
        """
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            raise GroupingError("Cannot create a group from an empty selection")
        missing = [item_id for item_id in ids if item_id not in self._nodes]
        if missing:
            raise GroupingError(f"Unknown items: {', '.join(missing)}")
        parents = {self._nodes[item_id].parent for item_id in ids}
        if len(parents) > 1:
            raise MixedContainerError("Selected items must share the same container")
        parent = parents.pop()
        siblings = self._container(parent)
        positions = sorted(siblings.index(item_id) for item_id in ids)
        if positions[-1] - positions[0] != len(positions) - 1:
            raise NonConsecutiveSelectionError("Selected items must be consecutive")

        if name is None:
            name = f"Group {self.count_groups() + 1}"
        group_id = new_item_id()
        ordered = [siblings[i] for i in positions]
        self._nodes[group_id] = _Node(Group(id=group_id, name=name), parent, ordered)
        for item_id in ordered:
            self._nodes[item_id].parent = group_id
        siblings[positions[0]:positions[-1] + 1] = [group_id]
        logger.info(f"[items] Created group '{name}' with {len(ordered)} item(s)")
        self._mutated()
        return group_id

    def ungroup_group(self, group_id: str) -> bool:
        """Replace the group with its own children, in place."""
        if not self.is_group(group_id):
            return False
        node = self._nodes[group_id]
        siblings = self._container(node.parent)
        position = siblings.index(group_id)
        children = node.children
        for child in children:
            self._nodes[child].parent = node.parent
        siblings[position:position + 1] = children
        del self._nodes[group_id]
        logger.info(f"[items] Ungrouped {group_id} ({len(children)} item(s))")
        self._mutated({group_id})
        return True

    def set_group_name(self, group_id: str, name: str) -> bool:
        if not self.is_group(group_id):
            return False
        node = self._nodes[group_id]
        node.item = replace(node.item, name=name)
        self._mutated()
        return True

    def set_item_settings(self, item_id: str, settings: Optional[TransitionSettings]) -> bool:
        """Attach (or clear with None) a transition override on a track or group."""
        node = self._nodes.get(item_id)
        if node is None:
            return False
        if settings is not None:
            ok, msg = settings.validate()
            if not ok:
                raise ValueError(msg)
        node.item = with_settings(node.item, settings)
        self._mutated()
        return True

    def update_track_duration(self, track_id: str, duration: Optional[float]) -> bool:
        """Store a resolved duration; ignored for unknown ids or invalid values."""
        node = self._nodes.get(track_id)
        if node is None or node.is_group:
            return False
        if duration is not None and duration < 0:
            return False
        if node.item.duration == duration:
            return True
        node.item = replace(node.item, duration=duration)
        self._mutated()
        return True

    # ===== Selection =====

    @property
    def selected_ids(self) -> List[str]:
        return list(self._selection)

    def is_selected(self, item_id: str) -> bool:
        return item_id in self._selection

    def select_item(self, item_id: str) -> None:
        if item_id in self._nodes:
            self._selection[item_id] = None

    def deselect_item(self, item_id: str) -> None:
        self._selection.pop(item_id, None)

    def toggle_item_selection(self, item_id: str) -> None:
        if item_id in self._selection:
            del self._selection[item_id]
        else:
            self.select_item(item_id)

    def select_all(self) -> None:
        self._selection = {row.item.id: None for row in self.flatten_for_display()}

    def deselect_all(self) -> None:
        self._selection.clear()

    def select_range(self, from_id: str, to_id: str) -> None:
        """Select every visible row between two items, inclusive."""
        order = [row.item.id for row in self.flatten_for_display()]
        if from_id not in order or to_id not in order:
            return
        start, end = sorted((order.index(from_id), order.index(to_id)))
        for item_id in order[start:end + 1]:
            self._selection[item_id] = None

    def remove_selected(self) -> int:
        removed = self.remove_items(self.selected_ids)
        self._selection.clear()
        return removed

    # ===== Serialization =====

    def to_list(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self.items]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> ItemTree:
        """Build a tree from plain data.

        Raises:
            ValueError: On duplicate ids or invalid items
        """
        items = [item_from_dict(entry) for entry in data]
        for item in items:
            ok, msg = item.validate()
            if not ok:
                raise ValueError(msg)
        return cls(items)
