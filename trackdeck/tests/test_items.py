"""Tests for the hierarchical item model (ItemTree).

Validates:
- Lookups (paths, indices, playback order)
- Insert/remove with pruning of emptied groups
- Reordering and relocation, including cycle protection
- Group creation preconditions and ungrouping
- Display flattening, selection, transactions and serialization
"""

import pytest

from trackdeck.session import (
    GroupingError,
    ItemTree,
    MixedContainerError,
    NonConsecutiveSelectionError,
    TransitionSettings,
)
from trackdeck.session.models import Group

from .helpers import ids, make_group, make_track


class TestLookups:
    def test_tracks_follow_preorder(self, nested_tree):
        assert ids(nested_tree.tracks) == ["a", "b", "c", "d", "e"]
        assert nested_tree.track_position("d") == 3
        assert nested_tree.track_position("G1") == -1

    def test_item_path_ends_with_item(self, nested_tree):
        assert nested_tree.get_item_path("c") == ["G1", "G2", "c"]
        assert nested_tree.get_item_path("a") == ["a"]
        assert nested_tree.get_item_path("missing") == []

    def test_find_item_index_is_container_relative(self, nested_tree):
        assert nested_tree.find_item_index("G2") == 1
        assert nested_tree.find_item_index("e") == 2
        assert nested_tree.find_item_index("missing") == -1

    def test_find_item_returns_group_snapshot(self, nested_tree):
        group = nested_tree.find_item_by_id("G1")
        assert isinstance(group, Group)
        assert ids(group.items) == ["b", "G2"]
        assert ids(group.items[1].items) == ["c", "d"]

    def test_tracks_of_subtrees(self, nested_tree):
        assert ids(nested_tree.get_all_tracks_in_order(["G2"])) == ["c", "d"]
        group = nested_tree.find_item_by_id("G1")
        assert ids(nested_tree.get_all_tracks_in_order([group, "e"])) == ["b", "c", "d", "e"]

    def test_group_statistics(self, nested_tree):
        assert nested_tree.group_item_count("G1") == 3
        assert nested_tree.group_total_duration("G1") == 900
        assert nested_tree.group_item_count("a") == 0


class TestInsertRemove:
    def test_add_at_index_and_into_group(self, nested_tree):
        nested_tree.add_item(make_track("x"), 1)
        nested_tree.add_item(make_track("y"), 0, group_id="G2")
        assert nested_tree.get_children_ids() == ["a", "x", "G1", "e"]
        assert nested_tree.get_children_ids("G2") == ["y", "c", "d"]
        assert ids(nested_tree.tracks) == ["a", "x", "b", "y", "c", "d", "e"]

    def test_append_when_index_past_end(self, flat_tree):
        flat_tree.add_item(make_track("z"), 99)
        assert flat_tree.get_children_ids()[-1] == "z"

    def test_duplicate_id_rejected(self, nested_tree):
        before = nested_tree.to_list()
        with pytest.raises(ValueError):
            nested_tree.add_item(make_group("H", make_track("x"), make_track("c")))
        assert nested_tree.to_list() == before

    def test_remove_prunes_empty_ancestors(self, nested_tree):
        removed = []
        nested_tree.add_removal_listener(removed.append)

        nested_tree.remove_item("c")
        nested_tree.remove_item("d")
        assert "G2" not in nested_tree
        assert nested_tree.get_children_ids("G1") == ["b"]
        assert removed[-1] == {"d", "G2"}

        nested_tree.remove_item("b")
        assert nested_tree.get_children_ids() == ["a", "e"]
        assert removed[-1] == {"b", "G1"}

    def test_remove_group_removes_subtree(self, nested_tree):
        removed = []
        nested_tree.add_removal_listener(removed.append)
        assert nested_tree.remove_item("G1") is True
        assert ids(nested_tree.tracks) == ["a", "e"]
        assert removed == [{"G1", "b", "G2", "c", "d"}]

    def test_remove_unknown_is_noop(self, nested_tree):
        assert nested_tree.remove_item("missing") is False


class TestMoves:
    def test_move_item_within_root(self, nested_tree):
        assert nested_tree.move_item(0, 2) is True
        assert nested_tree.get_children_ids() == ["G1", "e", "a"]
        assert ids(nested_tree.tracks) == ["b", "c", "d", "e", "a"]

    def test_move_item_out_of_range(self, nested_tree):
        assert nested_tree.move_item(0, 5) is False
        assert nested_tree.get_children_ids() == ["a", "G1", "e"]

    def test_move_item_in_group(self, nested_tree):
        assert nested_tree.move_item_in_group("G1", 1, 0) is True
        assert ids(nested_tree.tracks) == ["a", "c", "d", "b", "e"]

    def test_add_item_to_group_relocates(self, nested_tree):
        assert nested_tree.add_item_to_group("G2", "a", 0) is True
        assert nested_tree.get_children_ids() == ["G1", "e"]
        assert nested_tree.get_item_path("a") == ["G1", "G2", "a"]
        assert ids(nested_tree.tracks) == ["b", "a", "c", "d", "e"]

    def test_add_item_to_group_ignores_cycles(self, nested_tree):
        before = nested_tree.to_list()
        assert nested_tree.add_item_to_group("G2", "G1") is False
        assert nested_tree.add_item_to_group("G1", "G1") is False
        assert nested_tree.to_list() == before

    def test_only_child_moved_within_its_group_keeps_group(self):
        tree = ItemTree([make_group("H", make_track("x")), make_track("y")])
        assert tree.add_item_to_group("H", "x", 0) is True
        assert tree.get_children_ids("H") == ["x"]

    def test_move_items_prunes_former_container(self):
        tree = ItemTree([make_group("H", make_track("x")), make_track("y")])
        removed = []
        tree.add_removal_listener(removed.append)
        tree.move_items(["x"], None, None)
        assert tree.get_children_ids() == ["y", "x"]
        assert removed == [{"H"}]


class TestGrouping:
    def test_create_group_wraps_consecutive_items(self, flat_tree):
        group_id = flat_tree.create_group(["c", "b"], name="Mid")
        assert flat_tree.get_children_ids() == ["a", group_id, "d"]
        assert flat_tree.get_children_ids(group_id) == ["b", "c"]
        assert ids(flat_tree.tracks) == ["a", "b", "c", "d"]
        assert flat_tree.find_item_by_id(group_id).name == "Mid"

    def test_default_group_name_counts_groups(self, flat_tree):
        group_id = flat_tree.create_group(["a"])
        assert flat_tree.find_item_by_id(group_id).name == "Group 1"

    def test_non_consecutive_selection_leaves_tree_unchanged(self, flat_tree):
        before = flat_tree.to_list()
        with pytest.raises(NonConsecutiveSelectionError):
            flat_tree.create_group(["a", "c"])
        assert flat_tree.to_list() == before

    def test_mixed_containers_rejected(self, nested_tree):
        before = nested_tree.to_list()
        with pytest.raises(MixedContainerError):
            nested_tree.create_group(["a", "b"])
        assert nested_tree.to_list() == before

    def test_empty_or_unknown_selection_rejected(self, flat_tree):
        with pytest.raises(GroupingError):
            flat_tree.create_group([])
        with pytest.raises(GroupingError):
            flat_tree.create_group(["a", "nope"])

    def test_ungroup_is_inverse_of_create(self, flat_tree):
        before = flat_tree.to_list()
        group_id = flat_tree.create_group(["b", "c"])
        assert flat_tree.ungroup_group(group_id) is True
        assert flat_tree.to_list() == before

    def test_ungroup_keeps_nested_groups(self, nested_tree):
        nested_tree.ungroup_group("G1")
        assert nested_tree.get_children_ids() == ["a", "b", "G2", "e"]
        assert nested_tree.get_children_ids("G2") == ["c", "d"]
        assert ids(nested_tree.tracks) == ["a", "b", "c", "d", "e"]

    def test_rename_and_settings(self, nested_tree):
        assert nested_tree.set_group_name("G1", "Warmup") is True
        assert nested_tree.find_item_by_id("G1").name == "Warmup"
        assert nested_tree.set_group_name("a", "nope") is False
        with pytest.raises(ValueError):
            nested_tree.set_item_settings("a", TransitionSettings(pause_duration_seconds=-1))


class TestDisplayAndSelection:
    def test_flatten_numbers_tracks_only(self, nested_tree):
        rows = [(r.item.id, r.level, r.sequential_index) for r in nested_tree.flatten_for_display()]
        assert rows == [
            ("a", 0, 0),
            ("G1", 0, -1),
            ("b", 1, 1),
            ("G2", 1, -1),
            ("c", 2, 2),
            ("d", 2, 3),
            ("e", 0, 4),
        ]

    def test_select_range_follows_display_order(self, nested_tree):
        nested_tree.select_range("c", "a")
        assert nested_tree.selected_ids == ["a", "G1", "b", "G2", "c"]

    def test_toggle_and_removal_clear_selection(self, nested_tree):
        nested_tree.toggle_item_selection("b")
        nested_tree.toggle_item_selection("e")
        nested_tree.toggle_item_selection("b")
        assert nested_tree.selected_ids == ["e"]
        nested_tree.remove_item("e")
        assert nested_tree.selected_ids == []

    def test_select_all_and_remove_selected(self, flat_tree):
        flat_tree.select_all()
        assert len(flat_tree.selected_ids) == 4
        assert flat_tree.remove_selected() == 4
        assert len(flat_tree) == 0


class TestNotificationsAndTransactions:
    def test_duration_update_notifies(self, flat_tree):
        calls = []
        flat_tree.add_change_listener(lambda: calls.append(1))
        assert flat_tree.update_track_duration("a", 42.0) is True
        assert flat_tree.get_track("a").duration == 42.0
        assert flat_tree.update_track_duration("a", -1) is False
        assert calls == [1]

    def test_transaction_defers_notifications(self, flat_tree):
        calls = []
        flat_tree.add_change_listener(lambda: calls.append(1))
        with flat_tree.transaction():
            flat_tree.move_item(0, 1)
            flat_tree.move_item(1, 2)
            assert calls == []
        assert calls == [1]

    def test_transaction_rolls_back_on_error(self, nested_tree):
        before = nested_tree.to_list()
        removed = []
        nested_tree.add_removal_listener(removed.append)
        with pytest.raises(RuntimeError):
            with nested_tree.transaction():
                nested_tree.remove_item("a")
                nested_tree.create_group(["G1", "e"])
                raise RuntimeError("boom")
        assert nested_tree.to_list() == before
        assert ids(nested_tree.tracks) == ["a", "b", "c", "d", "e"]
        assert removed == []


class TestSerialization:
    def test_round_trip(self, nested_tree):
        nested_tree.set_item_settings("G2", TransitionSettings(action_after_track="pauseIndefinite"))
        rebuilt = ItemTree.from_list(nested_tree.to_list())
        assert rebuilt.to_list() == nested_tree.to_list()
        assert rebuilt.get_item_settings("G2").action_after_track.value == "pauseIndefinite"

    def test_groups_recognized_by_items_key(self):
        tree = ItemTree.from_list([
            {"id": "g", "name": "G", "items": []},
            {"id": "t", "path": "/x.mp3", "name": "x"},
        ])
        assert tree.is_group("g")
        assert tree.get_track("t").duration is None

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            ItemTree.from_list([
                {"id": "t", "path": "/x.mp3"},
                {"id": "g", "name": "G", "items": [{"id": "t", "path": "/y.mp3"}]},
            ])
