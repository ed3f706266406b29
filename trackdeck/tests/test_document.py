"""Tests for playlist document persistence."""

import json

import pytest

from trackdeck.session import ActionAfterTrack, ItemTree, PlayerSettings, PlaylistDocument, SessionMode
from trackdeck.session.document import DOCUMENT_SUFFIX, list_playlists, validate_document

from .helpers import make_group, make_track


@pytest.fixture
def document():
    tree = ItemTree([
        make_track("a", 120),
        make_group("G", make_track("b", 60), make_track("c"), action="pauseThenContinue", pause=8),
    ])
    settings = PlayerSettings(default_pause_seconds=2, planned_end_time=1_900_000_000.0)
    doc = PlaylistDocument("Evening", tree, settings, description="set list")
    doc.state.start()
    doc.state.mark_played("a")
    doc.state.set_current("b")
    doc.state.set_group_disabled("G", True)
    return doc


class TestSerialization:
    def test_dict_layout(self, document):
        data = document.to_dict()
        assert data["version"] == "1.0"
        assert data["metadata"]["name"] == "Evening"
        assert data["metadata"]["description"] == "set list"
        assert data["settings"]["default_pause_seconds"] == 2
        assert [item["id"] for item in data["items"]] == ["a", "G"]
        assert data["session"]["current_track_id"] == "b"

    def test_from_dict_restores_everything(self, document):
        restored = PlaylistDocument.from_dict(json.loads(json.dumps(document.to_dict())))
        assert restored.name == "Evening"
        assert restored.tree.to_list() == document.tree.to_list()
        assert restored.settings == document.settings
        assert restored.state.mode is SessionMode.ACTIVE
        assert restored.state.played_track_ids == {"a"}
        assert restored.state.disabled_track_ids == {"c"}
        assert restored.policy.get_effective_settings("c").action_after_track is ActionAfterTrack.PAUSE_THEN_CONTINUE

    def test_session_is_optional(self, document):
        data = document.to_dict()
        del data["session"]
        restored = PlaylistDocument.from_dict(data)
        assert restored.state.mode is SessionMode.PREPARATION

    @pytest.mark.parametrize("mutate", [
        lambda d: d.pop("items"),
        lambda d: d["metadata"].pop("name"),
        lambda d: d.__setitem__("items", {}),
        lambda d: d["settings"].__setitem__("divider_interval_seconds", 0),
        lambda d: d["items"][0].pop("path"),
        lambda d: d["items"].append({"id": "a", "path": "/dup.mp3"}),
    ])
    def test_invalid_documents_rejected(self, document, mutate):
        data = document.to_dict()
        mutate(data)
        with pytest.raises(ValueError):
            PlaylistDocument.from_dict(data)

    def test_validate_document_requires_object(self):
        with pytest.raises(ValueError):
            validate_document([])


class TestFiles:
    def test_save_and_load(self, document, tmp_path):
        path = document.save(tmp_path / "evening")
        assert path.name == "evening" + DOCUMENT_SUFFIX
        assert document.path == path

        loaded = PlaylistDocument.load(path)
        assert loaded.path == path
        assert loaded.tree.track_count == 3
        assert loaded.metadata["created"] == document.metadata["created"]

    def test_save_without_path(self):
        with pytest.raises(ValueError):
            PlaylistDocument("Nowhere").save()

    def test_save_creates_parent_dirs(self, tmp_path):
        path = PlaylistDocument("Deep").save(tmp_path / "a" / "b" / "deep.playlist.json")
        assert path.exists()

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PlaylistDocument.load(tmp_path / "missing.playlist.json")

    def test_list_playlists(self, tmp_path):
        PlaylistDocument("One").save(tmp_path / "one.playlist.json")
        PlaylistDocument("Two").save(tmp_path / "two.playlist.json")
        (tmp_path / "notes.txt").write_text("x")
        assert [p.name for p in list_playlists(tmp_path)] == ["one.playlist.json", "two.playlist.json"]
        assert list_playlists(tmp_path / "absent") == []


class TestHelpers:
    def test_projector_and_editor_share_state(self, document):
        editor = document.build_editor()
        assert editor.state is document.state
        projector = document.build_projector(clock=lambda: 1_000_000.0)
        projection = projector.project()
        assert projection.anchor_time == 1_000_000.0
        assert [s.track_id for s in projection.spans] == ["b"]

    def test_validate(self, document):
        assert document.validate() == (True, "")
        document.settings.default_pause_seconds = -5
        ok, msg = document.validate()
        assert not ok
