"""Tests for timeline projection: spans, clock dividers and the planned-end marker.

Anchors are built from local datetimes so divider alignment (local midnight)
is independent of the machine's timezone.
"""

import time
from datetime import datetime

import pytest

from trackdeck.session import (
    ItemTree,
    MarkerPlacement,
    PlayerSettings,
    PolicyResolver,
    SessionMode,
    SessionState,
    TimelineProjector,
    project_timeline,
)
from trackdeck.session.timeline import (
    format_clock,
    format_duration,
    format_offset,
    next_divider_boundary,
)

from .helpers import make_track


def at(hour, minute=0):
    return datetime(2026, 1, 1, hour, minute).timestamp()


def tracks_of(*durations, **overrides):
    return ItemTree([make_track(f"t{i + 1}", d, **overrides) for i, d in enumerate(durations)])


def project(tree, mode=SessionMode.ACTIVE, now=None, interval=3600, **kwargs):
    return project_timeline(
        tree.tracks,
        PolicyResolver(tree, PlayerSettings()),
        mode=mode,
        now=at(10) if now is None else now,
        interval_seconds=interval,
        **kwargs,
    )


class TestFormatting:
    def test_durations(self):
        assert format_duration(None) == "--:--"
        assert format_duration(65) == "1:05"
        assert format_duration(3725) == "1:02:05"

    def test_offsets_and_clock(self):
        assert format_offset(5400) == "1:30"
        assert format_offset(59) == "0:00"
        assert format_clock(at(9, 5)) == "09:05"


class TestDividerBoundary:
    def test_strictly_after_anchor(self):
        assert next_divider_boundary(at(10), 3600) == at(11)
        assert next_divider_boundary(at(10, 59), 3600) == at(11)

    def test_aligned_to_interval(self):
        assert next_divider_boundary(at(10, 15), 1800) == at(10, 30)
        assert next_divider_boundary(at(10, 31), 900) == at(10, 45)

    @pytest.fixture
    def new_york(self, monkeypatch):
        if not hasattr(time, "tzset"):
            pytest.skip("time.tzset is not available on this platform")
        monkeypatch.setenv("TZ", "America/New_York")
        time.tzset()
        yield
        monkeypatch.undo()
        time.tzset()

    def test_stays_on_the_hour_after_spring_forward(self, new_york):
        anchor = datetime(2026, 3, 8, 10, 30).timestamp()
        boundary = next_divider_boundary(anchor, 3600)
        assert boundary == datetime(2026, 3, 8, 11, 0).timestamp()
        assert datetime.fromtimestamp(boundary).hour == 11

    def test_repeated_hour_after_fall_back(self, new_york):
        anchor = datetime(2026, 11, 1, 1, 10, fold=1).timestamp()
        boundary = next_divider_boundary(anchor, 1800)
        assert boundary == datetime(2026, 11, 1, 1, 30, fold=1).timestamp()
        assert boundary - anchor == 20 * 60


class TestActiveProjection:
    def test_spans_are_contiguous(self):
        projection = project(tracks_of(1800, 1800, 1800))
        assert [(s.track_id, s.start_time, s.end_time) for s in projection.spans] == [
            ("t1", at(10), at(10, 30)),
            ("t2", at(10, 30), at(11)),
            ("t3", at(11), at(11, 30)),
        ]
        assert projection.total_seconds == 5400
        assert projection.projected_end_time == at(11, 30)

    def test_divider_on_track_ending_at_boundary(self):
        projection = project(tracks_of(1800, 1800, 1800))
        assert [d.track_id for d in projection.dividers] == ["t2"]
        assert projection.divider_for("t2").label == "11:00"
        assert projection.divider_for("t1") is None

    def test_divider_inside_track(self):
        projection = project(tracks_of(3000, 600), now=at(10, 10))
        assert [d.track_id for d in projection.dividers] == ["t1"]

    def test_long_track_consumes_its_boundaries(self):
        projection = project(tracks_of(3 * 3600, 60, 3600))
        assert [(d.track_id, d.boundary) for d in projection.dividers] == [
            ("t1", at(11)),
            ("t3", at(14)),
        ]

    def test_timed_pause_extends_span(self):
        tree = ItemTree([
            make_track("t1", 1500, action="pauseThenContinue", pause=300),
            make_track("t2", 600, action="pauseIndefinite", pause=300),
            make_track("t3", 600),
        ])
        projection = project(tree)
        assert [s.end_offset for s in projection.spans] == [1800, 2400, 3000]

    def test_starts_at_current_track_minus_position(self):
        projection = project(
            tracks_of(1800, 1800, 1800),
            current_track_id="t2",
            current_position=600,
            is_played=lambda track_id: track_id == "t1",
        )
        assert [s.track_id for s in projection.spans] == ["t2", "t3"]
        assert projection.total_seconds == 1200 + 1800

    def test_played_and_disabled_tracks_excluded(self):
        projection = project(
            tracks_of(60, 60, 60, 60),
            current_track_id="t1",
            is_played=lambda track_id: track_id == "t2",
            is_disabled=lambda track_id: track_id == "t3",
        )
        assert [s.track_id for s in projection.spans] == ["t1", "t4"]

    def test_unknown_duration_counts_as_zero(self):
        projection = project(tracks_of(None, 60))
        assert projection.total_seconds == 60

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            project(tracks_of(60), interval=0)


class TestPlannedEnd:
    @pytest.fixture
    def tree(self):
        return tracks_of(1800, 1800, 1800)

    def test_target_inside_later_track_attaches_to_previous(self, tree):
        marker = project(tree, planned_end_time=at(10, 45)).planned_end
        assert marker.placement is MarkerPlacement.AFTER_TRACK
        assert marker.track_id == "t1"
        assert marker.time == at(10, 30)
        assert marker.target_time == at(10, 45)

    def test_target_on_boundary_belongs_to_next_track(self, tree):
        marker = project(tree, planned_end_time=at(10, 30)).planned_end
        assert marker.placement is MarkerPlacement.AFTER_TRACK
        assert marker.track_id == "t1"

    def test_target_inside_first_track(self, tree):
        marker = project(tree, planned_end_time=at(10, 10)).planned_end
        assert marker.placement is MarkerPlacement.BEFORE_LIST
        assert marker.time == at(10)

    def test_target_in_the_past(self, tree):
        marker = project(tree, planned_end_time=at(9)).planned_end
        assert marker.placement is MarkerPlacement.BEFORE_LIST
        assert marker.time == at(9)

    def test_target_after_everything(self, tree):
        marker = project(tree, planned_end_time=at(12)).planned_end
        assert marker.placement is MarkerPlacement.END_OF_LIST
        assert marker.track_id == "t3"
        assert marker.time == at(11, 30)

    def test_empty_playlist(self):
        projection = project(ItemTree(), planned_end_time=at(12))
        assert projection.total_seconds == 0
        assert projection.planned_end.placement is MarkerPlacement.END_OF_LIST
        assert projection.planned_end.track_id is None

    def test_no_marker_without_target(self, tree):
        assert project(tree).planned_end is None


class TestPreparationProjection:
    def test_cumulative_dividers(self):
        projection = project(tracks_of(1800, 1800, 1800, 1800), mode=SessionMode.PREPARATION, now=at(10, 17))
        assert [(d.track_id, d.label) for d in projection.dividers] == [("t2", "1:00"), ("t4", "2:00")]

    def test_one_divider_for_multiple_crossings(self):
        projection = project(tracks_of(7300, 100), mode=SessionMode.PREPARATION)
        assert [(d.track_id, d.boundary) for d in projection.dividers] == [("t1", 7200)]

    def test_disabled_excluded_played_ignored(self):
        projection = project(
            tracks_of(60, 60, 60),
            mode=SessionMode.PREPARATION,
            is_played=lambda track_id: True,
            is_disabled=lambda track_id: track_id == "t2",
        )
        assert [s.track_id for s in projection.spans] == ["t1", "t3"]

    def test_planned_end_previewed_from_now(self):
        projection = project(
            tracks_of(1800, 1800), mode=SessionMode.PREPARATION, now=at(20), planned_end_time=at(20, 40)
        )
        assert projection.planned_end.track_id == "t1"


class TestTimelineProjector:
    def test_uses_live_state_and_settings(self):
        tree = tracks_of(1800, 1800, 1800)
        state = SessionState(tree)
        settings = PlayerSettings(divider_interval_seconds=1800, planned_end_time=at(11, 15))
        projector = TimelineProjector(tree, state, PolicyResolver(tree, settings), clock=lambda: at(10))

        projection = projector.project()
        assert projection.mode is SessionMode.PREPARATION
        assert projection.anchor_time == at(10)
        assert [d.track_id for d in projection.dividers] == ["t1", "t2", "t3"]
        assert projection.planned_end.track_id == "t2"

        state.start()
        state.set_current("t2")
        state.mark_played("t1")
        assert projector.remaining_seconds(current_position=900) == 900 + 1800
        assert projector.projected_end_time(now=at(12)) == at(13)

    def test_to_dict(self):
        tree = tracks_of(1800)
        projector = TimelineProjector(tree, SessionState(tree), PolicyResolver(tree), clock=lambda: at(10))
        data = projector.project().to_dict()
        assert data["mode"] == "preparation"
        assert data["total_seconds"] == 1800
        assert data["spans"][0]["track_id"] == "t1"
        assert data["planned_end"] is None
