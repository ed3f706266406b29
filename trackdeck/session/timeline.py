"""
Timeline projection - predicted wall-clock spans, periodic dividers and the
planned-end marker.

Active sessions are anchored at "now" on the current track (or the first
eligible one) and walk forward over the tracks that will still play. Each
track occupies ``[start, end)`` where its length is the duration plus the
pause after it when that pause resumes on its own (pause-then-continue).

Dividers sit on the first clock-aligned boundary strictly after the anchor
(boundaries are multiples of the interval counted from local midnight). A
boundary inside a track's span, end included, attaches to that track and
is rendered "after this track".

The planned-end marker is rounded up to a track boundary: it attaches to
the track *before* the one whose span contains the target.

In preparation mode dividers count cumulative playlist time from the start
of the list instead of the wall clock, and the planned-end marker is
previewed as if the session started now.

Projections are recomputed on every call; nothing is cached.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Sequence
import logging
import math
import time

from .items import ItemTree
from .models import Track
from .policy import PolicyResolver
from .state import SessionMode, SessionState

logger = logging.getLogger(__name__)


class MarkerPlacement(str, Enum):
    BEFORE_LIST = "before_list"   # Above the first remaining track
    AFTER_TRACK = "after_track"   # Below ``track_id``
    END_OF_LIST = "end_of_list"   # Below the last remaining track


@dataclass(frozen=True)
class TrackSpan:
    """Projected slot of one remaining track."""
    track_id: str
    start_offset: float
    end_offset: float
    start_time: float
    end_time: float

    def contains(self, timestamp: float) -> bool:
        return self.start_time <= timestamp < self.end_time


@dataclass(frozen=True)
class DividerMarker:
    """
    Divider rendered after ``track_id``.

    Attributes:
        track_id: Track the divider follows
        boundary: Interval boundary that fell inside the track (epoch seconds
            in active mode, playlist offset in preparation mode)
        track_end: Projected end of the track in the same unit as ``boundary``
        label: Display text
    """
    track_id: str
    boundary: float
    track_end: float
    label: str


@dataclass(frozen=True)
class PlannedEndMarker:
    placement: MarkerPlacement
    track_id: Optional[str]
    time: float          # Projected wall-clock where the marker is drawn
    target_time: float   # The user's requested end time


@dataclass
class TimelineProjection:
    mode: SessionMode
    anchor_time: float
    interval_seconds: float
    spans: List[TrackSpan] = field(default_factory=list)
    dividers: List[DividerMarker] = field(default_factory=list)
    planned_end: Optional[PlannedEndMarker] = None

    @property
    def total_seconds(self) -> float:
        return self.spans[-1].end_offset if self.spans else 0.0

    @property
    def projected_end_time(self) -> float:
        return self.anchor_time + self.total_seconds

    def divider_for(self, track_id: str) -> Optional[DividerMarker]:
        return next((d for d in self.dividers if d.track_id == track_id), None)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "anchor_time": self.anchor_time,
            "interval_seconds": self.interval_seconds,
            "total_seconds": self.total_seconds,
            "projected_end_time": self.projected_end_time,
            "spans": [span.__dict__.copy() for span in self.spans],
            "dividers": [divider.__dict__.copy() for divider in self.dividers],
            "planned_end": (
                {
                    "placement": self.planned_end.placement.value,
                    "track_id": self.planned_end.track_id,
                    "time": self.planned_end.time,
                    "target_time": self.planned_end.target_time,
                }
                if self.planned_end
                else None
            ),
        }


# ===== Formatting =====

def format_clock(timestamp: float) -> str:
    """Local wall-clock ``HH:MM``."""
    return datetime.fromtimestamp(timestamp).strftime("%H:%M")


def format_offset(seconds: float) -> str:
    """Elapsed playlist time as ``h:mm``."""
    total_minutes = int(max(0.0, seconds) // 60)
    return f"{total_minutes // 60}:{total_minutes % 60:02d}"


def format_duration(seconds: Optional[float]) -> str:
    """Track-length style ``H:MM:SS`` or ``M:SS``; unknown durations render as ``--:--``."""
    if seconds is None:
        return "--:--"
    total = int(round(max(0.0, seconds)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


# ===== Projection =====

def next_divider_boundary(anchor: float, interval_seconds: float) -> float:
    """First multiple of the interval (counted from local midnight) strictly after *anchor*.

    Multiples are taken on the local wall clock, so boundaries stay on the
    hour across daylight-saving changes.
    """
    local = datetime.fromtimestamp(anchor)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0, fold=0)
    wall_seconds = (local - midnight).total_seconds()
    steps = math.floor(wall_seconds / interval_seconds) + 1
    while True:
        wall = midnight + timedelta(seconds=steps * interval_seconds)
        # A wall time repeated by a fall-back change maps to two instants
        for fold in (0, 1):
            boundary = wall.replace(fold=fold).timestamp()
            if boundary > anchor:
                return boundary
        steps += 1


def _walk_spans(
    tracks: Sequence[Track],
    policy: PolicyResolver,
    anchor: float,
    current_track_id: Optional[str],
    current_position: float,
) -> List[TrackSpan]:
    spans: List[TrackSpan] = []
    offset = 0.0
    for track in tracks:
        length = policy.duration_with_pause(track)
        if track.id == current_track_id:
            length = max(0.0, length - max(0.0, current_position))
        spans.append(TrackSpan(track.id, offset, offset + length, anchor + offset, anchor + offset + length))
        offset += length
    return spans


def _place_planned_end(spans: List[TrackSpan], target: float) -> PlannedEndMarker:
    if not spans:
        return PlannedEndMarker(MarkerPlacement.END_OF_LIST, None, target, target)
    if target < spans[0].start_time:
        return PlannedEndMarker(MarkerPlacement.BEFORE_LIST, None, target, target)
    for index, span in enumerate(spans):
        if span.contains(target):
            if index == 0:
                return PlannedEndMarker(MarkerPlacement.BEFORE_LIST, None, span.start_time, target)
            return PlannedEndMarker(MarkerPlacement.AFTER_TRACK, spans[index - 1].track_id, span.start_time, target)
    return PlannedEndMarker(MarkerPlacement.END_OF_LIST, spans[-1].track_id, spans[-1].end_time, target)


def project_timeline(
    tracks: Sequence[Track],
    policy: PolicyResolver,
    *,
    mode: SessionMode,
    now: float,
    interval_seconds: float,
    current_track_id: Optional[str] = None,
    current_position: float = 0.0,
    is_played: Callable[[str], bool] = lambda _id: False,
    is_disabled: Callable[[str], bool] = lambda _id: False,
    planned_end_time: Optional[float] = None,
) -> TimelineProjection:
    """Project the remaining playlist onto the wall clock.

    Args:
        tracks: All tracks in playback order
        policy: Resolver used for each track's pause contribution
        mode: Session mode; preparation switches dividers to cumulative offsets
        now: Anchor wall-clock time (epoch seconds)
        interval_seconds: Divider spacing
        current_track_id: Loaded track in an active session
        current_position: Seconds already played of the current track
        is_played: Predicate for played tracks
        is_disabled: Predicate for disabled tracks (own mark or enclosing group)
        planned_end_time: Optional target end (epoch seconds)

    Returns:
        TimelineProjection with spans, dividers and the planned-end marker
    """
    if interval_seconds <= 0:
        raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

    projection = TimelineProjection(mode=mode, anchor_time=now, interval_seconds=interval_seconds)

    if mode is SessionMode.ACTIVE:
        start = 0
        if current_track_id is not None:
            start = next((i for i, t in enumerate(tracks) if t.id == current_track_id), 0)
        remaining = [
            t for t in tracks[start:]
            if t.id == current_track_id or not (is_played(t.id) or is_disabled(t.id))
        ]
        projection.spans = _walk_spans(remaining, policy, now, current_track_id, current_position)

        boundary = next_divider_boundary(now, interval_seconds)
        for span in projection.spans:
            if span.start_time <= boundary <= span.end_time:
                projection.dividers.append(
                    DividerMarker(span.track_id, boundary, span.end_time, format_clock(span.end_time))
                )
                boundary = next_divider_boundary(span.end_time, interval_seconds)
    else:
        remaining = [t for t in tracks if not is_disabled(t.id)]
        projection.spans = _walk_spans(remaining, policy, now, None, 0.0)

        crossed = 0
        for span in projection.spans:
            count = math.floor(span.end_offset / interval_seconds)
            if count > crossed:
                projection.dividers.append(
                    DividerMarker(span.track_id, count * interval_seconds, span.end_offset, format_offset(span.end_offset))
                )
                crossed = count

    if planned_end_time is not None:
        projection.planned_end = _place_planned_end(projection.spans, planned_end_time)

    logger.debug(
        f"[timeline] {mode.value}: {len(projection.spans)} span(s), "
        f"{len(projection.dividers)} divider(s), total={projection.total_seconds:.0f}s"
    )
    return projection


class TimelineProjector:
    """Binds :func:`project_timeline` to a live tree, session state and settings."""

    def __init__(
        self,
        tree: ItemTree,
        state: SessionState,
        policy: PolicyResolver,
        clock: Callable[[], float] = time.time,
    ):
        self.tree = tree
        self.state = state
        self.policy = policy
        self.clock = clock

    def project(self, now: Optional[float] = None, current_position: float = 0.0) -> TimelineProjection:
        settings = self.policy.settings
        return project_timeline(
            self.tree.tracks,
            self.policy,
            mode=self.state.mode,
            now=self.clock() if now is None else now,
            interval_seconds=settings.divider_interval_seconds,
            current_track_id=self.state.current_track_id,
            current_position=current_position,
            is_played=self.state.is_track_played,
            is_disabled=self.state.is_track_or_group_disabled,
            planned_end_time=settings.planned_end_time,
        )

    def remaining_seconds(self, current_position: float = 0.0) -> float:
        return self.project(current_position=current_position).total_seconds

    def projected_end_time(self, now: Optional[float] = None, current_position: float = 0.0) -> float:
        return self.project(now=now, current_position=current_position).projected_end_time
