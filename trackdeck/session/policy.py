"""
Transition policy - global player settings and per-track resolution.

The effective after-track behavior of a track is resolved in this order:
1. the track's own action override (pause falls back to the global pause)
2. the nearest enclosing group with an action override, walking outward
   (pause falls back to the global pause)
3. the global default action, keeping the track's own pause if it set one
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict, Any

from .items import ItemTree
from .models import ActionAfterTrack, Track


@dataclass
class PlayerSettings:
    """
    Global player configuration.

    Attributes:
        default_action_after_track: Action for tracks without any override
        default_pause_seconds: Pause used when no override sets one
        divider_interval_seconds: Spacing of timeline dividers
        show_dividers: Whether the UI renders dividers
        planned_end_time: Target wall-clock end (epoch seconds), optional
    """
    default_action_after_track: ActionAfterTrack = ActionAfterTrack.CONTINUE
    default_pause_seconds: float = 0.0
    divider_interval_seconds: float = 3600.0
    show_dividers: bool = True
    planned_end_time: Optional[float] = None

    def __post_init__(self):
        if isinstance(self.default_action_after_track, str):
            self.default_action_after_track = ActionAfterTrack(self.default_action_after_track)

    def validate(self) -> tuple[bool, str]:
        """
        Validate configuration values.

        Returns:
            (is_valid, error_message)
        """
        if self.default_pause_seconds < 0:
            return False, f"default_pause_seconds must be non-negative, got {self.default_pause_seconds}"
        if self.divider_interval_seconds <= 0:
            return False, f"divider_interval_seconds must be positive, got {self.divider_interval_seconds}"
        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_action_after_track": self.default_action_after_track.value,
            "default_pause_seconds": self.default_pause_seconds,
            "divider_interval_seconds": self.divider_interval_seconds,
            "show_dividers": self.show_dividers,
            "planned_end_time": self.planned_end_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PlayerSettings:
        return cls(
            default_action_after_track=ActionAfterTrack(
                data.get("default_action_after_track", ActionAfterTrack.CONTINUE.value)
            ),
            default_pause_seconds=float(data.get("default_pause_seconds", 0.0)),
            divider_interval_seconds=float(data.get("divider_interval_seconds", 3600.0)),
            show_dividers=bool(data.get("show_dividers", True)),
            planned_end_time=data.get("planned_end_time"),
        )


@dataclass(frozen=True)
class EffectiveSettings:
    """Fully resolved after-track policy for one track."""
    action_after_track: ActionAfterTrack
    pause_duration_seconds: float

    @property
    def timed_pause(self) -> float:
        """Pause that a timeline can predict (only pause-then-continue resumes on its own)."""
        if self.action_after_track is ActionAfterTrack.PAUSE_THEN_CONTINUE:
            return self.pause_duration_seconds
        return 0.0


class PolicyResolver:
    """Resolves effective transition settings against an item tree and global settings."""

    def __init__(self, tree: ItemTree, settings: Optional[PlayerSettings] = None):
        self.tree = tree
        self.settings = settings or PlayerSettings()

    def get_effective_settings(self, track_id: str) -> EffectiveSettings:
        default_pause = self.settings.default_pause_seconds
        track = self.tree.get_track(track_id)
        own = track.settings if track else None

        if own is not None and own.action_after_track is not None:
            pause = own.pause_duration_seconds
            return EffectiveSettings(own.action_after_track, default_pause if pause is None else pause)

        for group_id in self.tree.iter_ancestors(track_id):
            group_settings = self.tree.get_item_settings(group_id)
            if group_settings is not None and group_settings.action_after_track is not None:
                pause = group_settings.pause_duration_seconds
                return EffectiveSettings(group_settings.action_after_track, default_pause if pause is None else pause)

        pause = own.pause_duration_seconds if own is not None else None
        return EffectiveSettings(
            self.settings.default_action_after_track,
            default_pause if pause is None else pause,
        )

    def duration_with_pause(self, track: Track) -> float:
        """Track duration plus the predictable pause after it (unknown duration counts as 0)."""
        return (track.duration or 0.0) + self.get_effective_settings(track.id).timed_pause

    def group_duration_with_pauses(self, group_id: str) -> Optional[float]:
        """Total duration of a group's tracks including pauses, or None when no duration is known."""
        tracks = self.tree.get_all_tracks_in_order([group_id])
        if not any(t.duration for t in tracks):
            return None
        return sum(self.duration_with_pause(t) for t in tracks)
