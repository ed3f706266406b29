"""
Player session scheduler for TrackDeck.

This package implements the playlist model and everything that decides
what plays next and when:

Core Components:
- ItemTree: hierarchical track/group model with mutation primitives
- PolicyResolver: effective after-track behavior (track > group > global)
- SessionState: preparation/active mode, played/disabled marks, locking
- ContinuationEngine: reacts to end-of-media and skips, drives the audio backend
- TimelineProjector: wall-clock spans, periodic dividers, planned-end marker
- PlaylistEditor / move_between_workspaces: drag-and-drop edits
"""

from .models import (
    ActionAfterTrack,
    DisplayItem,
    Group,
    Item,
    Track,
    TransitionSettings,
    is_group,
    is_track,
    new_item_id,
)

from .errors import (
    TrackDeckError,
    GroupingError,
    NonConsecutiveSelectionError,
    MixedContainerError,
    CycleViolation,
    LockedItemError,
    CapacityExceeded,
    PlaybackError,
)

from .events import (
    SessionEventType,
    SessionEvent,
    SessionEventEmitter,
)

from .items import ItemTree
from .policy import PlayerSettings, EffectiveSettings, PolicyResolver
from .state import SessionMode, SessionState
from .timers import CancelToken, ManualScheduler
from .engine import ContinuationEngine, PlaybackStatus
from .timeline import (
    DividerMarker,
    MarkerPlacement,
    PlannedEndMarker,
    TimelineProjection,
    TimelineProjector,
    TrackSpan,
    project_timeline,
)
from .reorder import DropPosition, DropTarget, PlaylistEditor, normalize_selection
from .workspaces import Workspace, move_between_workspaces
from .document import PlaylistDocument

__all__ = [
    # Models
    'ActionAfterTrack',
    'DisplayItem',
    'Group',
    'Item',
    'Track',
    'TransitionSettings',
    'is_group',
    'is_track',
    'new_item_id',

    # Errors
    'TrackDeckError',
    'GroupingError',
    'NonConsecutiveSelectionError',
    'MixedContainerError',
    'CycleViolation',
    'LockedItemError',
    'CapacityExceeded',
    'PlaybackError',

    # Event system
    'SessionEventType',
    'SessionEvent',
    'SessionEventEmitter',

    # Scheduler
    'ItemTree',
    'PlayerSettings',
    'EffectiveSettings',
    'PolicyResolver',
    'SessionMode',
    'SessionState',
    'CancelToken',
    'ManualScheduler',
    'ContinuationEngine',
    'PlaybackStatus',

    # Timeline
    'DividerMarker',
    'MarkerPlacement',
    'PlannedEndMarker',
    'TimelineProjection',
    'TimelineProjector',
    'TrackSpan',
    'project_timeline',

    # Editing
    'DropPosition',
    'DropTarget',
    'PlaylistEditor',
    'normalize_selection',
    'Workspace',
    'move_between_workspaces',
    'PlaylistDocument',
]
