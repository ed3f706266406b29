"""Builders shared by the scheduler tests."""

from trackdeck.session import (
    ContinuationEngine,
    Group,
    ItemTree,
    ManualScheduler,
    PlayerSettings,
    PolicyResolver,
    SessionState,
    Track,
    TransitionSettings,
)
from trackdeck.engine.simulated import SimulatedAudioBackend


def _settings(action, pause):
    if action is None and pause is None:
        return None
    return TransitionSettings(action_after_track=action, pause_duration_seconds=pause)


def make_track(track_id, duration=None, action=None, pause=None):
    """Track whose id doubles as its name; optional transition override."""
    return Track(
        id=track_id,
        path=f"/music/{track_id}.mp3",
        name=track_id,
        duration=duration,
        settings=_settings(action, pause),
    )


def make_group(group_id, *items, action=None, pause=None):
    return Group(id=group_id, name=group_id, items=tuple(items), settings=_settings(action, pause))


def ids(items):
    return [item.id for item in items]


class Harness:
    """Tree, state, policy, simulated audio and engine wired together."""

    def __init__(self, items, settings=None, failing_paths=None):
        self.tree = ItemTree(items)
        self.state = SessionState(self.tree)
        self.settings = settings or PlayerSettings()
        self.policy = PolicyResolver(self.tree, self.settings)
        self.scheduler = ManualScheduler()
        self.audio = SimulatedAudioBackend(self.scheduler, failing_paths=failing_paths)
        self.engine = ContinuationEngine(self.tree, self.state, self.policy, self.audio, self.scheduler)
        self.events = []
        self.engine.events.subscribe_all(self.events.append)

    @property
    def current(self):
        return self.state.current_track_id

    def event_names(self):
        return [e.event_type.name for e in self.events]
