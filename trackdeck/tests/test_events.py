"""Tests for the session event system."""

from unittest.mock import Mock

from trackdeck.session import SessionEvent, SessionEventEmitter, SessionEventType


class TestSessionEvent:
    def test_str_with_data(self):
        event = SessionEvent(SessionEventType.TRACK_STARTED, data={"track_id": "a"})
        assert str(event) == "SessionEvent(TRACK_STARTED, track_id=a)"

    def test_str_without_data(self):
        assert str(SessionEvent(SessionEventType.SESSION_END)) == "SessionEvent(SESSION_END)"


class TestSessionEventEmitter:
    def test_subscribe_and_emit(self):
        emitter = SessionEventEmitter()
        callback = Mock()
        emitter.subscribe(SessionEventType.TRACK_ENDED, callback)

        event = SessionEvent(SessionEventType.TRACK_ENDED, data={"track_id": "a"})
        emitter.emit(event)

        callback.assert_called_once_with(event)
        assert event.timestamp is not None

    def test_other_types_not_delivered(self):
        emitter = SessionEventEmitter()
        callback = Mock()
        emitter.subscribe(SessionEventType.TRACK_ENDED, callback)
        emitter.emit(SessionEvent(SessionEventType.TRACK_STARTED))
        callback.assert_not_called()

    def test_duplicate_subscription_ignored(self):
        emitter = SessionEventEmitter()
        callback = Mock()
        emitter.subscribe(SessionEventType.ERROR, callback)
        emitter.subscribe(SessionEventType.ERROR, callback)
        emitter.emit(SessionEvent(SessionEventType.ERROR))
        assert callback.call_count == 1

    def test_subscribe_all(self):
        emitter = SessionEventEmitter()
        callback = Mock()
        emitter.subscribe_all(callback)
        for event_type in SessionEventType:
            emitter.emit(SessionEvent(event_type))
        assert callback.call_count == len(SessionEventType)

    def test_unsubscribe_and_clear(self):
        emitter = SessionEventEmitter()
        first, second = Mock(), Mock()
        emitter.subscribe(SessionEventType.SESSION_START, first)
        emitter.subscribe(SessionEventType.SESSION_START, second)
        emitter.unsubscribe(SessionEventType.SESSION_START, first)
        emitter.emit(SessionEvent(SessionEventType.SESSION_START))
        first.assert_not_called()
        second.assert_called_once()

        emitter.clear_all()
        emitter.emit(SessionEvent(SessionEventType.SESSION_START))
        second.assert_called_once()

    def test_failing_callback_does_not_block_others(self):
        emitter = SessionEventEmitter()
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        emitter.subscribe(SessionEventType.TRACK_SKIPPED, failing)
        emitter.subscribe(SessionEventType.TRACK_SKIPPED, healthy)
        emitter.emit(SessionEvent(SessionEventType.TRACK_SKIPPED))
        healthy.assert_called_once()

    def test_preset_timestamp_kept(self):
        emitter = SessionEventEmitter()
        event = SessionEvent(SessionEventType.PAUSE_ELAPSED, timestamp=12.0)
        emitter.emit(event)
        assert event.timestamp == 12.0
