# tests/unit/test_events.py
"""针对事件总线与自身写入屏蔽集合的单元测试。"""

from unittest.mock import MagicMock

from t3lang.events import EventBus, FileSaved, WorkspaceEvent
from t3lang.suppression import RecentWriteRegistry
from tests.helpers.fakes import ManualClock


def test_subscribers_receive_matching_events_only() -> None:
    bus = EventBus()
    saved, everything = MagicMock(), MagicMock()
    bus.subscribe(FileSaved, saved)
    bus.subscribe(WorkspaceEvent, everything)

    event = FileSaved(path="/ws/a.xlf")
    bus.emit(event)

    saved.assert_called_once_with(event)
    everything.assert_called_once_with(event)


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    handler = MagicMock()
    unsubscribe = bus.subscribe(FileSaved, handler)

    unsubscribe()
    unsubscribe()
    bus.emit(FileSaved(path="/ws/a.xlf"))

    handler.assert_not_called()


def test_failing_subscriber_does_not_break_emit() -> None:
    bus = EventBus()
    after = MagicMock()
    bus.subscribe(FileSaved, MagicMock(side_effect=RuntimeError("boom")))
    bus.subscribe(FileSaved, after)

    bus.emit(FileSaved(path="/ws/a.xlf"))

    after.assert_called_once()


def test_recent_writes_expire_after_window() -> None:
    clock = ManualClock()
    registry = RecentWriteRegistry(window=2.0, timer=clock)
    registry.add("/ws/a.xlf")

    clock.advance(1.0)
    assert "/ws/a.xlf" in registry
    # 再次写入会刷新窗口
    registry.add("/ws/a.xlf")
    clock.advance(1.5)
    assert "/ws/a.xlf" in registry

    clock.advance(1.0)
    assert "/ws/a.xlf" not in registry
    assert len(registry) == 0
