# tests/unit/test_conflict.py
"""
针对 `t3lang.conflict` 模块的单元测试。

验证冲突门控（无修改时静默重载、有修改时等待决策且不改动缓存）、
自身写入屏蔽窗口，以及三种决策的状态转换。
"""

import pytest
import pytest_asyncio

from t3lang.events import ConflictDetected, ConflictResolved, FileDeleted, FileReloaded
from t3lang.exceptions import ConflictError
from t3lang.types import (
    ConflictDecision,
    ConflictOutcome,
    FileWatchEvent,
    UnitField,
    WatchEventType,
)
from t3lang.workspace import Workspace
from tests.helpers.fakes import (
    EventRecorder,
    InMemoryFileSystem,
    ManualClock,
    dump,
    make_document,
    make_workspace,
)

GERMAN = "/ws/de.labels.xlf"


def modify(path: str = GERMAN) -> FileWatchEvent:
    return FileWatchEvent(type=WatchEventType.MODIFY, path=path)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest_asyncio.fixture
async def env(clock: ManualClock) -> tuple[Workspace, InMemoryFileSystem]:
    workspace, fs, _ = make_workspace(
        {GERMAN: make_document([("a", "Hello", "")])}, clock=clock
    )
    await workspace.open("/ws")
    return workspace, fs


def write_externally(fs: InMemoryFileSystem, target: str) -> None:
    fs.files[GERMAN] = dump(make_document([("a", "Hello", target)]))


@pytest.mark.asyncio
async def test_clean_file_is_reloaded_silently(env) -> None:
    workspace, fs = env
    recorder = EventRecorder(workspace.bus)
    write_externally(fs, "Extern")

    outcome = await workspace.handle_watch_event(modify())

    assert outcome is ConflictOutcome.RELOADED
    assert workspace.get_file(GERMAN).units[0].target == "Extern"
    assert [e.path for e in recorder.of_type(FileReloaded)] == [GERMAN]
    assert recorder.of_type(ConflictDetected) == []


@pytest.mark.asyncio
async def test_dirty_file_raises_conflict_without_touching_cache(env) -> None:
    """测试有未保存修改时只提示冲突，在做出决策前缓存条目保持不变。"""
    workspace, fs = env
    recorder = EventRecorder(workspace.bus)
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")
    before = workspace.get_file(GERMAN)
    write_externally(fs, "Extern")

    outcome = await workspace.handle_watch_event(modify())

    assert outcome is ConflictOutcome.CONFLICT_PENDING
    assert workspace.get_file(GERMAN) is before
    assert workspace.resolver.is_pending(GERMAN)
    assert [e.path for e in recorder.of_type(ConflictDetected)] == [GERMAN]

    # 再次收到修改事件仍然停留在待决状态
    assert await workspace.handle_watch_event(modify()) is ConflictOutcome.CONFLICT_PENDING
    assert len(recorder.of_type(ConflictDetected)) == 2


@pytest.mark.asyncio
async def test_self_write_is_suppressed_within_window(env, clock: ManualClock) -> None:
    """测试保存后窗口期内的修改事件被忽略，窗口过后恢复正常处理。"""
    workspace, fs = env
    recorder = EventRecorder(workspace.bus)
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Hallo")
    await workspace.save(GERMAN)

    clock.advance(1.5)
    assert await workspace.handle_watch_event(modify()) is ConflictOutcome.SUPPRESSED
    assert recorder.of_type(FileReloaded) == []
    assert recorder.of_type(ConflictDetected) == []

    clock.advance(1.0)
    assert await workspace.handle_watch_event(modify()) is ConflictOutcome.RELOADED


@pytest.mark.asyncio
async def test_events_for_uncached_paths_are_ignored(env) -> None:
    workspace, _ = env
    assert (
        await workspace.handle_watch_event(modify("/ws/other.xlf"))
        is ConflictOutcome.NOT_CACHED
    )


@pytest.mark.asyncio
async def test_create_and_rename_events_are_ignored(env) -> None:
    workspace, _ = env
    for event_type in (WatchEventType.CREATE, WatchEventType.RENAME):
        event = FileWatchEvent(type=event_type, path=GERMAN)
        assert await workspace.handle_watch_event(event) is ConflictOutcome.IGNORED


@pytest.mark.asyncio
async def test_delete_keeps_dirty_state(env) -> None:
    workspace, _ = env
    recorder = EventRecorder(workspace.bus)
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")

    outcome = await workspace.handle_watch_event(
        FileWatchEvent(type=WatchEventType.DELETE, path=GERMAN)
    )

    assert outcome is ConflictOutcome.DELETED
    assert workspace.has_unsaved_changes(GERMAN)
    assert [e.path for e in recorder.of_type(FileDeleted)] == [GERMAN]


@pytest.mark.asyncio
async def test_reload_decision_discards_local_changes(env) -> None:
    workspace, fs = env
    recorder = EventRecorder(workspace.bus)
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")
    write_externally(fs, "Extern")
    await workspace.handle_watch_event(modify())

    outcome = await workspace.resolve_conflict(GERMAN, ConflictDecision.RELOAD)

    assert outcome is ConflictOutcome.RELOADED
    assert workspace.has_unsaved_changes(GERMAN) is False
    assert workspace.get_file(GERMAN).units[0].target == "Extern"
    assert workspace.resolver.is_pending(GERMAN) is False
    assert [e.decision for e in recorder.of_type(ConflictResolved)] == [
        ConflictDecision.RELOAD
    ]


@pytest.mark.asyncio
async def test_keep_local_decision_keeps_dirty_state(env) -> None:
    workspace, fs = env
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")
    write_externally(fs, "Extern")
    await workspace.handle_watch_event(modify())

    outcome = await workspace.resolve_conflict(GERMAN, "keep_local")

    assert outcome is ConflictOutcome.KEPT_LOCAL
    assert workspace.has_unsaved_changes(GERMAN)
    assert workspace.get_file(GERMAN).units[0].target == "Lokal"
    assert workspace.resolver.is_pending(GERMAN) is False


@pytest.mark.asyncio
async def test_dismiss_decision_keeps_conflict_pending(env) -> None:
    workspace, fs = env
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")
    write_externally(fs, "Extern")
    await workspace.handle_watch_event(modify())

    outcome = await workspace.resolve_conflict(GERMAN, ConflictDecision.DISMISS)

    assert outcome is ConflictOutcome.CONFLICT_PENDING
    assert workspace.resolver.pending_paths == [GERMAN]
    assert workspace.get_file(GERMAN).units[0].target == "Lokal"


@pytest.mark.asyncio
async def test_decision_without_pending_conflict_raises(env) -> None:
    workspace, _ = env
    with pytest.raises(ConflictError):
        await workspace.resolve_conflict(GERMAN, ConflictDecision.RELOAD)


@pytest.mark.asyncio
async def test_failed_silent_reload_keeps_old_entry(env) -> None:
    workspace, fs = env
    before = workspace.get_file(GERMAN)
    fs.files[GERMAN] = "{broken"

    outcome = await workspace.handle_watch_event(modify())

    assert outcome is ConflictOutcome.RELOAD_FAILED
    assert workspace.get_file(GERMAN).units == before.units


@pytest.mark.asyncio
async def test_discarding_all_changes_drops_pending_conflict(env) -> None:
    workspace, fs = env
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")
    write_externally(fs, "Extern")
    await workspace.handle_watch_event(modify())

    workspace.discard_changes(GERMAN)

    assert workspace.resolver.is_pending(GERMAN) is False
    with pytest.raises(ConflictError):
        await workspace.resolve_conflict(GERMAN, ConflictDecision.KEEP_LOCAL)


@pytest.mark.asyncio
async def test_saving_local_changes_drops_pending_conflict(env) -> None:
    """测试保存后本地状态覆盖了外部修改，待决冲突随之消失。"""
    workspace, fs = env
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")
    write_externally(fs, "Extern")
    assert await workspace.handle_watch_event(modify()) is ConflictOutcome.CONFLICT_PENDING

    await workspace.save(GERMAN)

    assert workspace.has_unsaved_changes(GERMAN) is False
    assert workspace.resolver.is_pending(GERMAN) is False
    with pytest.raises(ConflictError):
        await workspace.resolve_conflict(GERMAN, ConflictDecision.RELOAD)


@pytest.mark.asyncio
async def test_save_all_drops_pending_conflicts(env) -> None:
    workspace, fs = env
    workspace.edit_unit(GERMAN, "a", UnitField.TARGET, "Lokal")
    write_externally(fs, "Extern")
    await workspace.handle_watch_event(modify())

    report = await workspace.save_all()

    assert report.saved == [GERMAN]
    assert workspace.resolver.pending_paths == []
