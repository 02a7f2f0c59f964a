# t3lang/events.py
"""
定义了引擎在其边界上发出的所有事件，以及一个同步的事件总线。

组件从不依赖隐式的响应式副作用：任何“状态变化通知”都是由执行变更的方法
显式调用 `EventBus.emit` 产生的。
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from t3lang.types import ConflictDecision, TranslationGroup

logger = structlog.get_logger(__name__)


class WorkspaceEvent(BaseModel):
    """所有引擎事件的基类。"""

    model_config = ConfigDict(frozen=True)

    event_type: str = "workspace.event"


class WorkspaceOpened(WorkspaceEvent):
    """当一个工作区被扫描并打开时触发。"""

    event_type: str = "workspace.opened"
    root_path: str
    groups: list[TranslationGroup] = Field(default_factory=list)


class WorkspaceClosed(WorkspaceEvent):
    """当工作区被关闭、所有状态被重置时触发。"""

    event_type: str = "workspace.closed"


class FileSaved(WorkspaceEvent):
    event_type: str = "file.saved"
    path: str


class FileSaveFailed(WorkspaceEvent):
    event_type: str = "file.save_failed"
    path: str
    error: str


class FileLoadFailed(WorkspaceEvent):
    event_type: str = "file.load_failed"
    path: str
    error: str


class FileReloaded(WorkspaceEvent):
    """当一个无本地修改的文件因外部修改而被静默重新加载时触发。"""

    event_type: str = "file.reloaded"
    path: str


class FileDeleted(WorkspaceEvent):
    event_type: str = "file.deleted"
    path: str


class ConflictDetected(WorkspaceEvent):
    """外部修改与本地未保存修改冲突，需要用户做出决策。"""

    event_type: str = "conflict.detected"
    path: str


class ConflictResolved(WorkspaceEvent):
    event_type: str = "conflict.resolved"
    path: str
    decision: ConflictDecision


class DirtyCountChanged(WorkspaceEvent):
    """未保存单元的总数发生变化时触发。"""

    event_type: str = "dirty.count_changed"
    count: int


class HistoryApplied(WorkspaceEvent):
    event_type: str = "history.applied"
    path: str
    action: str  # "undo" | "redo"
    description: str = ""


class GroupEvicted(WorkspaceEvent):
    event_type: str = "cache.group_evicted"
    group_id: str


class GroupOperationCompleted(WorkspaceEvent):
    """一个分组范围的操作（排序、版本转换等）在所有兄弟文件上执行完毕。"""

    event_type: str = "group.operation_completed"
    group_id: str
    operation: str
    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


E = TypeVar("E", bound=WorkspaceEvent)
Handler = Callable[[Any], None]


class EventBus:
    """一个简单的同步发布/订阅总线，按事件类型（含子类）分发。"""

    def __init__(self) -> None:
        self._handlers: list[tuple[type[WorkspaceEvent], Handler]] = []

    def subscribe(
        self, event_cls: type[E], handler: Callable[[E], None]
    ) -> Callable[[], None]:
        """订阅某类事件，返回一个用于取消订阅的函数。"""
        entry = (event_cls, handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    def emit(self, event: WorkspaceEvent) -> None:
        """
        同步地把事件分发给所有匹配的订阅者。
        订阅者抛出的异常会被记录，但不会中断发出事件的引擎操作。
        """
        for event_cls, handler in list(self._handlers):
            if not isinstance(event, event_cls):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "事件订阅者处理失败", event_type=event.event_type
                )
