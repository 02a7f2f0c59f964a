# t3lang/conflict.py
"""
本模块包含冲突解析器：消费外部文件事件，并与变更跟踪器、
“最近由本引擎写入”的屏蔽集合交叉比对，决定静默重载、提示冲突或仅通知。

单个路径的状态机：
    Clean  --modify--> 静默重载 --> Clean
    Dirty  --modify--> ConflictPending --{Reload -> Clean | KeepLocal -> Dirty | Dismiss -> ConflictPending}
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

import structlog

from t3lang.change_tracker import ChangeTracker
from t3lang.document_cache import DocumentCache
from t3lang.events import (
    ConflictDetected,
    ConflictResolved,
    EventBus,
    FileDeleted,
    FileReloaded,
    WorkspaceEvent,
)
from t3lang.exceptions import ConflictError, LoadError
from t3lang.suppression import RecentWriteRegistry
from t3lang.types import (
    ConflictDecision,
    ConflictOutcome,
    FileWatchEvent,
    WatchEventType,
)

logger = structlog.get_logger(__name__)


class ConflictResolver:
    """决定如何对待一个外部文件事件；本地与磁盘都已分歧时，绝不替用户做选择。"""

    def __init__(
        self,
        cache: DocumentCache,
        tracker: ChangeTracker,
        suppression: RecentWriteRegistry,
        bus: Optional[EventBus] = None,
        on_reloaded: Optional[Callable[[str], object]] = None,
    ):
        self._cache = cache
        self._tracker = tracker
        self._suppression = suppression
        self._bus = bus
        self._on_reloaded = on_reloaded
        self._pending: set[str] = set()

    @property
    def pending_paths(self) -> list[str]:
        return sorted(self._pending)

    def is_pending(self, path: str) -> bool:
        return path in self._pending

    async def handle_event(self, event: FileWatchEvent) -> ConflictOutcome:
        path = event.path

        if event.type in (WatchEventType.CREATE, WatchEventType.RENAME):
            logger.debug("忽略文件事件", type=event.type.value, path=path)
            return ConflictOutcome.IGNORED

        if path in self._suppression:
            logger.debug("忽略自身写入引发的文件事件", type=event.type.value, path=path)
            return ConflictOutcome.SUPPRESSED

        if event.type is WatchEventType.DELETE:
            if path not in self._cache and not self._tracker.has_unsaved_changes(path):
                return ConflictOutcome.NOT_CACHED
            # 保留脏数据与历史，用户仍可通过保存重新创建文件
            logger.warning("已加载的文件在磁盘上被删除", path=path)
            self._emit(FileDeleted(path=path))
            return ConflictOutcome.DELETED

        if self._cache.get(path) is None:
            return ConflictOutcome.NOT_CACHED

        if self._tracker.has_unsaved_changes(path):
            self._pending.add(path)
            logger.warning("外部修改与本地未保存的修改冲突", path=path)
            self._emit(ConflictDetected(path=path))
            return ConflictOutcome.CONFLICT_PENDING

        if not await self._reload(path):
            return ConflictOutcome.RELOAD_FAILED
        logger.info("文件在外部被修改，已静默重新加载", path=path)
        self._emit(FileReloaded(path=path))
        return ConflictOutcome.RELOADED

    async def resolve(self, path: str, decision: ConflictDecision) -> ConflictOutcome:
        """
        应用用户对一个待决冲突的决策。

        Raises:
            ConflictError: 该路径没有待决冲突。
        """
        if path not in self._pending:
            raise ConflictError(path, "该文件没有待处理的冲突")

        decision = ConflictDecision(decision)
        if decision is ConflictDecision.DISMISS:
            logger.info("冲突决策已推迟", path=path)
            return ConflictOutcome.CONFLICT_PENDING

        self._pending.discard(path)
        self._emit(ConflictResolved(path=path, decision=decision))

        if decision is ConflictDecision.KEEP_LOCAL:
            logger.info("保留本地修改，忽略外部修改", path=path)
            return ConflictOutcome.KEPT_LOCAL

        self._tracker.clear_changes(path)
        if not await self._reload(path):
            return ConflictOutcome.RELOAD_FAILED
        logger.info("已丢弃本地修改并从磁盘重新加载", path=path)
        self._emit(FileReloaded(path=path))
        return ConflictOutcome.RELOADED

    async def _reload(self, path: str) -> bool:
        try:
            await self._cache.load_file(path, force=True)
        except LoadError:
            # 缓存保留旧条目；失败已由缓存记录
            return False
        finally:
            if self._on_reloaded is not None:
                self._on_reloaded(path)
        return True

    def forget(self, path: str) -> None:
        self._pending.discard(path)

    def clear(self) -> None:
        self._pending.clear()

    def _emit(self, event: WorkspaceEvent) -> None:
        if self._bus is not None:
            self._bus.emit(event)
