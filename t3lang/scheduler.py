# t3lang/scheduler.py
"""
本模块提供可取消的定时器，以及基于它的防抖同步队列。

新的排队调用总是先取消之前的定时器再重新计时，而不是叠加多个定时器；
手动触发会取消待执行的定时器并立即运行。
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Any]


class CancelableTimer:
    """同一时刻最多只有一个待触发回调的定时器。"""

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, fn: TimerCallback, delay: float) -> Callable[[], None]:
        """在 delay 秒后调用 fn；先取消之前尚未触发的回调。返回一个取消函数。"""
        self.cancel()
        task = asyncio.create_task(self._run(fn, delay))
        self._task = task

        def cancel() -> None:
            if not task.done():
                task.cancel()

        return cancel

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @staticmethod
    async def _run(fn: TimerCallback, delay: float) -> None:
        await asyncio.sleep(delay)
        result = fn()
        if inspect.isawaitable(result):
            await result


class SyncOperation(BaseModel):
    """一个等待同步到分组内所有语言文件的操作。"""

    group_id: str
    kind: str = "reorder"
    order: list[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)


SyncRunner = Callable[[list[SyncOperation]], Awaitable[list[Any]]]


class SyncQueue:
    """
    防抖的同步操作队列。

    同一分组的操作会合并（后到的覆盖先到的）；任何排队调用都会重置同一个定时器。
    关闭 auto_sync 后，操作只排队、不计时，需要手动触发。
    """

    def __init__(self, runner: SyncRunner, delay: float = 0.5, auto_sync: bool = True):
        self._runner = runner
        self.delay = delay
        self.auto_sync = auto_sync
        self._timer = CancelableTimer()
        self._pending: dict[str, SyncOperation] = {}
        self._active_tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending_operations(self) -> list[SyncOperation]:
        return list(self._pending.values())

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def queue(self, operation: SyncOperation) -> None:
        self._pending.pop(operation.group_id, None)
        self._pending[operation.group_id] = operation
        logger.debug(
            "同步操作已排队", group_id=operation.group_id, kind=operation.kind
        )
        if self.auto_sync:
            self._timer.schedule(self._fire, self.delay)

    def set_auto_sync(self, enabled: bool) -> None:
        self.auto_sync = enabled
        if not enabled:
            self._timer.cancel()
        elif self._pending:
            self._timer.schedule(self._fire, self.delay)

    def _fire(self) -> None:
        # 同步在独立任务中运行，之后的排队调用取消定时器不会打断它
        task = asyncio.create_task(self.flush())
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)
        task.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("后台同步失败，已出队的操作被丢弃", exc_info=error)

    async def trigger_sync(self) -> list[Any]:
        """取消待触发的定时器并立即执行所有待处理操作。"""
        self._timer.cancel()
        return await self.flush()

    async def flush(self) -> list[Any]:
        if not self._pending:
            return []
        operations = list(self._pending.values())
        self._pending.clear()
        logger.info("开始同步", operations=len(operations))
        return await self._runner(operations)

    async def close(self) -> None:
        """取消定时器与正在运行的同步任务，并丢弃待处理操作。"""
        self._timer.cancel()
        self._pending.clear()
        if self._active_tasks:
            for task in list(self._active_tasks):
                task.cancel()
            await asyncio.gather(*self._active_tasks, return_exceptions=True)
            self._active_tasks.clear()
