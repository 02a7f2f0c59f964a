# t3lang/save_coordinator.py
"""
本模块包含保存协调器：把未保存的修改合并进文档快照，调用外部编解码器与
文件系统写入，然后把结果同步回文档缓存、变更跟踪器与历史记录。

一次保存要么完整提交，要么什么都不改变：写入失败时脏数据与缓存保持原样。
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable, Sequence
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from t3lang.change_tracker import ChangeTracker
from t3lang.config import StaticSettingsSource
from t3lang.document_cache import DocumentCache, build_file_data
from t3lang.events import (
    EventBus,
    FileSaved,
    FileSaveFailed,
    GroupOperationCompleted,
)
from t3lang.exceptions import FileNotCachedError, SaveError
from t3lang.history import HistoryManager
from t3lang.interfaces import FileSystem, SettingsSource, XliffCodec
from t3lang.patching import apply_changes, derive_units, overlay_units, unmatched_changes
from t3lang.suppression import RecentWriteRegistry
from t3lang.types import FileData, XliffDocument

logger = structlog.get_logger(__name__)

DocumentTransform = Callable[[XliffDocument], XliffDocument]
SiblingTransform = Callable[[FileData, XliffDocument], XliffDocument]


class BatchSaveReport(BaseModel):
    """save-all 的结果：每个路径独立成功或失败。"""

    saved: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class GroupOperationReport(BaseModel):
    """分组范围操作在每个兄弟文件上的执行结果。"""

    group_id: str
    operation: str
    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class SaveCoordinator:
    """协调文件保存，是唯一向磁盘写入文档的组件。"""

    def __init__(
        self,
        fs: FileSystem,
        codec: XliffCodec,
        cache: DocumentCache,
        tracker: ChangeTracker,
        history: HistoryManager,
        suppression: RecentWriteRegistry,
        settings: Optional[SettingsSource] = None,
        bus: Optional[EventBus] = None,
    ):
        self._fs = fs
        self._codec = codec
        self._cache = cache
        self._tracker = tracker
        self._history = history
        self._suppression = suppression
        self._settings: SettingsSource = settings or StaticSettingsSource()
        self._bus = bus
        self._in_flight: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ---------- 查询 ----------

    def is_saving(self, path: str) -> bool:
        return self._in_flight.get(path, 0) > 0

    @property
    def in_flight_paths(self) -> list[str]:
        return [path for path, count in self._in_flight.items() if count > 0]

    def is_pinned(self, path: str) -> bool:
        """有未保存修改或正在保存的路径不能被淘汰。"""
        return self._tracker.has_unsaved_changes(path) or self.is_saving(path)

    def refresh_view(self, path: str) -> Optional[FileData]:
        """按“持久化文档 + 未保存修改”重新生成工作视图并整体替换缓存条目。"""
        data = self._cache.get(path)
        if data is None:
            return None
        units = overlay_units(
            derive_units(data.xliff_data, data.is_source_only),
            self._tracker.iter_changes(path),
        )
        refreshed = data.model_copy(update={"units": units})
        self._cache.put(path, refreshed)
        return refreshed

    # ---------- 保存 ----------

    async def save(
        self, path: str, transform: Optional[DocumentTransform] = None
    ) -> FileData:
        """
        保存单个文件。

        Args:
            path: 已缓存文件的路径。
            transform: 在应用脏数据之后、序列化之前对快照做的额外变换
                （分组操作使用，例如重排单元或转换版本）。

        Raises:
            FileNotCachedError: 文件尚未加载。
            SaveError: 序列化或写入失败；此时脏数据与缓存保持原样。
        """
        lock = self._locks.setdefault(path, asyncio.Lock())
        async with lock:
            return await self._save_locked(path, transform)

    async def _save_locked(
        self, path: str, transform: Optional[DocumentTransform]
    ) -> FileData:
        current = self._cache.get(path)
        if current is None:
            raise FileNotCachedError(path)

        captured = self._tracker.iter_changes(path)
        if not captured and transform is None:
            logger.debug("文件没有未保存的修改，跳过保存", path=path)
            return current

        snapshot = apply_changes(current.xliff_data, captured)
        if transform is not None:
            snapshot = transform(snapshot)
        orphans = unmatched_changes(current.xliff_data, captured)
        if orphans:
            logger.warning(
                "部分修改在文档中找不到对应单元",
                path=path,
                unit_ids=[change.unit_id for change in orphans],
            )

        await self._write(path, snapshot)

        self._tracker.rebase(path, captured)
        saved = build_file_data(path, snapshot)
        remaining = self._tracker.iter_changes(path)
        saved = saved.model_copy(
            update={"units": overlay_units(saved.units, remaining)}
        )
        self._cache.put(path, saved)
        self._history.commit(path, [c for c in captured if c not in orphans])

        logger.info("文件已保存", path=path, changes=len(captured))
        if self._bus is not None:
            self._bus.emit(FileSaved(path=path))
        return saved

    async def create(self, path: str, document: XliffDocument) -> FileData:
        """把一个新文档写到一个尚不存在的路径，并放入缓存。"""
        if await self._fs.exists(path):
            error = SaveError(path, "目标文件已存在")
            self._report_failure(path, error)
            raise error
        await self._write(path, document)
        data = build_file_data(path, document)
        self._cache.put(path, data)
        logger.info("新文件已创建", path=path)
        if self._bus is not None:
            self._bus.emit(FileSaved(path=path))
        return data

    async def _write(self, path: str, document: XliffDocument) -> None:
        settings = self._settings.get_format_settings()
        self._in_flight[path] = self._in_flight.get(path, 0) + 1
        try:
            try:
                text = await asyncio.to_thread(
                    self._codec.write, document, format=True, indent=settings.indent
                )
            except Exception as e:
                raise SaveError(path, f"序列化失败: {e}") from e

            # 必须在写入前登记，监听器可能在写入返回前就投递事件
            self._suppression.add(path)
            try:
                await self._fs.write_atomic(path, text)
            except OSError as e:
                raise SaveError(path, f"写入失败: {e}") from e
        except SaveError as e:
            self._report_failure(path, e)
            raise
        finally:
            self._in_flight[path] -= 1
            if self._in_flight[path] <= 0:
                del self._in_flight[path]

    def _report_failure(self, path: str, error: SaveError) -> None:
        logger.error("文件保存失败", path=path, error=str(error))
        if self._bus is not None:
            self._bus.emit(FileSaveFailed(path=path, error=str(error)))

    async def save_all(self) -> BatchSaveReport:
        """并行保存所有脏文件；单个文件的失败不影响其他文件。"""
        paths = self._tracker.get_dirty_paths()
        results = await asyncio.gather(
            *(self.save(path) for path in paths), return_exceptions=True
        )
        report = BatchSaveReport()
        for path, result in zip(paths, results):
            if isinstance(result, (SaveError, FileNotCachedError)):
                report.failed[path] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                report.saved.append(path)
        logger.info(
            "批量保存完成", saved=len(report.saved), failed=len(report.failed)
        )
        return report

    async def save_group(
        self,
        group_id: str,
        operation: str,
        compute: SiblingTransform,
        paths: Optional[Sequence[str]] = None,
    ) -> GroupOperationReport:
        """
        对分组内的每个语言文件计算新文档并各自保存。

        先加载所有兄弟文件，再并行保存；加载失败或保存失败的兄弟文件记录在报告中，
        且它们的缓存条目不会被修改。
        """
        load_report = await self._cache.load_group(group_id)
        report = GroupOperationReport(
            group_id=group_id, operation=operation, failed=dict(load_report.failed)
        )

        targets = [
            path
            for path in (paths if paths is not None else load_report.loaded)
            if path not in report.failed
        ]
        jobs = []
        for path in targets:
            data = self._cache.get(path)
            if data is None:
                report.failed[path] = "文件未缓存"
                continue
            jobs.append((path, self.save(path, functools.partial(compute, data))))

        results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
        for (path, _), result in zip(jobs, results):
            if isinstance(result, (SaveError, FileNotCachedError)):
                report.failed[path] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                report.succeeded.append(path)

        logger.info(
            "分组操作完成",
            group_id=group_id,
            operation=operation,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        if self._bus is not None:
            self._bus.emit(
                GroupOperationCompleted(
                    group_id=group_id,
                    operation=operation,
                    succeeded=report.succeeded,
                    failed=report.failed,
                )
            )
        return report
