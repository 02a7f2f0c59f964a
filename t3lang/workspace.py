# t3lang/workspace.py
"""
本模块提供工作区门面 `Workspace`，负责装配并协调五个核心组件：
文档缓存、变更跟踪器、历史管理器、保存协调器与冲突解析器。

组件之间只通过文件路径与分组 ID 互相引用，不持有彼此内部映射的引用。
所有状态变更都是同步、不可交错的；只有文件系统与编解码器调用会挂起。
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from typing import Any, Optional

import structlog

from t3lang.change_tracker import ChangeTracker
from t3lang.config import StaticSettingsSource, T3LangConfig
from t3lang.conflict import ConflictResolver
from t3lang.coverage import collect_missing_translations, compute_group_coverage
from t3lang.document_cache import DocumentCache, GroupLoadReport
from t3lang.events import (
    EventBus,
    HistoryApplied,
    WorkspaceClosed,
    WorkspaceOpened,
)
from t3lang.exceptions import FileNotCachedError, T3LangError, UnitNotFoundError
from t3lang.history import HistoryManager, describe_changes
from t3lang.interfaces import FileSystem, FileWatcher, SettingsSource, XliffCodec
from t3lang.patching import (
    append_unit,
    make_language_variant,
    remove_unit,
    reorder_units,
    set_version,
)
from t3lang.save_coordinator import (
    BatchSaveReport,
    GroupOperationReport,
    SaveCoordinator,
)
from t3lang.scanner import scan_workspace
from t3lang.scheduler import SyncOperation, SyncQueue
from t3lang.suppression import RecentWriteRegistry
from t3lang.types import (
    ConflictDecision,
    ConflictOutcome,
    FileData,
    FileMetadata,
    FileWatchEvent,
    GroupCoverage,
    HistoryEntry,
    MissingTranslation,
    TranslationUnit,
    UnitChange,
    UnitField,
    WorkspaceScan,
    XliffVersion,
)
from t3lang.utils import T3_FILE_PATTERN, build_t3_file_name, validate_lang_code

logger = structlog.get_logger(__name__)


def _find_unit(data: FileData, unit_id: str) -> Optional[TranslationUnit]:
    return next((unit for unit in data.units if unit.id == unit_id), None)


class Workspace:
    """一个本地编辑器实例所打开的工作区。"""

    def __init__(
        self,
        fs: FileSystem,
        codec: XliffCodec,
        config: Optional[T3LangConfig] = None,
        settings: Optional[SettingsSource] = None,
        watcher: Optional[FileWatcher] = None,
        bus: Optional[EventBus] = None,
        suppression: Optional[RecentWriteRegistry] = None,
    ):
        self.config = config or T3LangConfig()
        self.bus = bus or EventBus()
        self._fs = fs
        self._watcher = watcher
        self._watching = False
        self.root_path: Optional[str] = None

        self.tracker = ChangeTracker(self.bus)
        self.history = HistoryManager(self.config.max_history_entries)
        self.suppression = suppression or RecentWriteRegistry(
            self.config.suppression_window
        )
        self.cache = DocumentCache(
            fs, codec, max_groups=self.config.max_cached_groups, bus=self.bus
        )
        self.saver = SaveCoordinator(
            fs,
            codec,
            self.cache,
            self.tracker,
            self.history,
            self.suppression,
            settings=settings or StaticSettingsSource(self.config.format),
            bus=self.bus,
        )
        self.cache.is_pinned = self.saver.is_pinned
        self.resolver = ConflictResolver(
            self.cache,
            self.tracker,
            self.suppression,
            bus=self.bus,
            on_reloaded=self.saver.refresh_view,
        )
        self.sync_queue = SyncQueue(
            self._run_sync,
            delay=self.config.sync_delay,
            auto_sync=self.config.auto_sync,
        )

    # ---------- 生命周期 ----------

    async def open(self, root_path: str) -> WorkspaceScan:
        """重置所有状态，扫描目录，启动监听并加载第一个分组。"""
        await self.close()
        scan = await scan_workspace(self._fs, root_path)
        self.root_path = root_path
        self.cache.register_groups(scan.groups)

        if self._watcher is not None:
            await self._watcher.start(root_path, self.handle_watch_event)
            self._watching = True

        if scan.groups:
            await self.load_group(scan.groups[0].id)

        logger.info("工作区已打开", root=root_path, groups=len(scan.groups))
        self.bus.emit(WorkspaceOpened(root_path=root_path, groups=self.cache.groups))
        return scan

    async def close(self) -> None:
        """
        无条件地清空所有按路径保存的状态。
        这是一个完全重置的边界，而不是优雅地排空。
        """
        was_open = self.root_path is not None
        await self.sync_queue.close()
        if self._watcher is not None and self._watching:
            await self._watcher.stop()
            self._watching = False

        self.tracker.clear_all()
        self.history.clear_history()
        self.cache.clear()
        self.resolver.clear()
        self.suppression.clear()
        self.root_path = None

        if was_open:
            logger.info("工作区已关闭")
            self.bus.emit(WorkspaceClosed())

    # ---------- 读取 ----------

    async def load_group(self, group_id: str) -> GroupLoadReport:
        report = await self.cache.load_group(group_id)
        for path in report.loaded:
            self.saver.refresh_view(path)
        self._refresh_coverage(group_id)
        return report

    async def _ensure_loaded(self, path: str) -> FileData:
        """加载一个文件；属于已注册分组时整组加载，使缓存与 LRU 列表保持一致。"""
        group_id = self.cache.group_for_path(path)
        if group_id is not None:
            await self.load_group(group_id)
        return await self.cache.load_file(path)

    def get_file(self, path: str) -> Optional[FileData]:
        return self.cache.get(path)

    def _require(self, path: str) -> FileData:
        data = self.cache.get(path)
        if data is None:
            raise FileNotCachedError(path)
        return data

    @property
    def dirty_count(self) -> int:
        return self.tracker.dirty_count()

    def has_unsaved_changes(self, path: Optional[str] = None) -> bool:
        return self.tracker.has_unsaved_changes(path)

    # ---------- 编辑 ----------

    def edit_unit(
        self, path: str, unit_id: str, field: UnitField | str, value: str
    ) -> FileData:
        """
        修改工作视图中的一个字段。unit_id 为视图中当前显示的 id。

        Raises:
            FileNotCachedError: 文件尚未加载。
            UnitNotFoundError: 视图中没有该单元。
            ValueError: 重命名为一个已存在的 id。
        """
        field = UnitField(field)
        data = self._require(path)
        unit = _find_unit(data, unit_id)
        key = self.tracker.resolve_unit_key(path, unit_id)
        if unit is None or key is None:
            raise UnitNotFoundError(unit_id)
        if field is UnitField.ID and value != unit_id and _find_unit(data, value):
            raise ValueError(f"单元 id '{value}' 已存在")

        self.tracker.track_change(
            path,
            UnitChange(
                unit_id=key,
                field=field,
                old_value=getattr(unit, field.value),
                new_value=value,
            ),
        )
        # 用户的编辑与撤销/重做登记的值分叉，恢复线性历史语义
        self.history.replays.unmark(path, key, field)
        return self.saver.refresh_view(path) or data

    def discard_changes(self, path: str, unit_id: Optional[str] = None) -> None:
        """丢弃一个单元（视图 id）或整个文件的未保存修改。"""
        if unit_id is None:
            self.tracker.clear_changes(path)
            self.history.replays.clear(path)
            # 文件已无本地修改，待决冲突随之失效
            self.resolver.forget(path)
        else:
            key = self.tracker.resolve_unit_key(path, unit_id)
            if key is None:
                raise UnitNotFoundError(unit_id)
            self.tracker.clear_changes(path, key)
        self.saver.refresh_view(path)

    # ---------- 保存 ----------

    async def save(self, path: str) -> FileData:
        data = await self.saver.save(path)
        self._after_save([path])
        return data

    async def save_all(self) -> BatchSaveReport:
        report = await self.saver.save_all()
        self._after_save(report.saved)
        return report

    def _after_save(self, paths: Sequence[str]) -> None:
        for path in paths:
            # 本地状态已写入磁盘，覆盖了外部修改
            if not self.tracker.has_unsaved_changes(path):
                self.resolver.forget(path)
            self._refresh_coverage_for(path)

    # ---------- 撤销 / 重做 ----------

    def can_undo(self, path: str) -> bool:
        return self.history.can_undo(path)

    def can_redo(self, path: str) -> bool:
        return self.history.can_redo(path)

    def undo_description(self, path: str) -> str:
        return self.history.undo_description(path)

    def redo_description(self, path: str) -> str:
        return self.history.redo_description(path)

    async def undo(self, path: str) -> Optional[HistoryEntry]:
        """撤销最近一次提交：把 old_value 作为新的未保存修改登记到视图上。"""
        entry = self.history.undo(path)
        if entry is None:
            return None
        await self._replay(path, entry, undo=True)
        return entry

    async def redo(self, path: str) -> Optional[HistoryEntry]:
        entry = self.history.redo(path)
        if entry is None:
            return None
        await self._replay(path, entry, undo=False)
        return entry

    async def _replay(self, path: str, entry: HistoryEntry, undo: bool) -> None:
        # 历史按路径保存，可能比缓存条目活得更久；经由分组重新加载以回到 LRU 列表
        await self._ensure_loaded(path)
        data = self.saver.refresh_view(path) or self._require(path)

        renames = {
            change.unit_id: change.new_value
            for change in entry.changes
            if change.field is UnitField.ID
        }

        # 先解析出所有目标单元，再统一登记，避免批次内的重命名影响后续查找
        planned: list[UnitChange] = []
        for change in entry.changes:
            view_id = renames.get(change.unit_id, change.unit_id) if undo else change.unit_id
            unit = _find_unit(data, view_id)
            key = self.tracker.resolve_unit_key(path, view_id)
            if unit is None or key is None:
                logger.warning(
                    "历史条目中的单元已不存在，跳过",
                    path=path,
                    unit_id=view_id,
                    field=change.field.value,
                )
                continue
            planned.append(
                UnitChange(
                    unit_id=key,
                    field=change.field,
                    old_value=getattr(unit, change.field.value),
                    new_value=change.old_value if undo else change.new_value,
                )
            )

        for change in planned:
            self.tracker.track_change(path, change)
            self.history.replays.mark(path, change)
        self.saver.refresh_view(path)

        action = "undo" if undo else "redo"
        description = describe_changes(entry.changes)
        logger.info("历史操作已应用", path=path, action=action, description=description)
        self.bus.emit(HistoryApplied(path=path, action=action, description=description))

    # ---------- 外部修改 ----------

    async def handle_watch_event(self, event: FileWatchEvent) -> ConflictOutcome:
        outcome = await self.resolver.handle_event(event)
        if outcome is ConflictOutcome.RELOADED:
            self._refresh_coverage_for(event.path)
        return outcome

    async def resolve_conflict(
        self, path: str, decision: ConflictDecision | str
    ) -> ConflictOutcome:
        outcome = await self.resolver.resolve(path, ConflictDecision(decision))
        if outcome is ConflictOutcome.RELOADED:
            self.history.replays.clear(path)
            self._refresh_coverage_for(path)
        return outcome

    # ---------- 分组操作 ----------

    async def reorder_group(
        self, group_id: str, order: Sequence[str]
    ) -> GroupOperationReport:
        """按给定 id 顺序重排分组内每个语言文件的单元。"""
        order = list(order)
        report = await self.saver.save_group(
            group_id, "reorder", lambda data, doc: reorder_units(doc, order)
        )
        self._after_save(report.succeeded)
        return report

    async def convert_group_version(
        self, group_id: str, version: XliffVersion | str
    ) -> GroupOperationReport:
        target = XliffVersion(version).value
        report = await self.saver.save_group(
            group_id, "convert_version", lambda data, doc: set_version(doc, target)
        )
        self._after_save(report.succeeded)
        return report

    async def add_unit(
        self, group_id: str, unit_id: str, source: str = ""
    ) -> GroupOperationReport:
        """向分组内所有语言文件追加一个新单元（译文为空）。"""
        await self.load_group(group_id)
        for path in self.cache.get_group(group_id).paths():
            data = self.cache.get(path)
            if data is not None and _find_unit(data, unit_id) is not None:
                raise ValueError(f"单元 id '{unit_id}' 已存在于 {path}")

        report = await self.saver.save_group(
            group_id,
            "add_unit",
            lambda data, doc: append_unit(
                doc, unit_id, source, with_target=not data.is_source_only
            ),
        )
        self._after_save(report.succeeded)
        return report

    async def delete_unit(self, group_id: str, unit_id: str) -> GroupOperationReport:
        report = await self.saver.save_group(
            group_id, "delete_unit", lambda data, doc: remove_unit(doc, unit_id)
        )
        self._after_save(report.succeeded)
        return report

    async def add_language(self, group_id: str, code: str) -> FileData:
        """
        以源文件为模板为分组新增一个语言文件 `<code>.<base>.xlf`。

        Raises:
            ValueError: 语言代码无效、语言已存在，或分组没有源文件。
            SaveError: 目标文件已存在或写入失败。
        """
        group = self.cache.get_group(group_id)
        file_name = build_t3_file_name(code, group.base_name)
        if not T3_FILE_PATTERN.match(file_name):
            raise ValueError(f"语言代码 '{code}' 必须是两个小写字母")
        validate_lang_code(code)
        if code in group.files:
            raise ValueError(f"分组 '{group_id}' 已包含语言 '{code}'")
        if group.source_file is None:
            raise ValueError(f"分组 '{group_id}' 没有源文件")

        source = await self._ensure_loaded(group.source_file.path)
        path = os.path.join(group.directory, file_name)
        data = await self.saver.create(path, make_language_variant(source.xliff_data, code))

        self.cache.add_file_to_group(
            group_id,
            FileMetadata(
                path=path,
                name=file_name,
                language=code,
                base_name=group.base_name,
                directory=group.directory,
            ),
        )
        self._refresh_coverage(group_id)
        logger.info("已新增语言文件", group_id=group_id, language=code, path=path)
        return data

    def queue_reorder(self, group_id: str, order: Sequence[str]) -> None:
        """把一次重排放入防抖队列，稍后同步到分组内所有语言文件。"""
        self.sync_queue.queue(SyncOperation(group_id=group_id, order=list(order)))

    async def trigger_sync(self) -> list[Any]:
        return await self.sync_queue.trigger_sync()

    async def _run_sync(self, operations: list[SyncOperation]) -> list[Any]:
        reports: list[Any] = []
        for operation in operations:
            try:
                reports.append(await self.reorder_group(operation.group_id, operation.order))
            except T3LangError:
                logger.exception("同步操作失败", group_id=operation.group_id)
        return reports

    # ---------- 覆盖率 ----------

    def coverage(self, group_id: str) -> GroupCoverage:
        return self._refresh_coverage(group_id)

    def missing_translations(self) -> list[MissingTranslation]:
        files = [self.cache.get(path) for path in self.cache.cached_paths()]
        return collect_missing_translations(data for data in files if data is not None)

    def _refresh_coverage(self, group_id: str) -> GroupCoverage:
        group = self.cache.get_group(group_id)
        files: dict[str, FileData] = {}
        for path in group.paths():
            data = self.cache.get(path)
            if data is not None:
                files[path] = data
        coverage = compute_group_coverage(group, files)
        self.cache.update_group(group.model_copy(update={"coverage": coverage}))
        return coverage

    def _refresh_coverage_for(self, path: str) -> None:
        group_id = self.cache.group_for_path(path)
        if group_id is not None:
            self._refresh_coverage(group_id)
