# t3lang/change_tracker.py
"""
本模块实现了字段级未保存修改（脏数据）的跟踪器。

脏数据集合是一个三级结构：文件路径 → 单元 id → 该单元当前为脏的字段修改列表。
三级结构遵循“空即删除”的回收规则，由 `_compact` 统一维护：
字段修改回到原值时删除该修改，单元的修改列表为空时删除该单元，
文件的单元映射为空时删除该文件。因此“是否有未保存修改”与“脏单元数量”
只需检查结构是否为空，而无需扫描具体的值。

单元 id 约定为该单元在最近一次持久化文档中的 id，old_value 因而总是磁盘上的值。
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

import structlog

from t3lang.events import DirtyCountChanged, EventBus
from t3lang.types import UnitChange, UnitField

logger = structlog.get_logger(__name__)

FileChanges = dict[str, list[UnitChange]]


class ChangeTracker:
    """记录每个文件的待保存字段修改，独立于文档缓存。"""

    def __init__(self, bus: Optional[EventBus] = None) -> None:
        self._dirty: dict[str, FileChanges] = {}
        self._bus = bus
        self._last_count = 0

    # ---------- 变更 ----------

    def track_change(self, path: str, change: UnitChange) -> None:
        """
        记录一次字段编辑。

        同一 (path, unit_id, field) 的后续编辑只替换 new_value 与 timestamp，
        保留第一次编辑时的 old_value；若编辑后 new_value 等于 old_value，
        该修改被删除（空操作折叠）。
        """
        existing = self.get_change(path, change.unit_id, change.field)
        if existing is None:
            if change.old_value != change.new_value:
                self._dirty.setdefault(path, {}).setdefault(change.unit_id, []).append(
                    change
                )
        else:
            merged = change.model_copy(update={"old_value": existing.old_value})
            self._replace(path, merged)
            self._compact(path, change.unit_id)
        self._notify()

    def clear_changes(self, path: str, unit_id: Optional[str] = None) -> None:
        """移除一个单元或整个文件的待保存修改。"""
        if unit_id is None:
            self._dirty.pop(path, None)
        else:
            file_changes = self._dirty.get(path)
            if file_changes is not None:
                file_changes.pop(unit_id, None)
                self._compact(path)
        self._notify()

    def clear_all(self) -> None:
        self._dirty.clear()
        self._notify()

    def rebase(self, path: str, committed: Sequence[UnitChange]) -> None:
        """
        在一次保存成功后，以已写入磁盘的修改为基准重新整理脏数据。

        - 保存期间未再变化的修改被清除；
        - 保存期间继续编辑的修改保留，其 old_value 改为已保存的值；
        - 保存期间被改回原值的修改变为反向修改（磁盘上已是新值）；
        - 已提交的 id 重命名会把剩余修改迁移到新的 id 下。
        """
        renames: dict[str, str] = {}
        for change in committed:
            current = self.get_change(path, change.unit_id, change.field)
            if current is None:
                self._dirty.setdefault(path, {}).setdefault(change.unit_id, []).append(
                    UnitChange(
                        unit_id=change.unit_id,
                        field=change.field,
                        old_value=change.new_value,
                        new_value=change.old_value,
                    )
                )
            elif current.new_value == change.new_value:
                self._remove(path, change.unit_id, change.field)
            else:
                self._replace(
                    path, current.model_copy(update={"old_value": change.new_value})
                )
            if change.field is UnitField.ID:
                renames[change.unit_id] = change.new_value

        if renames and path in self._dirty:
            rekeyed: FileChanges = {}
            for unit_id, changes in self._dirty[path].items():
                new_id = renames.get(unit_id, unit_id)
                rekeyed.setdefault(new_id, []).extend(
                    c if c.unit_id == new_id else c.model_copy(update={"unit_id": new_id})
                    for c in changes
                )
            self._dirty[path] = rekeyed

        for unit_id in list(self._dirty.get(path, {})):
            self._compact(path, unit_id)
        self._compact(path)
        self._notify()

    # ---------- 查询 ----------

    def get_change(
        self, path: str, unit_id: str, field: UnitField | str
    ) -> Optional[UnitChange]:
        field = UnitField(field)
        for change in self._dirty.get(path, {}).get(unit_id, []):
            if change.field is field:
                return change
        return None

    def get_changes_for_file(self, path: str) -> FileChanges:
        """返回文件修改的浅拷贝，调用方不会持有内部映射的引用。"""
        return {
            unit_id: list(changes)
            for unit_id, changes in self._dirty.get(path, {}).items()
        }

    def iter_changes(self, path: str) -> list[UnitChange]:
        """按单元、字段顺序展开一个文件的全部修改。"""
        return [
            change
            for changes in self._dirty.get(path, {}).values()
            for change in changes
        ]

    def get_dirty_paths(self) -> list[str]:
        return list(self._dirty.keys())

    def has_unsaved_changes(self, path: Optional[str] = None) -> bool:
        if path is None:
            return bool(self._dirty)
        return bool(self._dirty.get(path))

    def is_unit_dirty(self, path: str, unit_id: str) -> bool:
        return unit_id in self._dirty.get(path, {})

    def dirty_count(self) -> int:
        """当前所有文件中脏单元的数量。"""
        return sum(len(file_changes) for file_changes in self._dirty.values())

    def resolve_unit_key(self, path: str, view_id: str) -> Optional[str]:
        """
        把工作视图中的单元 id 映射回持久化 id（脏数据的键）。
        若视图中没有单元持有该 id（它已被重命名走），返回 None。
        """
        file_changes = self._dirty.get(path, {})
        for unit_id, changes in file_changes.items():
            for change in changes:
                if change.field is UnitField.ID and change.new_value == view_id:
                    return unit_id
        renamed = self.get_change(path, view_id, UnitField.ID)
        if renamed is not None and renamed.new_value != view_id:
            return None
        return view_id

    # ---------- 内部 ----------

    def _replace(self, path: str, change: UnitChange) -> None:
        changes = self._dirty[path][change.unit_id]
        for position, existing in enumerate(changes):
            if existing.field is change.field:
                changes[position] = change
                return

    def _remove(self, path: str, unit_id: str, field: UnitField) -> None:
        changes = self._dirty.get(path, {}).get(unit_id)
        if changes is not None:
            changes[:] = [c for c in changes if c.field is not field]
            self._compact(path, unit_id)

    def _compact(self, path: str, unit_id: Optional[str] = None) -> None:
        """按“空即删除”规则逐级回收。"""
        file_changes = self._dirty.get(path)
        if file_changes is None:
            return
        if unit_id is not None and unit_id in file_changes:
            changes = file_changes[unit_id]
            changes[:] = [c for c in changes if c.old_value != c.new_value]
            if not changes:
                del file_changes[unit_id]
        if not file_changes:
            del self._dirty[path]

    def _notify(self) -> None:
        count = self.dirty_count()
        if count == self._last_count:
            return
        self._last_count = count
        logger.debug("脏单元数量变化", count=count)
        if self._bus is not None:
            self._bus.emit(DirtyCountChanged(count=count))
