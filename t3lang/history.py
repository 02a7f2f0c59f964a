# t3lang/history.py
"""
本模块实现了按文件划分、有界的撤销/重做栈。

HistoryManager 只负责在两个栈之间搬运已提交的修改批次，对文档结构一无所知；
把 old_value/new_value 重新应用到工作视图、并登记反向修改，是调用方的职责。
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from typing import Optional

import structlog

from t3lang.types import HistoryEntry, UnitChange, UnitField

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ENTRIES = 50

_FIELD_LABELS = {
    UnitField.ID: "id",
    UnitField.SOURCE: "source",
    UnitField.TARGET: "translation",
}


def describe_changes(changes: Sequence[UnitChange]) -> str:
    """为一个修改批次生成简短的可读描述，用于撤销/重做的提示文本。"""
    if not changes:
        return ""
    if len(changes) == 1:
        change = changes[0]
        if change.field is UnitField.ID:
            return f'Rename "{change.old_value}" → "{change.new_value}"'
        return f'Edit {_FIELD_LABELS[change.field]} for "{change.unit_id}"'

    fields = {change.field for change in changes}
    if len(fields) == 1:
        field = fields.pop()
        units = {change.unit_id for change in changes}
        return f"Edit {_FIELD_LABELS[field]} for {len(units)} units"
    return f"Edit {len(changes)} changes"


class ReplayLedger:
    """
    记录由撤销/重做登记的脏修改。

    这些修改在下一次保存时不会作为新的历史条目入栈，
    从而保证“撤销 → 保存 → 重做”依旧可用。
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str, UnitField], str] = {}

    def mark(self, path: str, change: UnitChange) -> None:
        self._entries[(path, change.unit_id, change.field)] = change.new_value

    def unmark(self, path: str, unit_id: str, field: UnitField) -> None:
        self._entries.pop((path, unit_id, field), None)

    def is_replayed(self, path: str, change: UnitChange) -> bool:
        value = self._entries.get((path, change.unit_id, change.field))
        return value is not None and value == change.new_value

    def clear(self, path: Optional[str] = None) -> None:
        if path is None:
            self._entries.clear()
            return
        for key in [key for key in self._entries if key[0] == path]:
            del self._entries[key]


class HistoryManager:
    """为每个文件维护一对有界的撤销/重做栈。"""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self.max_entries = max_entries
        self._undo: dict[str, deque[HistoryEntry]] = {}
        self._redo: dict[str, deque[HistoryEntry]] = {}
        self.replays = ReplayLedger()

    def _stack(
        self, stacks: dict[str, deque[HistoryEntry]], path: str
    ) -> deque[HistoryEntry]:
        if path not in stacks:
            stacks[path] = deque(maxlen=self.max_entries)
        return stacks[path]

    def push_entry(
        self, path: str, changes: Sequence[UnitChange]
    ) -> Optional[HistoryEntry]:
        """
        追加一个已提交的批次，超出容量时丢弃最旧的条目，并清空重做栈。
        空批次不会入栈。
        """
        if not changes:
            return None
        entry = HistoryEntry(file_path=path, changes=list(changes))
        self._stack(self._undo, path).append(entry)
        self._redo.pop(path, None)
        logger.debug(
            "历史条目已入栈",
            path=path,
            changes=len(entry.changes),
            undo_depth=len(self._undo[path]),
        )
        return entry

    def commit(self, path: str, changes: Sequence[UnitChange]) -> Optional[HistoryEntry]:
        """
        在一次成功保存后调用：由撤销/重做登记的修改不会再次入栈，
        其余修改作为一个新的批次入栈。
        """
        fresh = [
            change for change in changes if not self.replays.is_replayed(path, change)
        ]
        for change in changes:
            self.replays.unmark(path, change.unit_id, change.field)
        return self.push_entry(path, fresh)

    def undo(self, path: str) -> Optional[HistoryEntry]:
        stack = self._undo.get(path)
        if not stack:
            return None
        entry = stack.pop()
        self._stack(self._redo, path).append(entry)
        return entry

    def redo(self, path: str) -> Optional[HistoryEntry]:
        stack = self._redo.get(path)
        if not stack:
            return None
        entry = stack.pop()
        self._stack(self._undo, path).append(entry)
        return entry

    def can_undo(self, path: str) -> bool:
        return bool(self._undo.get(path))

    def can_redo(self, path: str) -> bool:
        return bool(self._redo.get(path))

    def undo_description(self, path: str) -> str:
        stack = self._undo.get(path)
        return describe_changes(stack[-1].changes) if stack else ""

    def redo_description(self, path: str) -> str:
        stack = self._redo.get(path)
        return describe_changes(stack[-1].changes) if stack else ""

    def undo_stack_size(self, path: str) -> int:
        return len(self._undo.get(path, ()))

    def redo_stack_size(self, path: str) -> int:
        return len(self._redo.get(path, ()))

    def peek_undo(self, path: str) -> Optional[HistoryEntry]:
        stack = self._undo.get(path)
        return stack[-1] if stack else None

    def clear_history(self, path: Optional[str] = None) -> None:
        if path is None:
            self._undo.clear()
            self._redo.clear()
        else:
            self._undo.pop(path, None)
            self._redo.pop(path, None)
        self.replays.clear(path)
