# t3lang/patching.py
"""
纯函数式的文档变换：快照 → 按序应用补丁 → 返回新文档。

所有函数都不修改传入的对象；需要修改时先做深拷贝快照。
单元按“修改前”的 id 建立索引后再统一应用修改，因此同一批次中的重命名
（包括两个单元互换 id）也能被一致地应用。
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from t3lang.types import (
    DEFAULT_LANGUAGE,
    TranslationUnit,
    UnitChange,
    UnitField,
    XliffDocument,
    XliffUnit,
)


def group_changes_by_unit(changes: Iterable[UnitChange]) -> dict[str, list[UnitChange]]:
    """按 unit_id 分组，保留原有顺序。"""
    grouped: dict[str, list[UnitChange]] = {}
    for change in changes:
        grouped.setdefault(change.unit_id, []).append(change)
    return grouped


def _set_field(unit: XliffUnit | TranslationUnit, field: UnitField, value: str) -> None:
    if field is UnitField.ID:
        unit.id = value
    elif field is UnitField.SOURCE:
        unit.source = value
    else:
        unit.target = value


def apply_changes(document: XliffDocument, changes: Sequence[UnitChange]) -> XliffDocument:
    """把每个修改的 new_value 应用到文档快照上，返回新文档。"""
    snapshot = document.model_copy(deep=True)
    if not changes:
        return snapshot

    index: dict[str, list[XliffUnit]] = {}
    for file in snapshot.files:
        for unit in file.units:
            index.setdefault(unit.id, []).append(unit)

    for unit_id, unit_changes in group_changes_by_unit(changes).items():
        for unit in index.get(unit_id, []):
            for change in unit_changes:
                _set_field(unit, change.field, change.new_value)
    return snapshot


def unmatched_changes(
    document: XliffDocument, changes: Sequence[UnitChange]
) -> list[UnitChange]:
    """返回在文档中找不到目标单元的修改。"""
    ids = {unit.id for file in document.files for unit in file.units}
    return [change for change in changes if change.unit_id not in ids]


def derive_units(document: XliffDocument, is_source_only: bool) -> list[TranslationUnit]:
    """从文档派生工作视图单元；target 始终规范化为字符串。"""
    units: list[TranslationUnit] = []
    for file in document.files:
        for unit in file.units:
            target = "" if is_source_only or unit.target is None else str(unit.target)
            units.append(
                TranslationUnit(
                    id=unit.id,
                    source=unit.source,
                    target=target,
                    note=unit.note,
                    state=unit.state,
                )
            )
    return units


def overlay_units(
    units: Sequence[TranslationUnit], changes: Sequence[UnitChange]
) -> list[TranslationUnit]:
    """把未保存的修改叠加到单元列表上，返回新的列表（未改动的单元共享实例）。"""
    if not changes:
        return list(units)

    grouped = group_changes_by_unit(changes)
    result: list[TranslationUnit] = []
    for unit in units:
        unit_changes = grouped.get(unit.id)
        if not unit_changes:
            result.append(unit)
            continue
        updated = unit.model_copy()
        for change in unit_changes:
            _set_field(updated, change.field, change.new_value)
        result.append(updated)
    return result


def reorder_units(document: XliffDocument, order: Sequence[str]) -> XliffDocument:
    """按给定的 id 顺序重排每个 <file> 中的单元，未列出的单元保持相对顺序排在末尾。"""
    snapshot = document.model_copy(deep=True)
    rank = {unit_id: position for position, unit_id in enumerate(order)}
    tail = len(rank)
    for file in snapshot.files:
        # sorted 是稳定排序，未列出的单元共享同一个 rank
        file.units = sorted(file.units, key=lambda u: rank.get(u.id, tail))
    return snapshot


def set_version(document: XliffDocument, version: str) -> XliffDocument:
    snapshot = document.model_copy(deep=True)
    snapshot.version = version
    return snapshot


def remove_unit(document: XliffDocument, unit_id: str) -> XliffDocument:
    snapshot = document.model_copy(deep=True)
    for file in snapshot.files:
        file.units = [unit for unit in file.units if unit.id != unit_id]
    return snapshot


def append_unit(
    document: XliffDocument, unit_id: str, source: str, *, with_target: bool
) -> XliffDocument:
    """在第一个 <file> 末尾追加一个单元；文档中已有同 id 单元时原样返回快照。"""
    snapshot = document.model_copy(deep=True)
    if not snapshot.files:
        return snapshot
    if any(unit.id == unit_id for file in snapshot.files for unit in file.units):
        return snapshot
    snapshot.files[0].units.append(
        XliffUnit(id=unit_id, source=source, target="" if with_target else None)
    )
    return snapshot


def make_language_variant(document: XliffDocument, language: str) -> XliffDocument:
    """以源文件为模板生成新的语言文件：设置目标语言并清空所有译文。"""
    snapshot = document.model_copy(deep=True)
    for file in snapshot.files:
        file.target_language = None if language == DEFAULT_LANGUAGE else language
        for unit in file.units:
            unit.target = ""
    return snapshot
