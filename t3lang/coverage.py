# t3lang/coverage.py
"""翻译覆盖率统计。结果只是派生数据，可以随时重新计算。"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from t3lang.types import (
    FileData,
    GroupCoverage,
    MissingTranslation,
    TranslationGroup,
    TranslationUnit,
)


def _is_missing(unit: TranslationUnit) -> bool:
    return not unit.target or not unit.target.strip()


def compute_group_coverage(
    group: TranslationGroup, files: Mapping[str, FileData]
) -> GroupCoverage:
    """
    根据已加载的文件计算分组覆盖率。

    Args:
        group: 目标分组。
        files: 路径 → FileData，未加载的语言文件不参与统计。
    """
    loaded = [files[meta.path] for meta in group.files.values() if meta.path in files]
    if not loaded:
        return GroupCoverage()

    source = None
    if group.source_file is not None:
        source = files.get(group.source_file.path)
    total = len(source.units) if source is not None else max(len(d.units) for d in loaded)

    coverage = GroupCoverage(total_units=total)
    for data in loaded:
        if data.is_source_only:
            continue
        missing = [unit.id for unit in data.units if _is_missing(unit)]
        coverage.translated_by_language[data.language] = len(data.units) - len(missing)
        coverage.missing_by_language[data.language] = missing
    return coverage


def collect_missing_translations(files: Iterable[FileData]) -> list[MissingTranslation]:
    """列出所有非源文件中缺少译文的单元。"""
    missing: list[MissingTranslation] = []
    for data in files:
        if data.is_source_only:
            continue
        language = data.target_language or data.language
        for unit in data.units:
            if _is_missing(unit):
                missing.append(
                    MissingTranslation(
                        unit_id=unit.id,
                        source=unit.source,
                        language=language,
                        file_path=data.path,
                    )
                )
    return missing
