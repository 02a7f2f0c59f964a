# t3lang/scanner.py
"""扫描工作区目录，按 TYPO3 命名约定把 XLIFF 文件归入翻译分组。"""

from __future__ import annotations

import os

import structlog

from t3lang.interfaces import FileSystem
from t3lang.types import (
    DirEntry,
    FileMetadata,
    TranslationGroup,
    WorkspaceScan,
)
from t3lang.utils import group_id_for, is_xliff_file, parse_t3_file_name

logger = structlog.get_logger(__name__)


async def _walk(fs: FileSystem, directory: str) -> list[DirEntry]:
    """递归收集目录下的所有 XLIFF 文件，跳过隐藏目录。"""
    found: list[DirEntry] = []
    for entry in await fs.read_dir(directory):
        if entry.is_dir:
            if entry.name.startswith("."):
                continue
            found.extend(await _walk(fs, entry.path))
        elif is_xliff_file(entry.name):
            found.append(entry)
    return found


def _display_name(root_path: str, directory: str, base_name: str) -> str:
    relative = os.path.relpath(directory, root_path)
    if relative in (".", ""):
        return base_name
    return f"{relative.replace(os.sep, '/')}/{base_name}"


async def scan_workspace(fs: FileSystem, root_path: str) -> WorkspaceScan:
    """
    扫描 root_path 并返回按展示名称排序的分组列表。

    分组 ID 为 `join(directory, base_name)`；`default` 语言变体即源文件。
    """
    entries = await _walk(fs, root_path)

    groups: dict[str, TranslationGroup] = {}
    names: dict[str, str] = {}
    for entry in entries:
        directory = os.path.dirname(entry.path)
        language, base_name = parse_t3_file_name(entry.name)
        meta = FileMetadata(
            path=entry.path,
            name=entry.name,
            language=language,
            base_name=base_name,
            directory=directory,
        )
        group_id = group_id_for(directory, base_name)
        group = groups.get(group_id)
        if group is None:
            group = TranslationGroup(
                id=group_id, base_name=base_name, directory=directory
            )
            groups[group_id] = group
            names[group_id] = _display_name(root_path, directory, base_name)
        if language in group.files:
            logger.warning(
                "同一分组中存在重复的语言文件，已忽略",
                group_id=group_id,
                language=language,
                path=entry.path,
            )
            continue
        group.files[language] = meta
        if meta.is_source:
            group.source_file = meta

    ordered = sorted(groups.values(), key=lambda g: names[g.id])
    logger.info("工作区扫描完成", root=root_path, groups=len(ordered), files=len(entries))
    return WorkspaceScan(root_path=root_path, groups=ordered, total_files=len(entries))
