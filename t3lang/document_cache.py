# t3lang/document_cache.py
"""
本模块实现了文档缓存：按路径保存已加载的 FileData，并按“分组”做 LRU 淘汰。

缓存与 LRU 列表必须始终对“哪些分组常驻内存”达成一致：
淘汰一个分组时，会删除该分组所有文件路径下的缓存条目。
"""

from __future__ import annotations

import asyncio
import os
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from t3lang.events import EventBus, FileLoadFailed, GroupEvicted
from t3lang.exceptions import GroupNotFoundError, LoadError, ParseError
from t3lang.interfaces import FileSystem, XliffCodec
from t3lang.patching import derive_units
from t3lang.types import (
    DEFAULT_LANGUAGE,
    FileData,
    FileMetadata,
    TranslationGroup,
    XliffDocument,
)
from t3lang.utils import parse_t3_file_name

logger = structlog.get_logger(__name__)

DEFAULT_MAX_GROUPS = 10


class GroupLoadReport(BaseModel):
    """一次分组加载的结果，部分文件失败不会让整个分组失败。"""

    group_id: str
    loaded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    evicted: list[str] = Field(default_factory=list)


def build_file_data(path: str, document: XliffDocument) -> FileData:
    """根据路径上的 TYPO3 命名约定与文档头信息构造 FileData。"""
    language, base_name = parse_t3_file_name(os.path.basename(path))
    is_source_only = language == DEFAULT_LANGUAGE

    source_language = "en"
    target_language = "" if is_source_only else language
    if document.files:
        head = document.files[0]
        if head.source_language:
            source_language = head.source_language
        if not is_source_only and head.target_language:
            target_language = head.target_language

    return FileData(
        path=path,
        xliff_data=document,
        units=derive_units(document, is_source_only),
        source_language=source_language,
        target_language=target_language,
        version=document.version,
        language=language,
        base_name=base_name,
        is_source_only=is_source_only,
    )


class DocumentCache:
    """已加载文档的内存缓存，受分组级 LRU 策略约束。"""

    def __init__(
        self,
        fs: FileSystem,
        codec: XliffCodec,
        max_groups: int = DEFAULT_MAX_GROUPS,
        bus: Optional[EventBus] = None,
        is_pinned: Optional[Callable[[str], bool]] = None,
    ):
        self._fs = fs
        self._codec = codec
        self.max_groups = max_groups
        self._bus = bus
        # 判断路径是否不可淘汰（有未保存修改或正在保存）
        self.is_pinned: Callable[[str], bool] = is_pinned or (lambda path: False)

        self._files: dict[str, FileData] = {}
        self._groups: dict[str, TranslationGroup] = {}
        self._path_to_group: dict[str, str] = {}
        self._lru: OrderedDict[str, None] = OrderedDict()
        self._loading: dict[str, asyncio.Task[FileData]] = {}
        self._reported_failures: set[str] = set()

    # ---------- 缓存条目 ----------

    def get(self, path: str) -> Optional[FileData]:
        return self._files.get(path)

    def put(self, path: str, data: FileData) -> None:
        self._files[path] = data

    def remove(self, path: str) -> None:
        self._files.pop(path, None)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def cached_paths(self) -> list[str]:
        return list(self._files.keys())

    # ---------- 分组注册 ----------

    def register_groups(self, groups: Iterable[TranslationGroup]) -> None:
        for group in groups:
            self._groups[group.id] = group
            for path in group.paths():
                self._path_to_group[path] = group.id

    def get_group(self, group_id: str) -> TranslationGroup:
        try:
            return self._groups[group_id]
        except KeyError:
            raise GroupNotFoundError(group_id) from None

    @property
    def groups(self) -> list[TranslationGroup]:
        return list(self._groups.values())

    def group_for_path(self, path: str) -> Optional[str]:
        return self._path_to_group.get(path)

    def update_group(self, group: TranslationGroup) -> None:
        """整体替换一个分组的元数据（例如重新计算覆盖率后）。"""
        self.register_groups([group])

    def add_file_to_group(self, group_id: str, meta: FileMetadata) -> TranslationGroup:
        group = self.get_group(group_id)
        files = {**group.files, meta.language: meta}
        updated = group.model_copy(
            update={
                "files": files,
                "source_file": meta if meta.is_source else group.source_file,
            }
        )
        self.register_groups([updated])
        return updated

    # ---------- 加载 ----------

    async def load_file(self, path: str, force: bool = False) -> FileData:
        """
        加载单个文件。已缓存的文件直接返回缓存值，只有 force=True 时才重新读取。
        同一路径的并发加载会共享同一次读取。
        """
        if not force:
            cached = self._files.get(path)
            if cached is not None:
                return cached
            pending = self._loading.get(path)
            if pending is not None:
                return await asyncio.shield(pending)

        task = asyncio.create_task(self._read_and_parse(path))
        self._loading[path] = task
        try:
            data = await asyncio.shield(task)
        except LoadError as e:
            self._report_failure(path, e)
            raise
        finally:
            if self._loading.get(path) is task:
                del self._loading[path]

        self._reported_failures.discard(path)
        self._files[path] = data
        logger.debug("文件已加载", path=path, units=len(data.units))
        return data

    async def _read_and_parse(self, path: str) -> FileData:
        try:
            text = await self._fs.read_text(path)
        except OSError as e:
            raise LoadError(path, f"无法读取文件: {e}") from e
        try:
            document = await asyncio.to_thread(self._codec.parse, text)
        except ParseError as e:
            raise LoadError(path, f"无法解析文件: {e}") from e
        return build_file_data(path, document)

    def _report_failure(self, path: str, error: LoadError) -> None:
        if path in self._reported_failures:
            return
        self._reported_failures.add(path)
        logger.warning("文件加载失败，已跳过", path=path, error=str(error))
        if self._bus is not None:
            self._bus.emit(FileLoadFailed(path=path, error=str(error)))

    async def load_group(self, group_id: str) -> GroupLoadReport:
        """
        并发加载分组内的所有语言文件，全部结束后才把分组标记为已加载。
        单个文件的失败只会出现在报告中。
        """
        group = self.get_group(group_id)
        paths = group.paths()
        results = await asyncio.gather(
            *(self.load_file(path) for path in paths), return_exceptions=True
        )

        report = GroupLoadReport(group_id=group_id)
        for path, result in zip(paths, results):
            if isinstance(result, LoadError):
                report.failed[path] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                report.loaded.append(path)

        self.mark_group_loaded(group_id)
        report.evicted = self.evict_old_groups()
        logger.info(
            "分组加载完成",
            group_id=group_id,
            loaded=len(report.loaded),
            failed=len(report.failed),
        )
        return report

    # ---------- LRU ----------

    def mark_group_loaded(self, group_id: str) -> None:
        """把分组移动（或追加）到 LRU 列表末尾，即“最近使用”。"""
        self._lru[group_id] = None
        self._lru.move_to_end(group_id)

    @property
    def loaded_groups(self) -> list[str]:
        return list(self._lru.keys())

    def is_group_loaded(self, group_id: str) -> bool:
        return group_id in self._lru

    def _is_group_pinned(self, group_id: str) -> bool:
        group = self._groups.get(group_id)
        if group is None:
            return False
        return any(self.is_pinned(path) for path in group.paths())

    def evict_old_groups(self) -> list[str]:
        """
        从 LRU 头部开始淘汰，直到不超过容量。
        含有被钉住路径的分组会被跳过，留待下一次淘汰；最近使用的分组不参与淘汰。
        """
        evicted: list[str] = []
        while len(self._lru) > self.max_groups:
            candidates = list(self._lru.keys())[:-1]
            victim = next(
                (gid for gid in candidates if not self._is_group_pinned(gid)), None
            )
            if victim is None:
                logger.info(
                    "所有可淘汰分组都含有未保存或正在保存的文件，推迟淘汰",
                    resident=len(self._lru),
                    capacity=self.max_groups,
                )
                break
            self.evict_group(victim)
            evicted.append(victim)
        return evicted

    def evict_group(self, group_id: str) -> None:
        """删除分组所有文件的缓存条目，并把分组移出 LRU 列表。"""
        group = self._groups.get(group_id)
        if group is not None:
            for path in group.paths():
                self._files.pop(path, None)
        self._lru.pop(group_id, None)
        logger.debug("分组已被淘汰", group_id=group_id)
        if self._bus is not None:
            self._bus.emit(GroupEvicted(group_id=group_id))

    def clear(self) -> None:
        for task in self._loading.values():
            task.cancel()
        self._loading.clear()
        self._files.clear()
        self._groups.clear()
        self._path_to_group.clear()
        self._lru.clear()
        self._reported_failures.clear()
