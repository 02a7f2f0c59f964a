# t3lang/types.py
"""
本模块定义了 t3lang 工作区引擎的核心数据类型。
这些类型是引擎各组件之间数据交换的契约，组件之间只通过路径和分组 ID 互相引用。
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LANGUAGE = "default"


class UnitField(str, Enum):
    """翻译单元中可被编辑的字段。"""

    ID = "id"
    SOURCE = "source"
    TARGET = "target"


class XliffVersion(str, Enum):
    """支持的 XLIFF 格式版本。"""

    V1_2 = "1.2"
    V2_0 = "2.0"


class WatchEventType(str, Enum):
    """文件监听器上报的事件类型。"""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"


class ConflictDecision(str, Enum):
    """外部修改与本地未保存修改冲突时，用户可选择的决策。"""

    RELOAD = "reload"
    KEEP_LOCAL = "keep_local"
    DISMISS = "dismiss"


class ConflictOutcome(str, Enum):
    """冲突解析器处理一个文件事件（或一个决策）后的结果。"""

    SUPPRESSED = "suppressed"
    NOT_CACHED = "not_cached"
    IGNORED = "ignored"
    RELOADED = "reloaded"
    RELOAD_FAILED = "reload_failed"
    CONFLICT_PENDING = "conflict_pending"
    KEPT_LOCAL = "kept_local"
    DELETED = "deleted"


# --- XLIFF 文档模型 ---
# 引擎只关心 files[].units[].{id,source,target} 与 version，
# 其余字段全部通过 extra="allow" 原样保留，以保证编解码往返无损。


class XliffUnit(BaseModel):
    """XLIFF 文档中的一个翻译单元。"""

    model_config = ConfigDict(extra="allow")

    id: str
    source: str = ""
    target: Optional[str] = None
    note: Optional[str] = None
    state: Optional[str] = None


class XliffFile(BaseModel):
    """XLIFF 文档中的一个 <file> 节点。"""

    model_config = ConfigDict(extra="allow")

    source_language: Optional[str] = None
    target_language: Optional[str] = None
    units: list[XliffUnit] = Field(default_factory=list)


class XliffDocument(BaseModel):
    """编解码器产出的不透明文档句柄。"""

    model_config = ConfigDict(extra="allow")

    version: str = XliffVersion.V1_2.value
    files: list[XliffFile] = Field(default_factory=list)


# --- 工作区模型 ---


class FileMetadata(BaseModel):
    """无需加载即可标识一个文件的元数据，创建后不可变。"""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    language: str
    base_name: str
    directory: str

    @property
    def is_source(self) -> bool:
        return self.language == DEFAULT_LANGUAGE


class GroupCoverage(BaseModel):
    """分组的翻译覆盖率统计，可随时重新计算，不具权威性。"""

    total_units: int = 0
    translated_by_language: dict[str, int] = Field(default_factory=dict)
    missing_by_language: dict[str, list[str]] = Field(default_factory=dict)


class TranslationGroup(BaseModel):
    """同一目录下、同一 base name 的一组语言文件。"""

    id: str
    base_name: str
    directory: str
    files: dict[str, FileMetadata] = Field(default_factory=dict)
    source_file: Optional[FileMetadata] = None
    coverage: GroupCoverage = Field(default_factory=GroupCoverage)

    def paths(self) -> list[str]:
        return [meta.path for meta in self.files.values()]


class TranslationUnit(BaseModel):
    """工作视图中的翻译单元，target 在加载时已被规范化为字符串。"""

    id: str
    source: str = ""
    target: str = ""
    note: Optional[str] = None
    state: Optional[str] = None


class FileData(BaseModel):
    """
    一个已加载文件的完整内存表示。

    `xliff_data` 是最近一次持久化（加载或保存）的文档；`units` 是工作视图，
    等于 `xliff_data` 派生的单元叠加当前的未保存修改。
    实例冻结，任何更新都通过 `model_copy(update=...)` 整体替换。
    """

    model_config = ConfigDict(frozen=True)

    path: str
    xliff_data: XliffDocument
    units: list[TranslationUnit] = Field(default_factory=list)
    source_language: str = "en"
    target_language: str = ""
    version: str = XliffVersion.V1_2.value
    language: str = DEFAULT_LANGUAGE
    base_name: str = ""
    is_source_only: bool = False


class UnitChange(BaseModel):
    """单个字段的一次编辑。`old_value` 固定为首次未保存编辑前的值。"""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    field: UnitField
    old_value: str
    new_value: str
    timestamp: float = Field(default_factory=time.time)


class HistoryEntry(BaseModel):
    """一次提交的修改批次，可能跨越多个单元与字段。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    file_path: str
    changes: list[UnitChange]
    timestamp: float = Field(default_factory=time.time)


class WorkspaceScan(BaseModel):
    """扫描一个工作区目录的结果。"""

    root_path: str
    groups: list[TranslationGroup] = Field(default_factory=list)
    total_files: int = 0


class DirEntry(BaseModel):
    """文件系统边界返回的目录条目。"""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    is_dir: bool = False


class FileWatchEvent(BaseModel):
    """外部文件监听器上报的事件。"""

    model_config = ConfigDict(frozen=True)

    type: WatchEventType
    path: str
    old_path: Optional[str] = None


class MissingTranslation(BaseModel):
    """一个缺少译文的单元。"""

    unit_id: str
    source: str
    language: str
    file_path: str
