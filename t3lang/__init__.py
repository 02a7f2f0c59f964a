# t3lang/__init__.py
"""t3lang: TYPO3 XLIFF 翻译工作区的状态与同步引擎。

该模块导出工作区门面与五个核心组件，供编辑器前端嵌入使用。
"""

__version__ = "0.1.0"

from .change_tracker import ChangeTracker
from .config import FormatSettings, T3LangConfig, load_config
from .conflict import ConflictResolver
from .document_cache import DocumentCache
from .events import EventBus
from .history import HistoryManager
from .save_coordinator import SaveCoordinator
from .types import ConflictDecision, UnitChange, UnitField
from .workspace import Workspace

__all__ = [
    "__version__",
    "Workspace",
    "T3LangConfig",
    "load_config",
    "FormatSettings",
    "EventBus",
    "DocumentCache",
    "ChangeTracker",
    "HistoryManager",
    "SaveCoordinator",
    "ConflictResolver",
    "ConflictDecision",
    "UnitChange",
    "UnitField",
]
