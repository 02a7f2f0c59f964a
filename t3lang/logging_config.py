# t3lang/logging_config.py
"""
本模块负责集中配置项目的日志系统：structlog ⇄ 标准 logging，并与 Rich 集成。

提供两种输出：
- console：开发环境的单行彩色输出（本地时间，等宽级别标签，键值对附在行尾）。
- json   ：结构化日志（ISO-8601 且 UTC），便于日志平台聚合。
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any, Literal

import structlog
from rich.console import Console
from rich.text import Text
from structlog.typing import Processor

if TYPE_CHECKING:
    from t3lang.config import T3LangConfig

APP_LOGGER_NAME = "t3lang"


class RichLineRenderer:
    """
    structlog 处理器：将一条日志渲染为一行 Rich 文本。

    行格式为 `时间 级别 事件 (logger) key=value ...`，
    键按字母排序，过长的值会被截断并以省略号结尾。
    """

    def __init__(
        self,
        *,
        kv_truncate_at: int = 120,
        show_timestamp: bool = True,
        show_logger_name: bool = True,
    ) -> None:
        self._console = Console()
        self._kv_truncate_at = kv_truncate_at
        self._show_timestamp = show_timestamp
        self._show_logger_name = show_logger_name

        # 等宽级别标签，保证多行日志纵向对齐
        self._level_styles: dict[str, tuple[str, str]] = {
            "debug": ("blue", "DEBUG   "),
            "info": ("green", "INFO    "),
            "warning": ("yellow", "WARNING "),
            "error": ("bold red", "ERROR   "),
            "critical": ("bold magenta", "CRITICAL"),
        }

    def __call__(
        self, logger: Any, name: str, event_dict: MutableMapping[str, Any]
    ) -> str:
        event = str(event_dict.pop("event", "")).strip()
        if not event:
            return ""

        timestamp = event_dict.pop("timestamp", "")
        level = str(event_dict.pop("level", "info")).lower()
        logger_name = event_dict.pop("logger", "unknown")
        event_dict.pop("_record", None)
        event_dict.pop("_from_structlog", None)
        style, level_text = self._level_styles.get(level, ("default", level.upper()))

        line = Text()
        if self._show_timestamp and timestamp:
            line.append(str(timestamp), style="dim")
            line.append(" ")
        line.append(level_text, style=style)
        line.append(" ")
        line.append(event)
        if self._show_logger_name:
            line.append(f" ({logger_name})", style="cyan dim")
        for key, value in sorted(event_dict.items()):
            line.append(f" {key}=", style="dim")
            line.append(self._format_value(value), style="bright_white")

        with self._console.capture() as capture:
            self._console.print(line, soft_wrap=True)
        return capture.get().rstrip()

    def _format_value(self, value: Any) -> str:
        value_repr = value if isinstance(value, str) else repr(value)
        if len(value_repr) > self._kv_truncate_at:
            return value_repr[: self._kv_truncate_at - 1] + "…"
        return value_repr


def setup_logging(
    log_level: str = "INFO",
    log_format: Literal["json", "console"] = "console",
    show_timestamp: bool = True,
    show_logger_name: bool = True,
    kv_truncate_at: int = 120,
) -> None:
    """
    配置全局的 structlog 日志系统。这是整个应用的日志配置入口。

    Args:
        log_level: 应用日志的最低级别 (DEBUG, INFO, WARNING, ERROR)。
        log_format: 'console' 用于开发环境的彩色单行输出，'json' 用于机器可读输出。
        show_timestamp: 是否在 console 输出中包含时间戳。
        show_logger_name: 是否在 console 输出中包含记录器名称。
        kv_truncate_at: console 模式下键值对中值的截断长度。
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "console":
        processors.append(
            RichLineRenderer(
                kv_truncate_at=kv_truncate_at,
                show_timestamp=show_timestamp,
                show_logger_name=show_logger_name,
            )
        )
    else:
        # json 输出统一使用 UTC 的 ISO 时间戳
        processors[3] = structlog.processors.TimeStamper(fmt="iso", utc=True)
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()

    class PassthroughFormatter(logging.Formatter):
        """直接传递 structlog 已经渲染好的字符串。"""

        def format(self, record: logging.LogRecord) -> str:
            return str(record.getMessage())

    handler.setFormatter(PassthroughFormatter())

    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)  # 避免第三方库的噪音

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(log_level.upper())
    app_logger.propagate = True

    structlog.get_logger("t3lang.logging_config").debug(
        "日志系统已配置完成。", log_format=log_format, app_log_level=log_level.upper()
    )


def setup_logging_from_config(config: T3LangConfig) -> None:
    """按配置对象中的 logging 段落配置日志。"""
    setup_logging(log_level=config.logging.level, log_format=config.logging.format)
