# t3lang/config.py
"""
t3lang 引擎配置（Pydantic v2）。

所有容量与时间窗口都可以通过 `T3LANG_` 前缀的环境变量或 `.env` 文件覆盖，
嵌套字段使用双下划线，例如 `T3LANG_FORMAT__INDENT_TYPE=spaces`。
"""

from __future__ import annotations

import enum
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from t3lang.exceptions import ConfigurationError


class IndentType(str, enum.Enum):
    TABS = "tabs"
    SPACES = "spaces"


class FormatSettings(BaseModel):
    """保存文件时使用的格式化设置。"""

    indent_type: IndentType = IndentType.TABS
    indent_size: int = Field(default=2, ge=1, le=16)

    @property
    def indent(self) -> str:
        if self.indent_type is IndentType.TABS:
            return "\t"
        return " " * self.indent_size


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "console"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class T3LangConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="T3LANG_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    max_cached_groups: int = Field(
        default=10, gt=0, description="文档缓存中最多常驻的分组数（LRU）"
    )
    max_history_entries: int = Field(
        default=50, gt=0, description="每个文件撤销栈的最大深度"
    )
    suppression_window: float = Field(
        default=2.0, gt=0, description="自身写入后屏蔽监听事件的时间窗口（秒）"
    )
    sync_delay: float = Field(
        default=0.5, ge=0, description="分组同步操作的防抖延迟（秒）"
    )
    auto_sync: bool = True

    format: FormatSettings = Field(default_factory=FormatSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class StaticSettingsSource:
    """一个持有固定格式化设置的设置来源，可在运行期替换。"""

    def __init__(self, settings: FormatSettings | None = None) -> None:
        self._settings = settings or FormatSettings()

    def get_format_settings(self) -> FormatSettings:
        return self._settings

    def update(self, settings: FormatSettings) -> None:
        self._settings = settings


def load_config(**overrides: object) -> T3LangConfig:
    """从环境变量与 `.env` 加载配置；校验失败时抛出 ConfigurationError。"""
    try:
        return T3LangConfig(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"配置无效: {e}") from e
