# t3lang/interfaces.py
"""
本模块使用 typing.Protocol 定义了引擎所依赖的外部协作者的接口协议。
编解码器、文件系统、监听器与设置来源都被当作黑盒服务使用，
引擎只依赖这些协议，而不依赖具体实现。
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

from t3lang.types import DirEntry, FileWatchEvent, XliffDocument

if TYPE_CHECKING:
    from t3lang.config import FormatSettings


class XliffCodec(Protocol):
    """XLIFF 编解码器。必须无损保留文档中的未知字段。"""

    def parse(self, text: str) -> XliffDocument:
        """解析文本；输入格式错误时抛出 `ParseError`。"""
        ...

    def write(self, document: XliffDocument, *, format: bool, indent: str) -> str:
        """将文档序列化为文本。"""
        ...


class FileSystem(Protocol):
    """宿主文件系统的纯异步接口协议。"""

    async def read_text(self, path: str) -> str: ...

    async def write_atomic(self, path: str, content: str) -> None:
        """写入内容，任何时刻都不会留下可见的半写文件。"""
        ...

    async def exists(self, path: str) -> bool: ...
    async def remove(self, path: str) -> None: ...
    async def read_dir(self, path: str) -> list[DirEntry]: ...


WatchCallback = Callable[[FileWatchEvent], Awaitable[object]]


class FileWatcher(Protocol):
    """持续上报文件事件，直到被停止。"""

    async def start(self, root_path: str, callback: WatchCallback) -> None: ...
    async def stop(self) -> None: ...


class SettingsSource(Protocol):
    """在保存时同步读取的格式化设置来源。"""

    def get_format_settings(self) -> FormatSettings: ...
