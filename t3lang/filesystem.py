# t3lang/filesystem.py
"""
本模块提供文件系统边界的本地实现。

所有阻塞的磁盘操作都通过 `asyncio.to_thread` 在线程中执行，
以免阻塞事件循环。
"""

from __future__ import annotations

import asyncio
import os
import stat
import tempfile

import structlog

from t3lang.types import DirEntry

logger = structlog.get_logger(__name__)

TEMP_PREFIX = ".t3lang-"
TEMP_SUFFIX = ".tmp"


def write_atomic_sync(path: str, content: str) -> None:
    """
    先写入同目录下的临时文件，再用 os.replace 原子地替换目标文件。
    目标文件已存在时沿用其权限位；任何失败都会删除临时文件。
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    mode = None
    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        pass

    fd, tmp_path = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


def _read_dir(path: str) -> list[DirEntry]:
    with os.scandir(path) as it:
        entries = [
            DirEntry(name=entry.name, path=entry.path, is_dir=entry.is_dir())
            for entry in it
        ]
    return sorted(entries, key=lambda e: e.name)


class LocalFileSystem:
    """基于本地磁盘的异步文件系统实现。"""

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(_read_text, path)

    async def write_atomic(self, path: str, content: str) -> None:
        await asyncio.to_thread(write_atomic_sync, path, content)
        logger.debug("文件已原子写入", path=path, size=len(content))

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.exists, path)

    async def remove(self, path: str) -> None:
        await asyncio.to_thread(os.remove, path)

    async def read_dir(self, path: str) -> list[DirEntry]:
        return await asyncio.to_thread(_read_dir, path)
