# t3lang/suppression.py
"""本模块提供“最近由本引擎写入”的路径集合，用于屏蔽自身写入引发的监听事件。"""

import time
from collections.abc import Callable

from cachetools import TTLCache


class RecentWriteRegistry:
    """
    一个短时有效的路径集合。

    条目在固定的时间窗口后自动过期，而不是被显式清除，
    以容忍监听器延迟投递的事件。
    """

    def __init__(
        self,
        window: float = 2.0,
        maxsize: int = 4096,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self._entries: TTLCache[str, bool] = TTLCache(
            maxsize=maxsize, ttl=window, timer=timer
        )

    def add(self, path: str) -> None:
        # 重复写入同一路径会刷新过期时间
        self._entries[path] = True

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
