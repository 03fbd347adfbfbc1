import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple


class MemoryResponseCache:
    """进程内响应缓存，条目过期后读取视为未命中，满时淘汰最久未使用的条目。"""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 256):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._clock = clock
        self._max_entries = max_entries
        # fingerprint -> (response, expires_at)
        self._entries: "OrderedDict[str, Tuple[str, Optional[float]]]" = OrderedDict()

    def get(self, fingerprint: str) -> Optional[str]:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        response, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[fingerprint]
            return None
        self._entries.move_to_end(fingerprint)
        return response

    def put(self, fingerprint: str, response: str, ttl: Optional[float]) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries.pop(fingerprint, None)
        self._entries[fingerprint] = (response, expires_at)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class NullResponseCache:
    """关闭缓存时使用：永远未命中，写入被忽略。"""

    def get(self, fingerprint: str) -> Optional[str]:
        return None

    def put(self, fingerprint: str, response: str, ttl: Optional[float]) -> None:
        return None
