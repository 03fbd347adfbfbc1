import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from kb_chat.domain.exceptions import CacheError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


class JsonFileResponseCache:
    """以 JSON 文件持久化的响应缓存，每个指纹一个文件。

    写入先落临时文件再 os.replace，避免读到半截内容。
    """

    def __init__(self, root: str | Path, clock: Callable[[], datetime] = _utcnow):
        self._root = Path(root).resolve()
        self._clock = clock
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(code="CACHE_INIT_ERROR", message=str(e), path=str(self._root)) from e

    def get(self, fingerprint: str) -> Optional[str]:
        path = self._path(fingerprint)
        if not path.exists():
            return None
        try:
            data: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
            response = data["response"]
            expires_raw = data.get("expires_at")
            expires_at = _parse_iso(expires_raw) if expires_raw else None
        except (ValueError, KeyError, TypeError, AttributeError):
            # 损坏的条目当作未命中，下次写入会覆盖
            return None
        except OSError as e:
            raise CacheError(code="CACHE_READ_ERROR", message=str(e), fingerprint=fingerprint) from e
        if expires_at is not None and self._clock() >= expires_at:
            self._discard(path)
            return None
        return response if isinstance(response, str) else None

    def put(self, fingerprint: str, response: str, ttl: Optional[float]) -> None:
        now = self._clock()
        expires_at = None
        if ttl is not None:
            expires_at = _iso(datetime.fromtimestamp(now.timestamp() + ttl, tz=timezone.utc))
        obj = {
            "fingerprint": fingerprint,
            "response": response,
            "created_at": _iso(now),
            "expires_at": expires_at,
        }
        path = self._path(fingerprint)
        tmp_path = self._root / f"{fingerprint}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise CacheError(code="CACHE_WRITE_ERROR", message=str(e), fingerprint=fingerprint) from e

    def clear(self) -> None:
        for path in self._root.glob("*.json"):
            self._discard(path)

    def _path(self, fingerprint: str) -> Path:
        if not fingerprint or not all(c in "0123456789abcdef" for c in fingerprint):
            raise CacheError(code="CACHE_BAD_KEY", message=f"Invalid fingerprint: {fingerprint!r}")
        return self._root / f"{fingerprint}.json"

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CacheError(code="CACHE_DELETE_ERROR", message=str(e), path=str(path)) from e
