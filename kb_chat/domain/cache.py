"""响应缓存协议与指纹计算。

缓存只服务于非流式路径，命中与否不影响正确性。
"""

import hashlib
import json
from typing import Optional, Protocol, Sequence

from kb_chat.domain.models import ChatMessage


class ResponseCache(Protocol):
    """指纹 -> 完整回答文本 的键值缓存。"""

    def get(self, fingerprint: str) -> Optional[str]:
        ...

    def put(self, fingerprint: str, response: str, ttl: Optional[float]) -> None:
        ...


def fingerprint_messages(messages: Sequence[ChatMessage], namespace: str = "") -> str:
    """对有序消息列表计算 SHA-256 指纹。

    只有 role 与 content 参与计算，meta 被忽略；消息顺序不同则指纹不同。
    namespace 用于区分不同 provider/模型，避免共享缓存条目。
    """

    canonical = {
        "namespace": namespace,
        "messages": [[m.role, m.content] for m in messages],
    }
    encoded = json.dumps(canonical, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
