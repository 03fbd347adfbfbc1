"""知识库文档模型与 KnowledgeSource 抽象。

知识库只是所有文档按文件名排序后的平铺拼接，不做检索或排序打分。
拼接结果必须是确定性的：同样的文档集合重复生成时逐字节一致。
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Protocol


SECTION_SEPARATOR = "---"


@dataclass(frozen=True)
class KnowledgeDocument:
    """一篇知识库文档。

    - file_name: 目录内唯一的文件名（含扩展名）。
    - title: 第一个一级标题；没有时取不带扩展名的文件名。
    - content: 原始文本。
    - last_modified: 底层存储的修改时间（UTC）。
    """

    file_name: str
    title: str
    content: str
    last_modified: datetime


class KnowledgeSource(Protocol):
    """编排器依赖的知识源协议。实现必须是只读的。"""

    def list_documents(self) -> List[KnowledgeDocument]:
        ...

    def combined_text(self) -> str:
        ...


def extract_title(content: str) -> Optional[str]:
    """返回第一个以 "# " 开头的行（去掉前缀），没有则返回 None。"""

    if not content or not content.strip():
        return None
    for line in content.split("\n"):
        trimmed = line.strip()
        if trimmed.startswith("# "):
            return trimmed[2:].strip()
    return None


def render_combined_text(documents: Iterable[KnowledgeDocument]) -> str:
    """按文件名升序拼接文档。

    排序使用 str 默认的码点顺序，与区域设置无关。
    """

    parts: List[str] = []
    for doc in sorted(documents, key=lambda d: d.file_name):
        parts.append(f"## Document: {doc.title}\n")
        parts.append(f"## Source File: {doc.file_name}\n")
        parts.append("\n")
        parts.append(f"{doc.content}\n")
        parts.append("\n")
        parts.append(f"{SECTION_SEPARATOR}\n")
        parts.append("\n")
    return "".join(parts)
