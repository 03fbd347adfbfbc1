"""Markdown knowledge source backed by a local directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from kb_chat.domain.exceptions import InvalidInputError, SourceUnavailableError
from kb_chat.domain.knowledge import KnowledgeDocument, extract_title, render_combined_text
from kb_chat.infrastructure.logging.logger import get_logger


log = get_logger("knowledge")


@dataclass
class MarkdownKnowledgeSource:
    """从目录读取 *.md 文档的只读知识源。

    单个文件读取失败只记录警告并跳过，其余文档照常加载。
    """

    root: Path
    pattern: str = "*.md"

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser().resolve()

    # ---- helpers -------------------------------------------------

    def _ensure_root(self) -> None:
        if not self.root.exists() or not self.root.is_dir():
            raise SourceUnavailableError(
                code="SOURCE_UNAVAILABLE",
                message=f"Knowledge base path not found: {self.root}",
                path=str(self.root),
            )

    def _resolve(self, raw: str) -> Path:
        candidate = (self.root / raw).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise InvalidInputError(f"path outside knowledge base: {raw}") from exc
        return candidate

    def _load(self, path: Path) -> Optional[KnowledgeDocument]:
        try:
            content = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
        except (OSError, UnicodeDecodeError) as exc:
            log.warning(
                "Error reading knowledge document",
                extra={"extra": {"path": str(path), "error": str(exc)}},
            )
            return None
        title = extract_title(content) or path.stem
        log.debug("Loaded document", extra={"extra": {"file_name": path.name, "title": title}})
        return KnowledgeDocument(
            file_name=path.name,
            title=title,
            content=content,
            last_modified=datetime.fromtimestamp(mtime, tz=timezone.utc),
        )

    # ---- read ops ------------------------------------------------

    def list_documents(self) -> List[KnowledgeDocument]:
        self._ensure_root()
        try:
            paths = sorted(p for p in self.root.glob(self.pattern) if p.is_file())
        except OSError as exc:
            raise SourceUnavailableError(
                code="SOURCE_UNAVAILABLE",
                message=f"Knowledge base path unreadable: {self.root}: {exc}",
                path=str(self.root),
            ) from exc

        documents: List[KnowledgeDocument] = []
        for path in paths:
            doc = self._load(path)
            if doc is not None:
                documents.append(doc)
        log.info(
            "Loaded knowledge documents",
            extra={"extra": {"count": len(documents), "path": str(self.root)}},
        )
        return documents

    def get_document(self, file_name: str) -> Optional[KnowledgeDocument]:
        if not file_name or not file_name.strip():
            raise InvalidInputError("File name cannot be empty.")
        self._ensure_root()
        path = self._resolve(file_name)
        if not path.is_file():
            log.warning("Document not found", extra={"extra": {"file_name": file_name}})
            return None
        return self._load(path)

    def combined_text(self) -> str:
        text = render_combined_text(self.list_documents())
        log.debug("Combined knowledge base created", extra={"extra": {"length": len(text)}})
        return text
