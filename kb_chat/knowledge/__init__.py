"""Knowledge base loading."""

from kb_chat.knowledge.markdown_source import MarkdownKnowledgeSource

__all__ = ["MarkdownKnowledgeSource"]
