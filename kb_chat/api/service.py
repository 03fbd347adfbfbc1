"""对外装配模块。

根据配置组装知识源、Provider、缓存与编排器。
不持有任何模块级单例，每次调用都返回一个独立的会话。
"""

from pathlib import Path
from typing import Optional

from kb_chat.agents.orchestrator import ConversationOrchestrator, OrchestratorConfig
from kb_chat.config.settings import Settings
from kb_chat.domain.cache import ResponseCache
from kb_chat.domain.exceptions import ValidationError
from kb_chat.infrastructure.cache.json_cache import JsonFileResponseCache
from kb_chat.infrastructure.cache.memory_cache import MemoryResponseCache, NullResponseCache
from kb_chat.infrastructure.logging.logger import get_logger
from kb_chat.knowledge import MarkdownKnowledgeSource
from kb_chat.providers import create_provider
from kb_chat.providers.base import ProviderClient


log = get_logger("service")


def create_cache(cfg: Settings) -> ResponseCache:
    """按 cache_backend 选择缓存实现。"""

    backend = cfg.cache_backend
    if backend == "memory":
        return MemoryResponseCache()
    if backend == "json":
        return JsonFileResponseCache(root=cfg.cache_root)
    if backend == "none":
        return NullResponseCache()
    raise ValidationError(code="UNKNOWN_CACHE_BACKEND", message=f"Unknown cache backend: {backend!r}")


def create_knowledge_source(cfg: Settings) -> MarkdownKnowledgeSource:
    return MarkdownKnowledgeSource(root=Path(cfg.knowledge_base_path), pattern=cfg.knowledge_base_pattern)


def build_orchestrator(
    cfg: Settings,
    provider: Optional[ProviderClient] = None,
    cache: Optional[ResponseCache] = None,
) -> ConversationOrchestrator:
    """组装一个新的会话编排器。

    Args:
        cfg: 应用配置
        provider: 可选的 Provider 实例（不提供则按配置创建）
        cache: 可选的缓存实例（不提供则按 cache_backend 创建）

    Returns:
        尚未加载知识库的 ConversationOrchestrator

    Raises:
        ValidationError: 生成参数、Provider 名或缓存后端不合法
    """
    provider = provider or create_provider(cfg)
    cache = cache if cache is not None else create_cache(cfg)
    orchestrator = ConversationOrchestrator(
        provider=provider,
        knowledge_source=create_knowledge_source(cfg),
        cache=cache,
        config=OrchestratorConfig(cache_ttl_seconds=cfg.cache_ttl_seconds),
    )
    log.info(
        "Orchestrator ready",
        extra={"extra": {
            "provider": provider.name,
            "model": provider.options.model_id,
            "cache_backend": cfg.cache_backend,
            "knowledge_base_path": cfg.knowledge_base_path,
        }},
    )
    return orchestrator
