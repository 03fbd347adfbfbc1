"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护各 Provider 的 base_url 与默认模型 (registry)。
- 提供 chat/completions 协议的具体实现 (chat_completions)。
"""

from typing import Optional

from kb_chat.config.settings import Settings
from kb_chat.domain.models import GenerationOptions
from kb_chat.providers.base import ProviderClient
from kb_chat.providers.chat_completions import ChatCompletionsClient
from kb_chat.providers.registry import get_provider_config


def create_provider(cfg: Settings, name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。

    生成参数在这里一次性校验，非法取值直接抛出 ValidationError。
    """

    provider_cfg = get_provider_config(name or getattr(cfg, "default_provider", "openai"))
    options = GenerationOptions.from_mapping(
        {
            "model_id": getattr(cfg, "model_id", "") or provider_cfg.default_model,
            "temperature": cfg.temperature,
            "max_output_tokens": cfg.max_output_tokens,
        }
    )
    return ChatCompletionsClient(
        provider_cfg,
        api_key=getattr(cfg, f"{provider_cfg.name}_api_key", None),
        options=options,
        http_timeout=cfg.http_timeout,
        base_url=getattr(cfg, f"{provider_cfg.name}_base_url", None),
    )
