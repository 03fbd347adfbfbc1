"""Provider 配置注册表。

所有已接入的 Provider 都兼容 OpenAI 的 chat/completions 协议，
差异只在 base_url 与默认模型上，因此集中在这里配置。"""

from dataclasses import dataclass
from typing import Mapping

from kb_chat.domain.exceptions import ValidationError


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    default_model: str


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    default_model="gpt-4",
)

KIMI_CONFIG = ProviderConfig(
    name="kimi",
    base_url="https://api.moonshot.cn/v1",
    default_model="kimi-k2-turbo-preview",
)

GLM_CONFIG = ProviderConfig(
    name="glm",
    base_url="https://open.bigmodel.cn/api/paas/v4",
    default_model="glm-4.6",
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openai": OPENAI_CONFIG,
    "kimi": KIMI_CONFIG,
    "glm": GLM_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise ValidationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {name!r}")
