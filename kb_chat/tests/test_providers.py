import pydantic
import pytest

from kb_chat.domain.exceptions import ValidationError
from kb_chat.domain.models import GenerationOptions
from kb_chat.providers import create_provider
from kb_chat.providers.chat_completions import ChatCompletionsClient
from kb_chat.providers.registry import get_provider_config


class DummySettings:
    default_provider = "openai"
    model_id = ""
    temperature = 0.7
    max_output_tokens = 2000
    http_timeout = 1.0
    openai_api_key = "sk-openai-123456"
    openai_base_url = "https://api.openai.com/v1"
    kimi_api_key = "kimi-key-123456"
    kimi_base_url = "https://api.moonshot.cn/v1"
    glm_api_key = None
    glm_base_url = "https://open.bigmodel.cn/api/paas/v4"


def test_create_provider_default():
    provider = create_provider(DummySettings())
    assert isinstance(provider, ChatCompletionsClient)
    assert provider.name == "openai"
    assert provider.options.model_id == "gpt-4"
    assert provider.options.max_output_tokens == 2000


def test_create_provider_explicit():
    provider = create_provider(DummySettings(), "KIMI")
    assert provider.name == "kimi"
    assert provider.options.model_id == "kimi-k2-turbo-preview"


def test_create_provider_uses_configured_model():
    cfg = DummySettings()
    cfg.model_id = "gpt-4o-mini"
    assert create_provider(cfg).options.model_id == "gpt-4o-mini"


def test_create_provider_rejects_out_of_range_options():
    cfg = DummySettings()
    cfg.temperature = 2.5
    with pytest.raises(ValidationError) as exc:
        create_provider(cfg)
    assert exc.value.code == "INVALID_GENERATION_OPTIONS"


def test_unknown_provider():
    with pytest.raises(ValidationError):
        get_provider_config("nope")
    with pytest.raises(ValidationError):
        create_provider(DummySettings(), "nope")


def test_generation_options_validation():
    opts = GenerationOptions.from_mapping({"model_id": "m", "temperature": 0, "max_output_tokens": 1})
    assert opts.temperature == 0
    with pytest.raises(ValidationError):
        GenerationOptions.from_mapping({"model_id": "m", "top_k": 3})
    with pytest.raises(ValidationError):
        GenerationOptions.from_mapping({"model_id": "", "temperature": 0.5})
    with pytest.raises(ValidationError):
        GenerationOptions.from_mapping({"model_id": "m", "max_output_tokens": 0})


def test_generation_options_are_immutable():
    opts = GenerationOptions(model_id="m")
    with pytest.raises(pydantic.ValidationError):
        opts.temperature = 1.0
