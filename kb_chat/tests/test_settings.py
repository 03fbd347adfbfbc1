import pydantic
import pytest

from kb_chat.config.settings import CONFIG_FILE_ENV, Settings


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ["KNOWLEDGE_BASE_PATH", "CACHE_BACKEND", "TEMPERATURE", "MODEL_ID", "OPENAI_API_KEY", CONFIG_FILE_ENV]:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    cfg = Settings()
    assert cfg.default_provider == "openai"
    assert cfg.knowledge_base_path == "KnowledgeBase"
    assert cfg.cache_backend == "memory"
    assert cfg.temperature == 0.7
    assert cfg.max_output_tokens == 2000


def test_yaml_config_file(monkeypatch, tmp_path):
    config = tmp_path / "custom.yaml"
    config.write_text("knowledge_base_path: docs\ncache_backend: json\ntemperature: 0.1\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_FILE_ENV, str(config))
    cfg = Settings()
    assert cfg.knowledge_base_path == "docs"
    assert cfg.cache_backend == "json"
    assert cfg.temperature == 0.1


def test_env_overrides_yaml(monkeypatch, tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("knowledge_base_path: from-yaml\n", encoding="utf-8")
    monkeypatch.setenv("KNOWLEDGE_BASE_PATH", "from-env")
    assert Settings().knowledge_base_path == "from-env"
    assert Settings(knowledge_base_path="from-init").knowledge_base_path == "from-init"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"temperature": 2.5},
        {"max_output_tokens": 0},
        {"cache_backend": "redis"},
        {"openai_api_key": "short"},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(pydantic.ValidationError):
        Settings(**kwargs)


def test_log_level_normalized():
    assert Settings(log_level="debug").log_level == "DEBUG"
