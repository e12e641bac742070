import pytest

from typewriter_chat.providers import create_provider
from typewriter_chat.providers.openrouter_client import OpenRouterClient
from typewriter_chat.providers.registry import OPENROUTER_CONFIG, get_model_config


class DummySettings:
    openrouter_base_url = "https://openrouter.ai/api/v1"
    default_model = "chat"
    http_timeout = 1.0
    max_attempts = 3
    backoff_base_ms = 1000
    backoff_max_ms = 8000
    app_referer = "http://localhost"
    app_title = "AI-ChatBot"


def test_create_provider_default(monkeypatch):
    monkeypatch.setattr("typewriter_chat.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, OpenRouterClient)
    assert provider.name == "openrouter"
    assert isinstance(create_provider("OpenRouter"), OpenRouterClient)


def test_create_provider_unknown():
    with pytest.raises(KeyError):
        create_provider("unknown")


def test_model_config_lookup():
    model = get_model_config(OPENROUTER_CONFIG, "chat")
    assert model.provider_model == "mistralai/mistral-7b-instruct"
    assert model.max_tokens == 2000
    assert model.default_temperature == 0.7

    passthrough = get_model_config(OPENROUTER_CONFIG, "openai/gpt-4o-mini")
    assert passthrough.provider_model == "openai/gpt-4o-mini"
    assert passthrough.max_tokens == 2000
