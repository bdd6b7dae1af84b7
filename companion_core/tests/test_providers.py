import pytest

from companion_core.domain.exceptions import ValidationError
from companion_core.domain.models import ProviderKind
from companion_core.prompts import load_system_prompt
from companion_core.providers import create_provider, ollama_client, selector
from companion_core.providers.mock_client import MockClient
from companion_core.providers.ollama_client import OllamaClient
from companion_core.providers.openai_client import OpenAIClient
from companion_core.providers.registry import PROVIDER_REGISTRY, get_provider_config


def test_registry_lookup_is_case_insensitive():
    assert get_provider_config("OLLAMA") is PROVIDER_REGISTRY["ollama"]
    assert get_provider_config("openai").kind is ProviderKind.CLOUD
    with pytest.raises(KeyError):
        get_provider_config("claude")


def test_create_provider_by_kind(make_settings):
    settings = make_settings(openai_api_key="sk-valid-key")
    assert isinstance(create_provider(ProviderKind.LOCAL, settings, directive="S"), OllamaClient)
    assert isinstance(create_provider("cloud", settings, directive="S"), OpenAIClient)
    assert isinstance(create_provider(ProviderKind.STAND_IN, settings, directive="S"), MockClient)


def test_create_cloud_provider_without_key(make_settings):
    with pytest.raises(ValidationError):
        create_provider(ProviderKind.CLOUD, make_settings(), directive="S")


def test_create_provider_loads_directive(make_settings):
    adapter = create_provider(ProviderKind.STAND_IN, make_settings(directive_locale="ja"))
    assert adapter.history()[0].content == load_system_prompt("ja")


def test_system_prompt_falls_back_to_english():
    assert load_system_prompt("xx") == load_system_prompt("en")
    assert load_system_prompt("en")


@pytest.mark.asyncio
async def test_non_local_registry_entry_is_not_probed(make_settings, monkeypatch):
    probed = []

    async def alive(endpoint, timeout=10.0):
        probed.append(endpoint)
        return True

    monkeypatch.setattr(ollama_client, "is_ollama_available", alive)
    adapter, _ = await selector.select_provider(make_settings(local_provider="openai"), directive="S")
    assert isinstance(adapter, MockClient)
    assert probed == []
