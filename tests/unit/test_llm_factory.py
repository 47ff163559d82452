"""Unit tests for LLM factory and provider selection."""

import pytest

from app.config import Settings
from app.services.llm_base import LLMNotConfiguredError, extract_json_object
from app.services.llm_factory import (
    LLMStartupError,
    create_llm_client,
    get_llm_status,
    resolve_provider,
)


def _settings(**overrides) -> Settings:
    values = {"anthropic_api_key": None, "openai_api_key": None}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestResolveProvider:
    """Tests for provider resolution logic."""

    def test_auto_prefers_anthropic_when_both_keys(self):
        settings = _settings(anthropic_api_key="sk-ant-test", openai_api_key="sk-test")
        assert resolve_provider(settings) == ("anthropic", "sk-ant-test")

    def test_auto_falls_back_to_openai(self):
        settings = _settings(openai_api_key="sk-test")
        assert resolve_provider(settings) == ("openai", "sk-test")

    def test_auto_without_keys(self):
        assert resolve_provider(_settings()) == (None, None)

    def test_blank_keys_count_as_missing(self):
        assert resolve_provider(_settings(anthropic_api_key="  ")) == (None, None)

    def test_explicit_provider_requires_its_key(self):
        with pytest.raises(LLMStartupError, match="ANTHROPIC_API_KEY"):
            resolve_provider(_settings(llm_provider="anthropic", openai_api_key="sk-test"))
        with pytest.raises(LLMStartupError, match="OPENAI_API_KEY"):
            resolve_provider(_settings(llm_provider="openai", anthropic_api_key="sk-ant"))

    def test_required_without_keys(self):
        with pytest.raises(LLMStartupError):
            resolve_provider(_settings(llm_required=True))


class TestLLMStatus:
    def test_enabled(self):
        status = get_llm_status(_settings(anthropic_api_key="sk-ant", answer_model="claude-x"))
        assert status.enabled is True
        assert status.provider_config == "auto"
        assert status.provider_resolved == "anthropic"
        assert status.model == "claude-x"

    def test_disabled(self):
        status = get_llm_status(_settings())
        assert status.enabled is False
        assert status.provider_resolved is None
        assert status.model is None


class TestCreateLLMClient:
    def test_anthropic_client(self):
        client = create_llm_client(_settings(anthropic_api_key="sk-ant", answer_model="claude-x"))
        assert client.provider == "anthropic"
        assert client.model == "claude-x"

    def test_openai_client(self):
        client = create_llm_client(_settings(openai_api_key="sk-test", answer_model="gpt-x"))
        assert client.provider == "openai"
        assert client.model == "gpt-x"

    def test_not_configured(self):
        with pytest.raises(LLMNotConfiguredError):
            create_llm_client(_settings())


class TestExtractJsonObject:
    def test_plain_object(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_object(self):
        assert extract_json_object('Sure!\n```json\n{"selected": [1, 2]}\n```') == {
            "selected": [1, 2]
        }

    def test_not_an_object(self):
        assert extract_json_object("[1, 2]") is None
        assert extract_json_object("{broken") is None
        assert extract_json_object("") is None
