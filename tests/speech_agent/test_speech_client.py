"""Tests for the dispatcher, pre-flight validation and the process singleton."""
from unittest.mock import MagicMock

import pytest

from speech_agent import speech_client as speech_client_module
from speech_agent.config import Settings, TTSProvider
from speech_agent.errors import ConfigurationError, UnsupportedOperationError
from speech_agent.gemini_client import GeminiProvider
from speech_agent.models import SynthesisOptions
from speech_agent.providers import MinimaxProvider
from speech_agent.rate_limiter import RateLimiter
from speech_agent.speech_client import SpeechClient, get_speech_client, validate_tts_config


@pytest.mark.asyncio
async def test_default_provider_is_edge(stub_providers):
    client = SpeechClient(stub_providers)

    result = await client.synthesize("  你好  ", "Host1")

    assert result.provider == TTSProvider.EDGE
    assert stub_providers[TTSProvider.EDGE].calls == [("synthesize", "你好", "Host1")]


@pytest.mark.asyncio
async def test_routes_to_requested_provider(stub_providers):
    client = SpeechClient(stub_providers)

    result = await client.synthesize("hello", "Host2", SynthesisOptions(provider=TTSProvider.MURF))

    assert result.provider == TTSProvider.MURF
    assert stub_providers[TTSProvider.EDGE].calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n"])
async def test_empty_text_is_rejected(stub_providers, text):
    client = SpeechClient(stub_providers)
    with pytest.raises(ConfigurationError):
        await client.synthesize(text, "Host1")
    assert all(not p.calls for p in stub_providers.values())


@pytest.mark.asyncio
async def test_gemini_single_line_rejected_with_zero_transport_calls(stub_providers):
    factory = MagicMock()
    stub_providers[TTSProvider.GEMINI] = GeminiProvider(api_key="gemini-key", client_factory=factory)
    client = SpeechClient(stub_providers)

    with pytest.raises(UnsupportedOperationError):
        await client.synthesize("Host1: hi", "Host1", SynthesisOptions(provider=TTSProvider.GEMINI))

    factory.assert_not_called()


def test_dispatch_table_must_cover_every_provider(stub_providers):
    del stub_providers[TTSProvider.MURF]
    with pytest.raises(ConfigurationError, match="murf"):
        SpeechClient(stub_providers)


@pytest.mark.asyncio
async def test_script_defaults_to_multi_speaker_backend(stub_providers, roster_options):
    client = SpeechClient(stub_providers)
    lines = ["Host1: hi", "Host2: hello"]

    result = await client.synthesize_script(lines, roster_options.model_copy(update={"provider": None}))

    assert result.provider == TTSProvider.GEMINI
    assert stub_providers[TTSProvider.GEMINI].calls == [("synthesize_script", lines)]


@pytest.mark.asyncio
async def test_script_to_single_speaker_backend_is_rejected(stub_providers):
    client = SpeechClient(stub_providers)
    with pytest.raises(UnsupportedOperationError):
        await client.synthesize_script(["Host1: hi"], SynthesisOptions(provider=TTSProvider.MINIMAX))
    assert stub_providers[TTSProvider.MINIMAX].calls == []


def test_default_table_shares_rate_limiter():
    limiter = RateLimiter(1.15)
    client = SpeechClient(rate_limiter=limiter)

    minimax = client.providers[TTSProvider.MINIMAX]
    assert isinstance(minimax, MinimaxProvider)
    assert minimax.rate_limiter is limiter
    assert set(client.providers) == set(TTSProvider)


def test_get_speech_client_is_singleton(monkeypatch):
    monkeypatch.setattr(speech_client_module, "_speech_client_instance", None)
    first = get_speech_client()
    assert get_speech_client() is first
    assert first.rate_limiter is first.providers[TTSProvider.MINIMAX].rate_limiter


@pytest.mark.asyncio
async def test_module_level_synthesize_uses_singleton(monkeypatch, stub_providers):
    monkeypatch.setattr(speech_client_module, "_speech_client_instance", SpeechClient(stub_providers))
    result = await speech_client_module.synthesize("hi", "Host1", SynthesisOptions(provider=TTSProvider.MINIMAX))
    assert result.provider == TTSProvider.MINIMAX


# --- validate_tts_config ---

def make_settings(**overrides) -> Settings:
    values = dict(ENVIRONMENT="development", GEMINI_API_KEY=None, TTS_API_KEY=None, TTS_API_ID=None)
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.mark.parametrize("provider", [None, "", "   "])
def test_validate_requires_provider(provider):
    with pytest.raises(ConfigurationError, match="required"):
        validate_tts_config(provider, make_settings())


def test_validate_rejects_unknown_provider():
    with pytest.raises(ConfigurationError, match="Unsupported"):
        validate_tts_config("polly", make_settings())


def test_edge_allowed_outside_production():
    assert validate_tts_config("edge", make_settings()) == TTSProvider.EDGE
    assert validate_tts_config(" EDGE ", make_settings(ENVIRONMENT="Staging")) == TTSProvider.EDGE


def test_edge_rejected_in_production():
    with pytest.raises(ConfigurationError, match="Unsupported"):
        validate_tts_config("edge", make_settings(ENVIRONMENT="Production"))


def test_gemini_requires_key():
    with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
        validate_tts_config("gemini", make_settings())
    assert validate_tts_config("gemini", make_settings(GEMINI_API_KEY="k")) == TTSProvider.GEMINI


@pytest.mark.parametrize("overrides, missing", [
    ({}, "TTS_API_KEY"),
    ({"TTS_API_KEY": "k"}, "TTS_API_ID"),
])
def test_minimax_requires_key_and_group(overrides, missing):
    with pytest.raises(ConfigurationError, match=missing):
        validate_tts_config("minimax", make_settings(**overrides))


def test_minimax_and_murf_with_credentials():
    settings = make_settings(TTS_API_KEY="k", TTS_API_ID="g", ENVIRONMENT="production")
    assert validate_tts_config("minimax", settings) == TTSProvider.MINIMAX
    assert validate_tts_config("murf", settings) == TTSProvider.MURF


def test_murf_requires_key():
    with pytest.raises(ConfigurationError, match="TTS_API_KEY"):
        validate_tts_config("murf", make_settings())
