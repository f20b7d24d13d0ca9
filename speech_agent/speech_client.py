# speech_agent/speech_client.py

import logging
from typing import Dict, Mapping, Optional, Sequence

from .config import MULTI_SPEAKER_PROVIDERS, Settings, settings, TTSProvider
from .errors import ConfigurationError, UnsupportedOperationError
from .gemini_client import GeminiProvider
from .models import SynthesisOptions, SynthesisResult
from .providers import EdgeProvider, MinimaxProvider, MurfProvider, SpeechProvider
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def validate_tts_config(provider: Optional[str], settings: Settings = settings) -> TTSProvider:
    """Pre-flight check that `provider` is usable with the current settings.

    Returns the resolved TTSProvider; raises ConfigurationError otherwise.
    """
    name = (provider or "").strip().lower()
    if not name:
        raise ConfigurationError("tts.provider is required")

    supported = settings.get_supported_tts_providers()
    try:
        resolved = TTSProvider(name)
    except ValueError:
        resolved = None
    if resolved is None or resolved not in supported:
        allowed = ", ".join(p.value for p in supported)
        raise ConfigurationError(f"Unsupported tts.provider '{name}'. Allowed in {settings.ENVIRONMENT}: {allowed}")

    if resolved == TTSProvider.GEMINI and not (settings.GEMINI_API_KEY or "").strip():
        raise ConfigurationError("GEMINI_API_KEY is required when tts.provider=gemini")
    if resolved == TTSProvider.MINIMAX:
        if not (settings.TTS_API_KEY or "").strip():
            raise ConfigurationError("TTS_API_KEY is required when tts.provider=minimax")
        if not (settings.TTS_API_ID or "").strip():
            raise ConfigurationError("TTS_API_ID is required when tts.provider=minimax")
    if resolved == TTSProvider.MURF and not (settings.TTS_API_KEY or "").strip():
        raise ConfigurationError("TTS_API_KEY is required when tts.provider=murf")
    return resolved


class SpeechClient:
    """Routes synthesis requests to the configured backend.

    Holds one client per TTSProvider member. The MiniMax client shares the
    RateLimiter passed in here, so build one SpeechClient per process (see
    get_speech_client) to keep the RPM floor process-wide.
    """

    def __init__(
        self,
        providers: Optional[Mapping[TTSProvider, SpeechProvider]] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if providers is None:
            if rate_limiter is None:
                rate_limiter = RateLimiter.from_rpm(
                    settings.MINIMAX_MAX_RPM, settings.MINIMAX_RPM_BUFFER_MS, name="minimax"
                )
            providers = {
                TTSProvider.EDGE: EdgeProvider(),
                TTSProvider.MINIMAX: MinimaxProvider(rate_limiter),
                TTSProvider.MURF: MurfProvider(),
                TTSProvider.GEMINI: GeminiProvider(),
            }

        missing = [p.value for p in TTSProvider if p not in providers]
        if missing:
            raise ConfigurationError(f"No speech client registered for provider(s): {', '.join(missing)}")

        self.providers: Dict[TTSProvider, SpeechProvider] = dict(providers)
        self.rate_limiter = rate_limiter

    def _resolve(self, options: SynthesisOptions) -> TTSProvider:
        return options.provider or settings.DEFAULT_TTS_PROVIDER

    async def synthesize(
        self, text: str, speaker: str = "", options: Optional[SynthesisOptions] = None
    ) -> SynthesisResult:
        options = options or SynthesisOptions()
        if not (text or "").strip():
            raise ConfigurationError("Text for synthesis must not be empty")

        provider = self._resolve(options)
        client = self.providers[provider]
        if not client.supports_single_line:
            raise UnsupportedOperationError(
                f"{provider.value} TTS only supports multi-speaker script synthesis; use synthesize_script"
            )

        logger.info(f"TTS: provider={provider.value}, speaker='{speaker}', text='{text[:30]}...'")
        result = await client.synthesize(text.strip(), speaker, options)
        logger.info(f"TTS: synthesized with {provider.value}, {result.size} bytes ({result.mime_type})")
        return result

    async def synthesize_script(
        self, lines: Sequence[str], options: Optional[SynthesisOptions] = None
    ) -> SynthesisResult:
        options = options or SynthesisOptions()
        provider = options.provider
        if provider is None:
            provider = next(p for p in TTSProvider if p in MULTI_SPEAKER_PROVIDERS)

        client = self.providers[provider]
        if not client.supports_script:
            raise UnsupportedOperationError(f"{provider.value} TTS does not support multi-speaker script synthesis")

        logger.info(f"TTS script: provider={provider.value}, lines={len(lines)}")
        result = await client.synthesize_script(lines, options)
        logger.info(f"TTS script: synthesized with {provider.value}, {result.size} bytes ({result.mime_type})")
        return result


_speech_client_instance: Optional[SpeechClient] = None


def get_speech_client() -> SpeechClient:
    global _speech_client_instance
    if _speech_client_instance is None:
        _speech_client_instance = SpeechClient()
    return _speech_client_instance


async def synthesize(text: str, speaker: str = "", options: Optional[SynthesisOptions] = None) -> SynthesisResult:
    return await get_speech_client().synthesize(text, speaker, options)


async def synthesize_script(lines: Sequence[str], options: Optional[SynthesisOptions] = None) -> SynthesisResult:
    return await get_speech_client().synthesize_script(lines, options)
