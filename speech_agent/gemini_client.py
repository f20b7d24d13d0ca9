# speech_agent/gemini_client.py

"""Gemini multi-speaker synthesis: one request renders a whole dialogue script."""
import asyncio
import base64
import binascii
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from google import genai
from google.genai import types as genai_types

from .audio import normalize_audio
from .config import settings, TTSProvider
from .errors import ConfigurationError, EmptyAudioError, UnsupportedOperationError
from .models import RetryPolicy, SpeakerVoice, SynthesisOptions, SynthesisResult
from .prompt import build_multi_speaker_prompt
from .providers import SpeechProvider
from .retry import with_backoff_retry

logger = logging.getLogger(__name__)

# Inline data without a MIME type is Gemini's native 16-bit mono PCM at 24 kHz.
DEFAULT_PCM_MIME_TYPE = "audio/L16;rate=24000"


def retry_policy_from_settings() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.GEMINI_MAX_ATTEMPTS,
        base_delay=settings.GEMINI_RETRY_BASE_DELAY,
        max_delay=settings.GEMINI_RETRY_MAX_DELAY,
        jitter_ratio=settings.GEMINI_RETRY_JITTER,
    )


def build_speech_config(roster: Sequence[SpeakerVoice]) -> genai_types.GenerateContentConfig:
    speaker_voice_configs = [
        genai_types.SpeakerVoiceConfig(
            speaker=entry.speaker,
            voice_config=genai_types.VoiceConfig(
                prebuilt_voice_config=genai_types.PrebuiltVoiceConfig(voice_name=entry.voice)
            ),
        )
        for entry in roster
    ]
    return genai_types.GenerateContentConfig(
        temperature=1.0,
        response_modalities=["AUDIO"],
        speech_config=genai_types.SpeechConfig(
            multi_speaker_voice_config=genai_types.MultiSpeakerVoiceConfig(
                speaker_voice_configs=speaker_voice_configs
            )
        ),
    )


def _parts(response: Any) -> List[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def extract_inline_audio(response: Any) -> Optional[Tuple[bytes, str]]:
    """First inline audio payload of the first candidate as (bytes, mime_type)."""
    for part in _parts(response):
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if not data:
            continue
        if isinstance(data, str):
            try:
                data = base64.b64decode(data, validate=True)
            except (binascii.Error, ValueError):
                continue
        mime_type = getattr(inline, "mime_type", None) or DEFAULT_PCM_MIME_TYPE
        return bytes(data), mime_type
    return None


def summarize_response(response: Any) -> Dict[str, Any]:
    candidates = getattr(response, "candidates", None) or []
    finish_reason = getattr(candidates[0], "finish_reason", None) if candidates else None
    text = " ".join(
        part.text for part in _parts(response) if getattr(part, "text", None)
    )
    return {
        "candidates": len(candidates),
        "finish_reason": str(finish_reason) if finish_reason is not None else None,
        "text": text[:200] or None,
        "has_inline_data": any(getattr(part, "inline_data", None) is not None for part in _parts(response)),
    }


class GeminiProvider(SpeechProvider):
    provider = TTSProvider.GEMINI
    supports_single_line = False
    supports_script = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = settings.GEMINI_TTS_MODEL,
        timeout: int = settings.GEMINI_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        client_factory: Callable[..., Any] = genai.Client,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(timeout)
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model = model
        self.retry_policy = retry_policy or retry_policy_from_settings()
        self._client_factory = client_factory
        self._sleep = sleep

    def _create_client(self, api_url: Optional[str] = None):
        return self._client_factory(
            api_key=self.api_key,
            http_options=genai_types.HttpOptions(base_url=api_url, timeout=self.timeout * 1000),
        )

    async def synthesize(self, text: str, speaker: str, options: SynthesisOptions) -> SynthesisResult:
        raise UnsupportedOperationError("Gemini TTS only supports multi-speaker script synthesis")

    async def synthesize_script(self, lines: Sequence[str], options: SynthesisOptions) -> SynthesisResult:
        if not (self.api_key or "").strip():
            raise ConfigurationError("GEMINI_API_KEY is required when tts.provider=gemini")
        roster = list(options.speaker_roster)
        if not roster:
            raise ConfigurationError("Gemini TTS requires a speaker roster with a voice for every speaker")
        missing = [entry.speaker for entry in roster if not entry.voice.strip()]
        if missing:
            raise ConfigurationError(f"Gemini TTS roster has no voice for speaker(s): {', '.join(missing)}")

        preamble = options.prompt_template or settings.GEMINI_DEFAULT_PROMPT
        prompt = build_multi_speaker_prompt(lines, [entry.speaker for entry in roster], preamble)
        config = build_speech_config(roster)
        model = options.model or self.model
        client = self._create_client(options.api_url)

        logger.info(f"Gemini TTS request start: model={model}, speakers={len(roster)}, chars={len(prompt)}")
        started_at = time.perf_counter()

        async def generate() -> Tuple[bytes, str]:
            response = await client.aio.models.generate_content(
                model=model, contents=prompt, config=config
            )
            audio = extract_inline_audio(response)
            if audio is None:
                logger.error(f"Gemini TTS response without audio: {summarize_response(response)}")
                raise EmptyAudioError(self.name, "Gemini TTS returned empty audio data")
            return audio

        data, mime_type = await with_backoff_retry(generate, self.retry_policy, label=self.name, sleep=self._sleep)
        generated_at = time.perf_counter()
        logger.info(f"Gemini TTS generate done in {generated_at - started_at:.2f}s ({len(data)} bytes, {mime_type})")

        audio, final_mime, extension = normalize_audio(data, mime_type)
        logger.info(f"Gemini TTS decode done in {time.perf_counter() - generated_at:.3f}s -> {extension}")
        return SynthesisResult(audio=audio, mime_type=final_mime, extension=extension, provider=self.provider)
