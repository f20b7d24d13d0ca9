# speech_agent/providers.py

"""Single-speaker speech backends: Edge (baseline), MiniMax (strict RPM) and Murf (low cost)."""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union

import edge_tts
import httpx

from .audio import normalize_audio
from .config import settings, TTSProvider
from .errors import ConfigurationError, EmptyAudioError, ProviderError, TTSError, UnsupportedOperationError, classify_error
from .models import SynthesisOptions, SynthesisResult
from .rate_limiter import RateLimiter
from .voices import EDGE_VOICES, MINIMAX_VOICES, MURF_VOICES, resolve_voice

logger = logging.getLogger(__name__)

Speed = Optional[Union[float, str]]


class SpeechProvider:
    """Base class for speech backends."""

    provider: TTSProvider
    supports_single_line: bool = True
    supports_script: bool = False

    def __init__(self, timeout: int = settings.TIMEOUT):
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.provider.value

    async def synthesize(self, text: str, speaker: str, options: SynthesisOptions) -> SynthesisResult:
        """Synthesize one dialogue line spoken by `speaker`."""
        raise NotImplementedError

    async def synthesize_script(self, lines: Sequence[str], options: SynthesisOptions) -> SynthesisResult:
        """Synthesize a whole multi-speaker dialogue in one call."""
        raise UnsupportedOperationError(f"{self.name} TTS does not support multi-speaker script synthesis")

    def _classified(self, error: TTSError) -> TTSError:
        """Attach the ClassifiedError to a final failure and log it."""
        classified = classify_error(error)
        error.classified = classified
        logger.error(
            f"{self.name}: request failed (status={classified.status}, code={classified.code}, "
            f"retryable={classified.retryable}): {classified.message}"
        )
        return error

    def _build_result(self, audio: bytes, mime_type: str) -> SynthesisResult:
        if not audio:
            raise self._classified(EmptyAudioError(self.name, "Backend returned empty audio data"))
        data, final_mime, extension = normalize_audio(audio, mime_type)
        return SynthesisResult(audio=data, mime_type=final_mime, extension=extension, provider=self.provider)


def resolve_edge_rate(speed: Speed, fallback: str) -> str:
    """Edge expects a signed percentage such as '+10%' or '-5%'."""
    if speed is None:
        return fallback
    if isinstance(speed, (int, float)):
        return f"{int(round(speed)):+d}%"
    text = speed.strip()
    if not text:
        return fallback
    if text[0].isdigit():
        text = f"+{text}"
    if not text.endswith("%"):
        text = f"{text}%"
    return text


def numeric_speed(speed: Speed, default: float, provider: str) -> float:
    if speed is None or (isinstance(speed, str) and not speed.strip()):
        return default
    try:
        return float(speed)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{provider} TTS speed must be numeric, got {speed!r}") from e


class EdgeProvider(SpeechProvider):
    provider = TTSProvider.EDGE

    def __init__(self, default_rate: str = settings.EDGE_DEFAULT_RATE, timeout: int = settings.TIMEOUT):
        super().__init__(timeout)
        self.default_rate = default_rate

    async def synthesize(self, text: str, speaker: str, options: SynthesisOptions) -> SynthesisResult:
        voice = resolve_voice(speaker, options.voices_by_speaker, EDGE_VOICES)
        rate = resolve_edge_rate(options.speed, self.default_rate)
        logger.debug(f"Edge TTS: voice={voice}, rate={rate}, chars={len(text)}")

        audio = bytearray()
        try:
            communicate = edge_tts.Communicate(text, voice, rate=rate)
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    audio.extend(chunk["data"])
        except Exception as e:
            raise self._classified(ProviderError(self.name, f"Synthesis failed: {e}", e)) from e
        return self._build_result(bytes(audio), "audio/mpeg")


def is_rate_limit_message(message: str) -> bool:
    """MiniMax reports RPM throttling in-band; only the wording identifies it."""
    normalized = (message or "").lower()
    return "rate limit" in normalized and "rpm" in normalized


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class MinimaxProvider(SpeechProvider):
    """MiniMax t2a_v2. Every attempt, retries included, passes through the shared RateLimiter."""

    provider = TTSProvider.MINIMAX

    def __init__(
        self,
        rate_limiter: RateLimiter,
        api_key: Optional[str] = None,
        group_id: Optional[str] = None,
        api_url: str = settings.MINIMAX_API_URL,
        model: str = settings.MINIMAX_MODEL,
        max_retries: int = settings.MINIMAX_MAX_RETRIES,
        retry_base_delay: float = settings.MINIMAX_RETRY_BASE_MS / 1000.0,
        timeout: int = settings.TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(timeout)
        self.rate_limiter = rate_limiter
        self.api_key = api_key or settings.TTS_API_KEY
        self.group_id = group_id or settings.TTS_API_ID
        self.api_url = api_url
        self.model = model
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

    def _check_credentials(self) -> None:
        if not (self.api_key or "").strip():
            raise ConfigurationError("TTS_API_KEY is required when tts.provider=minimax")
        if not (self.group_id or "").strip():
            raise ConfigurationError("TTS_API_ID is required when tts.provider=minimax")

    def _payload(self, text: str, voice_id: str, options: SynthesisOptions) -> Dict[str, Any]:
        return {
            "model": options.model or self.model,
            "text": text,
            "timber_weights": [{"voice_id": voice_id, "weight": 100}],
            "voice_setting": {
                "voice_id": "",
                "speed": numeric_speed(options.speed, 1.1, self.name),
                "pitch": 0,
                "vol": 1,
                "latex_read": False,
            },
            "audio_setting": {"sample_rate": 32000, "bitrate": 128000, "format": "mp3"},
            "language_boost": options.language_boost or "Chinese",
        }

    async def _request(self, payload: Dict[str, Any], api_url: str) -> bytes:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                api_url,
                params={"GroupId": self.group_id},
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )
        body = _json_or_empty(response)
        base_resp = body.get("base_resp") or {}
        status_msg = base_resp.get("status_msg") or ""

        if not response.is_success:
            raise ProviderError(
                self.name,
                f"MiniMax HTTP {response.status_code}: {status_msg or response.reason_phrase}",
                status=response.status_code,
                code=base_resp.get("status_code"),
            )

        audio_hex = (body.get("data") or {}).get("audio")
        if audio_hex:
            try:
                return bytes.fromhex(audio_hex)
            except ValueError as e:
                raise ProviderError(self.name, "MiniMax returned malformed hex audio", e) from e
        raise ProviderError(self.name, f"MiniMax API error: {status_msg or 'unknown'}", code=base_resp.get("status_code"))

    async def synthesize(self, text: str, speaker: str, options: SynthesisOptions) -> SynthesisResult:
        self._check_credentials()
        voice_id = resolve_voice(speaker, options.voices_by_speaker, MINIMAX_VOICES)
        payload = self._payload(text, voice_id, options)
        api_url = options.api_url or self.api_url

        for attempt in range(self.max_retries + 1):
            await self.rate_limiter.acquire()
            try:
                audio = await self._request(payload, api_url)
                return self._build_result(audio, "audio/mpeg")
            except (ProviderError, httpx.HTTPError) as e:
                message = e.message if isinstance(e, ProviderError) else str(e)
                if not is_rate_limit_message(message) or attempt >= self.max_retries:
                    if isinstance(e, ProviderError):
                        raise self._classified(e)
                    raise self._classified(ProviderError(self.name, f"MiniMax request failed: {e}", e)) from e
                delay = self.retry_base_delay * (attempt + 1)
                logger.warning(f"MiniMax rate limit, retry in {delay:.2f}s (attempt {attempt + 1}/{self.max_retries})")
                await self._sleep(delay)

        raise self._classified(ProviderError(self.name, "MiniMax TTS failed after retries"))


class MurfProvider(SpeechProvider):
    """Murf streaming endpoint; cheaper than MiniMax and returns MP3 bytes directly."""

    provider = TTSProvider.MURF

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: str = settings.MURF_API_URL,
        model: str = settings.MURF_MODEL,
        timeout: int = settings.TIMEOUT,
    ):
        super().__init__(timeout)
        self.api_key = api_key or settings.TTS_API_KEY
        self.api_url = api_url
        self.model = model

    async def synthesize(self, text: str, speaker: str, options: SynthesisOptions) -> SynthesisResult:
        if not (self.api_key or "").strip():
            raise ConfigurationError("TTS_API_KEY is required when tts.provider=murf")

        payload = {
            "text": text,
            "voiceId": resolve_voice(speaker, options.voices_by_speaker, MURF_VOICES),
            "model": options.model or self.model,
            "multiNativeLocale": options.language or "zh-CN",
            "style": "Conversational",
            "rate": int(round(numeric_speed(options.speed, -8, self.name))),
            "pitch": 0,
            "format": "MP3",
        }
        started_at = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(options.api_url or self.api_url, headers={"api-key": self.api_key}, json=payload)
        except httpx.HTTPError as e:
            raise self._classified(ProviderError(self.name, f"Murf request failed: {e}", e)) from e

        if not response.is_success:
            raise self._classified(
                ProviderError(self.name, f"Failed to fetch audio: {response.reason_phrase}", status=response.status_code)
            )

        logger.debug(f"Murf TTS: {len(response.content)} bytes in {time.perf_counter() - started_at:.2f}s")
        return self._build_result(response.content, "audio/mpeg")
