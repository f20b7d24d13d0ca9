# speech_agent/models.py

from typing import Optional, Dict, List, Literal, Union
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import TTSProvider

# Lower bound on any computed retry delay, seconds.
MIN_RETRY_DELAY = 1.0


class SpeakerVoice(BaseModel):
    """One entry of a multi-speaker roster."""
    model_config = ConfigDict(frozen=True)

    speaker: str = Field(..., min_length=1, description="Speaker tag as it appears in the script")
    voice: str = Field("", description="Backend voice identifier; required by multi-speaker backends")


class SynthesisOptions(BaseModel):
    """Per-call synthesis configuration supplied by the runtime config store.

    `voices_by_speaker` keeps insertion order: the first key is the
    primary speaker for the position-based voice fallback.
    """
    model_config = ConfigDict(frozen=True)

    provider: Optional[TTSProvider] = Field(None, description="Backend to use; defaults to DEFAULT_TTS_PROVIDER")
    language: Optional[str] = Field(None, description="Language/locale code (e.g., 'zh-CN')")
    language_boost: Optional[Literal["auto", "Chinese", "English"]] = Field(None, description="MiniMax language boost")
    model: Optional[str] = Field(None, description="Backend model identifier")
    speed: Optional[Union[float, str]] = Field(None, description="Backend-specific speed encoding")
    api_url: Optional[str] = Field(None, description="Override endpoint")
    voices_by_speaker: Dict[str, str] = Field(default_factory=dict)
    prompt_template: Optional[str] = Field(None, description="Instruction preamble for multi-speaker backends")
    speaker_roster: List[SpeakerVoice] = Field(default_factory=list)


class RetryPolicy(BaseModel):
    """Backoff policy; delays are in seconds."""
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(5, ge=1)
    base_delay: float = Field(2.0, gt=0)
    max_delay: float = Field(30.0, ge=MIN_RETRY_DELAY)
    jitter_ratio: float = Field(0.2, ge=0.0, le=1.0)


class SynthesisResult(BaseModel):
    audio: bytes
    mime_type: str
    extension: str
    provider: TTSProvider

    @property
    def size(self) -> int:
        return len(self.audio)


class ClassifiedError(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Optional[int] = None
    code: Optional[Union[int, str]] = None
    message: str
    retryable: bool


# --- API models ---

class TTSRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Dialogue line to synthesize")
    speaker: str = Field("", description="Speaker tag used for voice selection")
    options: SynthesisOptions = Field(default_factory=SynthesisOptions)


class ScriptRequest(BaseModel):
    lines: List[str] = Field(..., min_length=1, description="Dialogue lines, each prefixed with a speaker tag")
    options: SynthesisOptions = Field(default_factory=SynthesisOptions)

    @field_validator("lines")
    @classmethod
    def check_not_all_blank(cls, v: List[str]) -> List[str]:
        if not any(line.strip() for line in v):
            raise ValueError("At least one non-blank line is required.")
        return v


class TTSResponse(BaseModel):
    audio_base64: str = Field(..., description="Base64-encoded audio data")
    provider: str = Field(..., description="TTS provider used")
    mime_type: str = Field(..., description="MIME type of the audio")
    format: str = Field(..., description="File extension (e.g., mp3, wav)")
    size_bytes: int = Field(..., description="Audio size in bytes")
    elapsed_time: Optional[float] = Field(None, description="Time taken for synthesis in seconds")


class ProviderDescription(BaseModel):
    name: str
    multi_speaker: bool
    configured: bool


class ProvidersResponse(BaseModel):
    default: str
    providers: List[ProviderDescription]


class ValidationResponse(BaseModel):
    provider: str
    valid: bool


class HealthResponse(BaseModel):
    status: str
    agent: str
    version: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    default_tts_provider: str
    tts_providers: List[str]
