# speech_agent/config.py

import logging
from enum import Enum
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class TTSProvider(str, Enum):
    EDGE = "edge"
    MINIMAX = "minimax"
    MURF = "murf"
    GEMINI = "gemini"


# Backends that only accept a whole multi-speaker script.
MULTI_SPEAKER_PROVIDERS = frozenset({TTSProvider.GEMINI})


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # "production" disables the edge backend in validation
    TIMEOUT: int = 30  # Per-call deadline for MiniMax and Murf, seconds

    DEFAULT_TTS_PROVIDER: TTSProvider = TTSProvider.EDGE

    # Edge (baseline, no credentials)
    EDGE_DEFAULT_RATE: str = "+10%"

    # MiniMax and Murf share the TTS_* credentials
    TTS_API_ID: Optional[str] = None  # MiniMax GroupId
    TTS_API_KEY: Optional[str] = None

    # MiniMax settings
    MINIMAX_API_URL: str = "https://api.minimaxi.com/v1/t2a_v2"
    MINIMAX_MODEL: str = "speech-2.6-hd"
    MINIMAX_MAX_RPM: int = Field(default=60, gt=0)
    MINIMAX_RPM_BUFFER_MS: int = Field(default=150, ge=0)
    MINIMAX_MAX_RETRIES: int = Field(default=3, ge=0)
    MINIMAX_RETRY_BASE_MS: int = Field(default=1500, ge=0)

    # Murf settings
    MURF_API_URL: str = "https://api.murf.ai/v1/speech/stream"
    MURF_MODEL: str = "GEN2"

    # Gemini settings
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_TTS_MODEL: str = "gemini-2.5-flash-preview-tts"
    GEMINI_TIMEOUT: int = 600  # Whole-script synthesis is slow, seconds
    GEMINI_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    GEMINI_RETRY_BASE_DELAY: float = Field(default=2.0, gt=0)  # seconds
    GEMINI_RETRY_MAX_DELAY: float = Field(default=30.0, ge=1.0)  # seconds
    GEMINI_RETRY_JITTER: float = Field(default=0.2, ge=0.0, le=1.0)
    GEMINI_DEFAULT_PROMPT: str = "请用中文播报以下播客对话，语气自然、节奏流畅、音量稳定。"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def get_supported_tts_providers(self) -> List[TTSProvider]:
        if self.is_production:
            return [p for p in TTSProvider if p is not TTSProvider.EDGE]
        return list(TTSProvider)

    def has_credentials_for(self, provider: TTSProvider) -> bool:
        if provider == TTSProvider.EDGE:
            return True
        elif provider == TTSProvider.MINIMAX:
            return bool(_clean(self.TTS_API_KEY) and _clean(self.TTS_API_ID))
        elif provider == TTSProvider.MURF:
            return bool(_clean(self.TTS_API_KEY))
        elif provider == TTSProvider.GEMINI:
            return bool(_clean(self.GEMINI_API_KEY))
        return False


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


settings = Settings()


# Configure logging
log_level_to_set = settings.LOG_LEVEL.upper()
if not hasattr(logging, log_level_to_set):
    logging.warning(f"Invalid LOG_LEVEL '{log_level_to_set}' in Speech Agent settings. Defaulting to INFO.")
    log_level_to_set = "INFO"

logging.basicConfig(
    level=getattr(logging, log_level_to_set),
    format="%(asctime)s - %(name)s (SPEECH_AGENT) - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)
