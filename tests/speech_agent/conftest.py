"""Pytest fixtures for speech agent tests."""
import os
import sys
from typing import List, Optional, Sequence

import pytest

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from speech_agent.config import TTSProvider
from speech_agent.models import SpeakerVoice, SynthesisOptions, SynthesisResult
from speech_agent.providers import SpeechProvider


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records delays and advances a FakeClock."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class StubProvider(SpeechProvider):
    """In-memory backend returning canned audio."""

    def __init__(self, provider: TTSProvider, supports_single_line: bool = True, supports_script: bool = False,
                 error: Optional[Exception] = None):
        super().__init__(timeout=1)
        self.provider = provider
        self.supports_single_line = supports_single_line
        self.supports_script = supports_script
        self.error = error
        self.calls: list = []

    async def synthesize(self, text: str, speaker: str, options: SynthesisOptions) -> SynthesisResult:
        self.calls.append(("synthesize", text, speaker))
        if self.error:
            raise self.error
        return SynthesisResult(audio=b"ID3-audio", mime_type="audio/mpeg", extension="mp3", provider=self.provider)

    async def synthesize_script(self, lines: Sequence[str], options: SynthesisOptions) -> SynthesisResult:
        self.calls.append(("synthesize_script", list(lines)))
        if self.error:
            raise self.error
        return SynthesisResult(audio=b"RIFF-audio", mime_type="audio/wav", extension="wav", provider=self.provider)


def make_stub_providers(**errors: Exception) -> dict:
    return {
        TTSProvider.EDGE: StubProvider(TTSProvider.EDGE, error=errors.get("edge")),
        TTSProvider.MINIMAX: StubProvider(TTSProvider.MINIMAX, error=errors.get("minimax")),
        TTSProvider.MURF: StubProvider(TTSProvider.MURF, error=errors.get("murf")),
        TTSProvider.GEMINI: StubProvider(
            TTSProvider.GEMINI, supports_single_line=False, supports_script=True, error=errors.get("gemini")
        ),
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)


@pytest.fixture
def stub_providers():
    return make_stub_providers()


@pytest.fixture
def roster_options():
    return SynthesisOptions(
        provider=TTSProvider.GEMINI,
        speaker_roster=[SpeakerVoice(speaker="Host1", voice="Puck"), SpeakerVoice(speaker="Host2", voice="Zephyr")],
    )


@pytest.fixture
def script_lines():
    return [
        "Host1: 欢迎收听本期节目。",
        "",
        "   Host2：今天我们聊聊市场。  ",
        "Narrator: this line is not in the roster",
        "Host1 好的，开始吧。",
    ]
