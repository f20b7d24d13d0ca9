# speech_agent/voices.py

"""Voice selection for single-speaker backends."""
from typing import Mapping, NamedTuple


class VoicePair(NamedTuple):
    primary: str  # the "male" default
    secondary: str  # the "female" default


EDGE_VOICES = VoicePair("zh-CN-YunyangNeural", "zh-CN-XiaoxiaoNeural")
MINIMAX_VOICES = VoicePair("Chinese (Mandarin)_Gentleman", "Chinese (Mandarin)_Gentle_Senior")
MURF_VOICES = VoicePair("en-US-ken", "en-UK-ruby")


def default_voice_for_speaker_index(index: int, defaults: VoicePair) -> str:
    """Position-based fallback: the first speaker gets the primary voice, all others the secondary.

    This is ordering only; nothing is inferred from the speaker's name.
    """
    return defaults.primary if index == 0 else defaults.secondary


def resolve_voice(speaker: str, voices_by_speaker: Mapping[str, str], defaults: VoicePair) -> str:
    mapped = voices_by_speaker.get(speaker)
    if mapped:
        return mapped
    speakers = list(voices_by_speaker)
    if speakers and speaker != speakers[0]:
        return default_voice_for_speaker_index(1, defaults)
    return default_voice_for_speaker_index(0, defaults)
