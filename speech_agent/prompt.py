# speech_agent/prompt.py

"""Multi-speaker script assembly for backends that synthesize a whole dialogue."""
import logging
from typing import List, Optional, Sequence

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Characters that may follow a speaker tag ("Host1: ...", "Host1：...").
SPEAKER_SEPARATORS = (":", "：")


def line_speaker(line: str, speakers: Sequence[str]) -> Optional[str]:
    """Return the roster speaker whose tag opens `line`, if any."""
    for speaker in speakers:
        if not line.startswith(speaker):
            continue
        rest = line[len(speaker):]
        if not rest or rest[0] in SPEAKER_SEPARATORS or rest[0].isspace():
            return speaker
    return None


def filter_script_lines(lines: Sequence[str], speakers: Sequence[str]) -> List[str]:
    """Trim lines and keep only those tagged with a known speaker."""
    kept = []
    for raw in lines:
        line = raw.strip()
        if line and line_speaker(line, speakers) is not None:
            kept.append(line)
    return kept


def build_multi_speaker_prompt(lines: Sequence[str], speakers: Sequence[str], preamble: str = "") -> str:
    """Render dialogue lines into the prompt a multi-speaker backend expects.

    Raises ConfigurationError when the roster is empty or when no line
    survives filtering; both mean the upstream script and config disagree.
    """
    roster = [speaker.strip() for speaker in speakers if speaker and speaker.strip()]
    if not roster:
        raise ConfigurationError("Multi-speaker synthesis requires a speaker roster with at least one speaker")

    cleaned = filter_script_lines(lines, roster)
    if not cleaned:
        raise ConfigurationError("Multi-speaker prompt is empty: no valid speaker lines found")

    dropped = len(lines) - len(cleaned)
    if dropped:
        logger.debug(f"Prompt builder dropped {dropped} blank or untagged line(s)")

    preamble = (preamble or "").strip()
    return "\n".join([preamble, *cleaned] if preamble else cleaned)
