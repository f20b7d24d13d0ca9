# speech_agent/audio.py

"""Audio container normalization.

Backends return either a ready container (mp3, wav, ogg, webm) or raw
linear PCM tagged like ``audio/L16;rate=24000``. Raw PCM is wrapped in a
canonical 44-byte RIFF/WAVE header so podcast players accept it.
"""
import struct
from dataclasses import dataclass
from typing import Tuple

# MIME subtype -> file extension for containers passed through untouched.
CONTAINER_EXTENSIONS = {
    "wav": "wav",
    "x-wav": "wav",
    "mpeg": "mp3",
    "ogg": "ogg",
    "webm": "webm",
}

WAV_HEADER_SIZE = 44
WAV_MIME_TYPE = "audio/wav"

_WAV_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")
_PCM_FORMAT_TAG = 1
_FMT_CHUNK_SIZE = 16
_MAX_CHUNK_SIZE = 0xFFFFFFFF


@dataclass(frozen=True)
class PcmFormat:
    channels: int = 1
    sample_rate: int = 24000
    bits_per_sample: int = 16

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.channels * self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        return self.channels * self.bits_per_sample // 8


def _split_mime(mime_type: str) -> Tuple[str, list]:
    parts = [part.strip() for part in (mime_type or "").split(";")]
    return parts[0], parts[1:]


def _subtype(media_type: str) -> str:
    _, _, subtype = media_type.partition("/")
    return subtype.strip()


def extension_from_mime(mime_type: str) -> str:
    """Extension for a recognized container MIME type, '' otherwise."""
    media_type, _ = _split_mime(mime_type)
    return CONTAINER_EXTENSIONS.get(_subtype(media_type).lower(), "")


def _parse_int(value: str) -> int:
    digits = ""
    for char in value.strip():
        if not char.isdigit():
            break
        digits += char
    if not digits:
        raise ValueError(f"no leading integer in {value!r}")
    return int(digits)


def parse_pcm_format(mime_type: str) -> PcmFormat:
    """Read bits-per-sample from an ``L<bits>`` subtype and the ``rate=`` parameter."""
    media_type, params = _split_mime(mime_type)
    subtype = _subtype(media_type)

    channels = PcmFormat.channels
    sample_rate = PcmFormat.sample_rate
    bits_per_sample = PcmFormat.bits_per_sample

    if subtype[:1] in ("L", "l"):
        try:
            bits_per_sample = _parse_int(subtype[1:])
        except ValueError:
            pass

    for param in params:
        key, _, value = param.partition("=")
        key = key.strip().lower()
        try:
            if key == "rate":
                sample_rate = _parse_int(value)
            elif key == "channels":
                channels = _parse_int(value)
        except ValueError:
            continue

    return PcmFormat(channels=channels, sample_rate=sample_rate, bits_per_sample=bits_per_sample)


def build_wav_header(data_length: int, pcm_format: PcmFormat = PcmFormat()) -> bytes:
    if data_length < 0:
        raise ValueError(f"data_length must be >= 0, got {data_length}")
    if 36 + data_length > _MAX_CHUNK_SIZE:
        raise ValueError(f"PCM payload of {data_length} bytes does not fit a RIFF chunk")
    return _WAV_HEADER.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        _FMT_CHUNK_SIZE,
        _PCM_FORMAT_TAG,
        pcm_format.channels,
        pcm_format.sample_rate,
        pcm_format.byte_rate,
        pcm_format.block_align,
        pcm_format.bits_per_sample,
        b"data",
        data_length,
    )


def pcm_to_wav(data: bytes, mime_type: str) -> bytes:
    return build_wav_header(len(data), parse_pcm_format(mime_type)) + data


def normalize_audio(data: bytes, mime_type: str) -> Tuple[bytes, str, str]:
    """Return (audio, mime_type, extension), wrapping raw PCM in a WAV container."""
    extension = extension_from_mime(mime_type)
    if extension:
        return data, mime_type, extension
    return pcm_to_wav(data, mime_type), WAV_MIME_TYPE, "wav"
