from __future__ import annotations

import struct
from dataclasses import dataclass

from .errors import MalformedAudioError

__all__ = ["WAV_HEADER_SIZE", "WavHeader", "encode_wav", "read_wav_header"]

WAV_HEADER_SIZE = 44
PCM_FORMAT_TAG = 1

# RIFF size, WAVE, fmt chunk (16 bytes of PCM fields), data chunk header.
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavHeader:
    riff_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int


def encode_wav(
    pcm: bytes,
    sample_rate: int = 24000,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """
    Wrap raw PCM in a minimal 44-byte RIFF/WAVE header.
    """
    if sample_rate <= 0 or channels <= 0 or bits_per_sample <= 0 or bits_per_sample % 8:
        raise ValueError(
            f"Invalid format: rate={sample_rate} channels={channels} bits={bits_per_sample}"
        )
    block_align = channels * bits_per_sample // 8
    if len(pcm) % block_align:
        raise MalformedAudioError(
            f"PCM buffer of {len(pcm)} bytes is not a whole number of {block_align}-byte frames."
        )

    data_size = len(pcm)
    header = _HEADER.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        bits_per_sample,
        b"data",
        data_size,
    )
    return header + bytes(pcm)


def read_wav_header(data: bytes) -> WavHeader:
    if len(data) < WAV_HEADER_SIZE:
        raise MalformedAudioError(f"Need {WAV_HEADER_SIZE} bytes for a WAV header, got {len(data)}.")
    (
        riff,
        riff_size,
        wave,
        fmt,
        _fmt_size,
        format_tag,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        data_tag,
        data_size,
    ) = _HEADER.unpack_from(data)
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_tag != b"data":
        raise MalformedAudioError("Not a minimal PCM WAV header.")
    return WavHeader(
        riff_size=riff_size,
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits_per_sample,
        data_size=data_size,
    )
