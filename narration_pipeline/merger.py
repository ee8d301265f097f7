from __future__ import annotations

import logging
import math
import sys
from array import array
from typing import Sequence, Union

from pydub import AudioSegment

from .errors import ConfigurationError, MalformedAudioError
from .profiles import EngineProfile

logger = logging.getLogger(__name__)

__all__ = [
    "CROSSFADE_SAMPLES",
    "CROSSFADE_BYTES",
    "merge_pcm_buffers",
    "crossfade_pcm",
    "PcmAccumulator",
]

SAMPLE_WIDTH = 2
# 20 ms at 24 kHz.
CROSSFADE_SAMPLES = 480
CROSSFADE_BYTES = CROSSFADE_SAMPLES * SAMPLE_WIDTH

INT16_MIN = -32768
INT16_MAX = 32767


def merge_pcm_buffers(
    buffers: Sequence[bytes],
    engine: Union[EngineProfile, bool],
    *,
    crossfade_bytes: int = CROSSFADE_BYTES,
) -> bytes:
    """
    Join per-chunk PCM buffers into one continuous buffer.

    ``engine`` is the engine profile (or its ``needs_crossfade`` flag).
    Engines whose chunk boundaries are already continuous get plain byte
    concatenation. The others get a linear crossfade of ``crossfade_bytes``
    at every boundary, which fuses the tail of one buffer with the head of
    the next, so the result is ``(len(buffers) - 1) * crossfade_bytes``
    shorter than the inputs combined.
    """
    accumulator = PcmAccumulator(engine, crossfade_bytes=crossfade_bytes)
    for buffer in buffers:
        accumulator.append(buffer)
    return accumulator.getvalue()


def crossfade_pcm(previous_tail: bytes, next_head: bytes) -> bytes:
    """
    Blend two equally long 16-bit windows, fading from ``previous_tail`` to ``next_head``.

    The weight at byte offset ``j`` is ``j / len(window)``, so the first output
    sample equals the previous buffer's sample and the last one is almost
    entirely the next buffer's.
    """
    window = len(previous_tail)
    if window != len(next_head):
        raise ValueError("Crossfade windows must have equal length.")
    _check_window(window)
    if window == 0:
        return b""

    prev_samples = _samples(previous_tail)
    next_samples = _samples(next_head)
    out = array("h", bytes(window))
    for i, (a, b) in enumerate(zip(prev_samples, next_samples)):
        progress = (i * SAMPLE_WIDTH) / window
        value = math.floor(a * (1.0 - progress) + b * progress + 0.5)
        out[i] = max(INT16_MIN, min(INT16_MAX, value))
    return _to_bytes(out)


class PcmAccumulator:
    """
    Incremental stitcher: chunks are appended as they arrive.

    Produces the same bytes as :func:`merge_pcm_buffers` over the same
    sequence. Once :meth:`getvalue` has been called the result is fixed.
    """

    def __init__(self, engine: Union[EngineProfile, bool], *, crossfade_bytes: int = CROSSFADE_BYTES) -> None:
        needs_crossfade = engine.needs_crossfade if isinstance(engine, EngineProfile) else bool(engine)
        if needs_crossfade:
            _check_window(crossfade_bytes)
        self.needs_crossfade = needs_crossfade
        self.crossfade_bytes = crossfade_bytes
        self._buffer = bytearray()
        self._count = 0
        self._closed = False

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def buffer_count(self) -> int:
        return self._count

    def append(self, pcm: bytes) -> None:
        if self._closed:
            raise RuntimeError("Cannot append to a finished accumulator.")
        if len(pcm) % SAMPLE_WIDTH:
            raise MalformedAudioError(
                f"PCM buffer of {len(pcm)} bytes is not a whole number of 16-bit samples."
            )
        self._count += 1
        if self._count == 1 or not self.needs_crossfade:
            self._buffer.extend(pcm)
            return

        window = min(self.crossfade_bytes, len(self._buffer), len(pcm))
        window -= window % SAMPLE_WIDTH
        if window < self.crossfade_bytes:
            logger.debug(
                "Shrinking crossfade window to %d bytes at boundary %d (short buffer).",
                window,
                self._count - 1,
            )
        if window == 0:
            self._buffer.extend(pcm)
            return

        tail = bytes(self._buffer[-window:])
        blended = crossfade_pcm(tail, pcm[:window])
        del self._buffer[-window:]
        self._buffer.extend(blended)
        self._buffer.extend(pcm[window:])

    def getvalue(self) -> bytes:
        self._closed = True
        return bytes(self._buffer)


def _check_window(window: int) -> None:
    if window < 0 or window % SAMPLE_WIDTH:
        raise ConfigurationError(
            f"Crossfade window of {window} bytes does not fall on 16-bit sample boundaries."
        )


def _samples(pcm: bytes) -> array:
    """Little-endian int16 samples of ``pcm`` via pydub's sample view."""
    segment = AudioSegment(data=pcm, sample_width=SAMPLE_WIDTH, frame_rate=24000, channels=1)
    samples = segment.get_array_of_samples()
    if sys.byteorder == "big":
        samples.byteswap()
    return samples


def _to_bytes(samples: array) -> bytes:
    if sys.byteorder == "big":
        samples = array(samples.typecode, samples)
        samples.byteswap()
    return samples.tobytes()
