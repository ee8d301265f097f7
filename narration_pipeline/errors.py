from __future__ import annotations

from typing import Optional

__all__ = [
    "NarrationError",
    "ConfigurationError",
    "MalformedAudioError",
    "TransportTimeoutError",
    "SynthesisError",
    "ChunkSynthesisError",
    "SynthesisCancelled",
]


class NarrationError(Exception):
    """
    Base class for every error raised by the narration pipeline.
    """


class ConfigurationError(NarrationError):
    """
    Credentials, endpoints or engine settings are missing or invalid.

    Raised before any request is issued and never retried.
    """


class MalformedAudioError(NarrationError):
    """
    An engine answered successfully but without decodable audio, or a PCM
    buffer is not a whole number of samples.
    """


class TransportTimeoutError(NarrationError):
    """
    The transport layer's hard ceiling was exceeded.
    """


class SynthesisError(NarrationError):
    def __init__(self, message: str, *, chunk_index: Optional[int] = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index
        self.cause = cause


class ChunkSynthesisError(SynthesisError):
    """
    A single chunk failed after exhausting its engine's retry budget.
    """

    def __init__(self, chunk_index: int, cause: Optional[BaseException], attempts: int) -> None:
        super().__init__(
            f"Chunk {chunk_index} failed after {attempts} attempt(s): {cause}",
            chunk_index=chunk_index,
            cause=cause,
        )
        self.attempts = attempts


class SynthesisCancelled(NarrationError):
    def __init__(self, completed_chunks: Optional[int] = None, chunk_count: Optional[int] = None) -> None:
        if completed_chunks is None or chunk_count is None:
            message = "Synthesis cancelled."
        else:
            message = f"Synthesis cancelled after {completed_chunks}/{chunk_count} chunks."
        super().__init__(message)
        self.completed_chunks = completed_chunks
        self.chunk_count = chunk_count
