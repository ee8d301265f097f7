"""
Long-form narration synthesis.

This package exposes the building blocks used by the CLI entry point:

- Text chunking at sentence/paragraph boundaries (`split_text`).
- Engine capability profiles (`profiles`) and the retry combinator (`retry`).
- Engine abstractions and concrete implementations (`tts_engine`).
- PCM stitching with boundary crossfades (`merger`).
- Progress estimation and reporting (`progress`).
- WAV container encoding (`wav`) and run reports (`metadata`).
- The sequential synthesis pipeline (`synthesizer`).
"""

from .config import ClientSettings
from .errors import (
    ChunkSynthesisError,
    ConfigurationError,
    MalformedAudioError,
    NarrationError,
    SynthesisCancelled,
    SynthesisError,
    TransportTimeoutError,
)
from .merger import CROSSFADE_BYTES, PcmAccumulator, crossfade_pcm, merge_pcm_buffers
from .metadata import ChunkRecord, ReportBuilder
from .profiles import FAST, PREMIUM, EngineProfile, get_profile
from .progress import (
    ProgressEstimator,
    ProgressEvent,
    ProgressTicker,
    TqdmProgressListener,
    estimate_total_seconds,
)
from .retry import RetryOutcome, RetryPolicy, retry_call
from .split_text import MAX_TEXT_LENGTH, TextChunk, build_text_chunks, split_into_chunks
from .synthesizer import LongAudioSynthesizer, SynthesisResult, synthesize_long_audio
from .tts_engine import (
    CloudTtsEngine,
    EngineAdapter,
    GeminiTtsEngine,
    MockTtsEngine,
    TtsEngine,
)
from .wav import encode_wav, read_wav_header

__all__ = [
    "ClientSettings",
    "NarrationError",
    "ConfigurationError",
    "MalformedAudioError",
    "TransportTimeoutError",
    "SynthesisError",
    "ChunkSynthesisError",
    "SynthesisCancelled",
    "split_into_chunks",
    "build_text_chunks",
    "TextChunk",
    "MAX_TEXT_LENGTH",
    "EngineProfile",
    "PREMIUM",
    "FAST",
    "get_profile",
    "RetryPolicy",
    "RetryOutcome",
    "retry_call",
    "TtsEngine",
    "GeminiTtsEngine",
    "CloudTtsEngine",
    "MockTtsEngine",
    "EngineAdapter",
    "CROSSFADE_BYTES",
    "merge_pcm_buffers",
    "crossfade_pcm",
    "PcmAccumulator",
    "ProgressEstimator",
    "ProgressEvent",
    "ProgressTicker",
    "TqdmProgressListener",
    "estimate_total_seconds",
    "encode_wav",
    "read_wav_header",
    "ChunkRecord",
    "ReportBuilder",
    "LongAudioSynthesizer",
    "SynthesisResult",
    "synthesize_long_audio",
]
