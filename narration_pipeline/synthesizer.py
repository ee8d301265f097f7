from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Mapping, Optional

from .errors import ConfigurationError, SynthesisCancelled
from .merger import PcmAccumulator
from .metadata import ChunkRecord, ReportBuilder
from .profiles import EngineProfile, get_profile, validate_speaking_rate
from .progress import ProgressEstimator, ProgressListener, ProgressTicker
from .retry import resolve_sleep
from .split_text import MAX_TEXT_LENGTH, TextChunk, build_text_chunks
from .tts_engine import EngineAdapter, TtsEngine
from .wav import encode_wav

logger = logging.getLogger(__name__)

__all__ = [
    "LongAudioSynthesizer",
    "SynthesisResult",
    "PREVIEW_TEXT",
    "synthesize_long_audio",
]

PREVIEW_TEXT = "Listen to the sound of my voice, and imagine the story I will tell."

TickerFactory = Callable[[ProgressEstimator], ProgressTicker]


@dataclass
class SynthesisResult:
    pcm: bytes
    profile: EngineProfile
    engine_descriptor: str
    voice_id: str
    speaking_rate: Optional[float]
    chunks: List[ChunkRecord] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    def to_wav(self) -> bytes:
        return encode_wav(
            self.pcm,
            sample_rate=self.profile.sample_rate,
            channels=self.profile.channels,
            bits_per_sample=self.profile.sample_width * 8,
        )

    def report(self, builder: Optional[ReportBuilder] = None, **options) -> dict:
        builder = builder or ReportBuilder(engine_descriptor=self.engine_descriptor, profile=self.profile)
        return builder.build_report(
            chunks=self.chunks,
            final_pcm_bytes=len(self.pcm),
            voice_id=self.voice_id,
            speaking_rate=self.speaking_rate,
            elapsed_seconds=self.elapsed_seconds,
            options=options,
        )


class LongAudioSynthesizer:
    """
    Turns arbitrarily long text into one continuous PCM narration.

    Chunks are synthesized strictly one after another: both engines enforce
    request-rate limits and the stitcher needs them in order. A chunk that
    exhausts its retries aborts the whole job and no partial audio is
    returned.
    """

    def __init__(
        self,
        engines: Mapping[str, TtsEngine],
        *,
        sleep: Optional[Callable[[float], None]] = None,
        ticker_factory: Optional[TickerFactory] = ProgressTicker,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not engines:
            raise ConfigurationError("At least one synthesis engine must be configured.")
        self.engines = dict(engines)
        self._sleep = sleep
        self._ticker_factory = ticker_factory
        self._clock = clock

    def engine_for(self, name: str) -> TtsEngine:
        if name in self.engines:
            return self.engines[name]
        profile = get_profile(name)
        for engine in self.engines.values():
            if engine.profile.name == profile.name:
                return engine
        raise ConfigurationError(f"Engine '{name}' is not configured for this synthesizer.")

    def synthesize_long_audio(
        self,
        text: str,
        voice_id: str,
        engine: str = "premium",
        speaking_rate: Optional[float] = None,
        *,
        listeners: Iterable[ProgressListener] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> SynthesisResult:
        if len(text) > MAX_TEXT_LENGTH:
            raise ValueError(f"Text of {len(text)} characters exceeds the {MAX_TEXT_LENGTH} character limit.")

        tts = self.engine_for(engine)
        profile = tts.profile
        rate = self._effective_rate(profile, speaking_rate)
        chunks = build_text_chunks(text, profile.chunk_size)

        estimator = ProgressEstimator(len(text), profile, chunk_count=len(chunks))
        for listener in listeners:
            estimator.subscribe(listener)

        logger.info(
            "Starting synthesis: %d characters, %d chunks, engine=%s, voice=%s, rate=%s, estimate=%.0fs.",
            len(text),
            len(chunks),
            tts.descriptor(),
            voice_id,
            rate,
            estimator.estimated_total_seconds,
        )

        started = self._clock()
        result = SynthesisResult(
            pcm=b"",
            profile=profile,
            engine_descriptor=tts.descriptor(),
            voice_id=voice_id,
            speaking_rate=rate,
        )
        if not chunks:
            estimator.finish()
            logger.info("No text to synthesize.")
            return result

        ticker = self._ticker_factory(estimator) if self._ticker_factory else None
        if ticker is not None:
            ticker.start()
        failed = True
        try:
            result.pcm, result.chunks = self._run_chunks(
                chunks, tts, voice_id, rate, estimator, cancel_event
            )
            failed = False
        finally:
            # The ticker must be quiet before the final event goes out.
            if ticker is not None:
                ticker.stop()
            if failed:
                estimator.finish(failed=True)

        result.elapsed_seconds = self._clock() - started
        estimator.finish()
        logger.info(
            "Synthesis complete: %d chunks -> %d bytes in %.1fs.",
            len(result.chunks),
            len(result.pcm),
            result.elapsed_seconds,
        )
        return result

    def synthesize_long_wav(
        self,
        text: str,
        voice_id: str,
        engine: str = "premium",
        speaking_rate: Optional[float] = None,
        **kwargs,
    ) -> bytes:
        return self.synthesize_long_audio(text, voice_id, engine, speaking_rate, **kwargs).to_wav()

    def preview_voice(self, voice_id: str, engine: str = "premium", speaking_rate: Optional[float] = None) -> bytes:
        """Short sample of a voice, already wrapped in a WAV container."""
        tts = self.engine_for(engine)
        rate = self._effective_rate(tts.profile, speaking_rate)
        adapter = EngineAdapter(tts, sleep=self._sleep)
        pcm = adapter.synthesize(PREVIEW_TEXT, 0, voice_id, rate)
        return encode_wav(pcm, sample_rate=tts.profile.sample_rate, channels=tts.profile.channels)

    def _run_chunks(
        self,
        chunks: List[TextChunk],
        tts: TtsEngine,
        voice_id: str,
        rate: Optional[float],
        estimator: ProgressEstimator,
        cancel_event: Optional[threading.Event],
    ):
        profile = tts.profile
        sleep = resolve_sleep(self._sleep, cancel_event)
        adapter = EngineAdapter(tts, sleep=sleep, cancel_event=cancel_event)
        accumulator = PcmAccumulator(profile)
        records: List[ChunkRecord] = []
        last_index = len(chunks) - 1

        for chunk in chunks:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Cancellation requested before chunk %d; stopping.", chunk.index)
                raise SynthesisCancelled(len(records), len(chunks))

            logger.info("Synthesizing chunk %d/%d (%d chars).", chunk.index + 1, len(chunks), len(chunk))
            try:
                audio = adapter.synthesize_chunk(chunk.text, chunk.index, voice_id, rate)
            except SynthesisCancelled as exc:
                logger.warning("Cancellation requested while retrying chunk %d; stopping.", chunk.index)
                raise SynthesisCancelled(len(records), len(chunks)) from exc
            accumulator.append(audio.pcm)
            records.append(
                ChunkRecord(
                    index=chunk.index,
                    characters=audio.characters,
                    byte_length=len(audio.pcm),
                    attempts=audio.attempts,
                )
            )
            estimator.chunk_completed(chunk.index)

            if chunk.index < last_index and profile.inter_chunk_delay > 0:
                logger.debug("Waiting %.2fs before next chunk.", profile.inter_chunk_delay)
                sleep(profile.inter_chunk_delay)

        return accumulator.getvalue(), records

    @staticmethod
    def _effective_rate(profile: EngineProfile, speaking_rate: Optional[float]) -> Optional[float]:
        if not profile.supports_speaking_rate:
            if speaking_rate not in (None, 1.0):
                logger.debug("Engine %s has no speaking-rate control; ignoring %.2f.", profile.name, speaking_rate)
            return None
        return validate_speaking_rate(speaking_rate)


def synthesize_long_audio(
    text: str,
    voice_id: str,
    engine: str,
    speaking_rate: Optional[float] = None,
    *,
    engines: Mapping[str, TtsEngine],
    **kwargs,
) -> bytes:
    """Synthesize ``text`` and return the stitched PCM bytes."""
    synthesizer = LongAudioSynthesizer(engines)
    return synthesizer.synthesize_long_audio(text, voice_id, engine, speaking_rate, **kwargs).pcm
