from __future__ import annotations

import base64
import io
import logging
import mimetypes
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydub import AudioSegment
from pydub.generators import Sine

from .config import DEFAULT_GEMINI_MODEL, DEFAULT_TRANSPORT_TIMEOUT_SEC, ClientSettings
from .errors import (
    ChunkSynthesisError,
    ConfigurationError,
    MalformedAudioError,
    SynthesisCancelled,
    TransportTimeoutError,
)
from .profiles import FAST, PREMIUM, EngineProfile, validate_speaking_rate
from .retry import RetryPolicy, retry_call

logger = logging.getLogger(__name__)

__all__ = [
    "TtsEngine",
    "GeminiTtsEngine",
    "CloudTtsEngine",
    "MockTtsEngine",
    "EngineAdapter",
    "ChunkAudio",
    "create_gemini_client",
    "create_cloud_client",
]


class TtsEngine(ABC):
    """
    Thin abstraction over a text-to-speech engine that returns raw PCM bytes.

    One call is one attempt; retries belong to :class:`EngineAdapter`.
    Output is always signed 16-bit little-endian PCM at the profile's sample
    rate and channel count.
    """

    def __init__(self, profile: EngineProfile) -> None:
        self.profile = profile
        self.expected_sample_rate = profile.sample_rate
        self.expected_channels = profile.channels
        self.expected_sample_width = profile.sample_width

    @abstractmethod
    def synthesize_pcm(self, text: str, voice_id: str, speaking_rate: Optional[float] = None) -> bytes:
        """
        Convert text into raw PCM audio using the given voice.
        """

    def descriptor(self) -> str:
        return f"{self.__class__.__name__}({self.profile.name})"

    def _segment_to_pcm(self, segment: AudioSegment) -> bytes:
        """
        Bring a decoded segment to the expected format and return its samples.

        Engines occasionally answer in a neighbouring format; those segments
        are converted rather than rejected.
        """
        if segment.frame_rate != self.expected_sample_rate:
            logger.debug(
                "Engine %s returned frame rate %d, converting to %d.",
                self.descriptor(),
                segment.frame_rate,
                self.expected_sample_rate,
            )
            segment = segment.set_frame_rate(self.expected_sample_rate)
        if segment.channels != self.expected_channels:
            segment = segment.set_channels(self.expected_channels)
        if segment.sample_width != self.expected_sample_width:
            segment = segment.set_sample_width(self.expected_sample_width)

        pcm = segment.raw_data
        if not pcm:
            raise MalformedAudioError(f"Engine {self.descriptor()} returned empty audio.")
        return pcm


class MockTtsEngine(TtsEngine):
    """
    Lightweight mock for tests. Generates silent (or tone) PCM of predictable lengths.
    """

    def __init__(
        self,
        durations_ms: Optional[Dict[str, int]] = None,
        *,
        profile: EngineProfile = FAST,
        base_duration_ms: int = 500,
        per_char_ms: int = 30,
        duration_ms: Optional[int] = None,
        tone_hz: Optional[float] = None,
        failures: int = 0,
        always_fail: bool = False,
    ) -> None:
        super().__init__(profile)
        self._durations_ms = durations_ms or {}
        self._base_duration_ms = base_duration_ms
        self._per_char_ms = per_char_ms
        self._duration_ms = duration_ms
        self._tone_hz = tone_hz
        self._failures_left = failures
        self._always_fail = always_fail
        self.calls = []

    def synthesize_pcm(self, text: str, voice_id: str, speaking_rate: Optional[float] = None) -> bytes:
        self.calls.append({"text": text, "voice_id": voice_id, "speaking_rate": speaking_rate})
        if self._always_fail:
            raise RuntimeError("Mock engine configured to fail.")
        if self._failures_left > 0:
            self._failures_left -= 1
            raise RuntimeError("Mock engine transient failure.")

        if self._duration_ms is not None:
            duration = self._duration_ms
        else:
            duration = self._durations_ms.get(
                text, self._base_duration_ms + max(0, len(text)) * self._per_char_ms
            )

        if self._tone_hz:
            segment = Sine(self._tone_hz, sample_rate=self.expected_sample_rate, bit_depth=16).to_audio_segment(
                duration=duration, volume=-6.0
            )
        else:
            segment = AudioSegment.silent(duration=duration, frame_rate=self.expected_sample_rate)
        return self._segment_to_pcm(segment)


class GeminiTtsEngine(TtsEngine):
    """
    Premium-voice engine backed by Gemini TTS models through ``google-genai``.

    The model takes no speaking-rate parameter; a requested rate is ignored.
    """

    def __init__(
        self,
        *,
        client: Any,
        model: str = DEFAULT_GEMINI_MODEL,
        profile: EngineProfile = PREMIUM,
        language_code: Optional[str] = None,
    ) -> None:
        try:
            from google.genai import types  # type: ignore
        except ImportError as exc:  # pragma: no cover - dependency declared
            raise ConfigurationError(
                "google-genai is required for GeminiTtsEngine but is not installed."
            ) from exc

        super().__init__(profile)
        self._client = client
        self._types = types
        self._model = model
        self._language_code = language_code

    def synthesize_pcm(self, text: str, voice_id: str, speaking_rate: Optional[float] = None) -> bytes:
        import httpx

        if speaking_rate not in (None, 1.0):
            logger.debug("Gemini TTS has no speaking-rate control; ignoring rate %.2f.", speaking_rate)

        types = self._types
        speech_config = types.SpeechConfig(
            language_code=self._language_code,
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_id)
            ),
        )
        generate_config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=speech_config,
        )

        logger.debug("Gemini request: model=%s voice=%s chars=%d", self._model, voice_id, len(text))
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=text,
                config=generate_config,
            )
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(f"Gemini request exceeded transport ceiling: {exc}") from exc

        audio_chunks = []
        mime_type: Optional[str] = None
        for candidate in getattr(response, "candidates", None) or []:
            if not candidate or not candidate.content or not candidate.content.parts:
                continue
            for response_part in candidate.content.parts:
                inline = getattr(response_part, "inline_data", None)
                if inline and inline.data:
                    mime_type = inline.mime_type or mime_type
                    data = inline.data
                    if isinstance(data, str):
                        data = base64.b64decode(data)
                    audio_chunks.append(data)

        if not audio_chunks:
            raise MalformedAudioError("Gemini returned no audio data.")

        segment = _audio_bytes_to_segment(
            b"".join(audio_chunks),
            mime_type or f"audio/L16;rate={self.expected_sample_rate}",
            default_rate=self.expected_sample_rate,
        )
        return self._segment_to_pcm(segment)


class CloudTtsEngine(TtsEngine):
    """
    Fast engine backed by Google Cloud Text-to-Speech.

    Requests LINEAR16 at the profile sample rate explicitly and passes the
    speaking rate natively.
    """

    def __init__(
        self,
        *,
        client: Any,
        profile: EngineProfile = FAST,
        language_code: Optional[str] = None,
        timeout_sec: float = DEFAULT_TRANSPORT_TIMEOUT_SEC,
    ) -> None:
        try:
            from google.cloud import texttospeech  # type: ignore
        except ImportError as exc:  # pragma: no cover - dependency declared
            raise ConfigurationError(
                "google-cloud-texttospeech is required for CloudTtsEngine but is not installed."
            ) from exc

        super().__init__(profile)
        self._client = client
        self._tts = texttospeech
        self._language_code = language_code
        self._timeout_sec = timeout_sec

    def synthesize_pcm(self, text: str, voice_id: str, speaking_rate: Optional[float] = None) -> bytes:
        from google.api_core import exceptions as api_exceptions

        tts = self._tts
        rate = validate_speaking_rate(speaking_rate)
        voice = tts.VoiceSelectionParams(
            language_code=self._language_code or language_code_from_voice(voice_id),
            name=voice_id,
        )
        audio_config = tts.AudioConfig(
            audio_encoding=tts.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.expected_sample_rate,
            speaking_rate=rate,
        )

        logger.debug("Cloud TTS request: voice=%s rate=%.2f chars=%d", voice_id, rate, len(text))
        try:
            response = self._client.synthesize_speech(
                input=tts.SynthesisInput(text=text),
                voice=voice,
                audio_config=audio_config,
                retry=None,
                timeout=self._timeout_sec,
            )
        except api_exceptions.DeadlineExceeded as exc:
            raise TransportTimeoutError(f"Cloud TTS request exceeded transport ceiling: {exc}") from exc

        audio_bytes = getattr(response, "audio_content", None)
        if not audio_bytes:
            raise MalformedAudioError("Cloud TTS returned empty audio content.")

        mime = "audio/wav" if audio_bytes[:4] == b"RIFF" else f"audio/L16;rate={self.expected_sample_rate}"
        segment = _audio_bytes_to_segment(audio_bytes, mime, default_rate=self.expected_sample_rate)
        return self._segment_to_pcm(segment)


@dataclass
class ChunkAudio:
    index: int
    pcm: bytes
    attempts: int
    characters: int


class EngineAdapter:
    """
    Runs one chunk through an engine under that engine's retry policy.

    A set ``cancel_event`` stops further attempts and raises
    :class:`SynthesisCancelled`; a request already in flight completes first.
    """

    def __init__(
        self,
        engine: TtsEngine,
        *,
        sleep: Optional[Callable[[float], None]] = None,
        policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.engine = engine
        self.policy = policy or RetryPolicy.for_profile(engine.profile)
        self._sleep = sleep
        self._cancel_event = cancel_event

    def synthesize_chunk(
        self,
        chunk_text: str,
        chunk_index: int,
        voice_id: str,
        speaking_rate: Optional[float] = None,
    ) -> ChunkAudio:
        rate = speaking_rate if self.engine.profile.supports_speaking_rate else None
        outcome = retry_call(
            lambda: self.engine.synthesize_pcm(chunk_text, voice_id, rate),
            self.policy,
            sleep=self._sleep,
            label=f"Chunk {chunk_index} ({self.engine.descriptor()})",
            cancel_event=self._cancel_event,
        )
        if outcome.cancelled:
            raise SynthesisCancelled()
        if not outcome.ok:
            raise ChunkSynthesisError(chunk_index, outcome.last_error, outcome.attempts)

        pcm = outcome.value or b""
        logger.info(
            "Chunk %d synthesized: %d chars -> %d bytes (attempt %d/%d).",
            chunk_index,
            len(chunk_text),
            len(pcm),
            outcome.attempts,
            self.policy.max_attempts,
        )
        return ChunkAudio(index=chunk_index, pcm=pcm, attempts=outcome.attempts, characters=len(chunk_text))

    def synthesize(
        self,
        chunk_text: str,
        chunk_index: int,
        voice_id: str,
        speaking_rate: Optional[float] = None,
    ) -> bytes:
        return self.synthesize_chunk(chunk_text, chunk_index, voice_id, speaking_rate).pcm


def create_gemini_client(settings: ClientSettings) -> Any:
    from google import genai  # type: ignore
    from google.genai import types  # type: ignore

    api_key = settings.require_gemini_key()
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=settings.transport_timeout_ms),
    )


def create_cloud_client(settings: ClientSettings) -> Any:
    from google.auth import exceptions as auth_exceptions
    from google.cloud import texttospeech  # type: ignore

    try:
        if settings.google_credentials_path:
            return texttospeech.TextToSpeechClient.from_service_account_file(
                settings.google_credentials_path
            )
        return texttospeech.TextToSpeechClient()
    except (auth_exceptions.DefaultCredentialsError, FileNotFoundError) as exc:
        raise ConfigurationError(f"Google Cloud credentials unavailable: {exc}") from exc


def language_code_from_voice(voice_id: str) -> str:
    """``en-US-Neural2-D`` -> ``en-US``; falls back to ``en-US``."""
    parts = (voice_id or "").split("-")
    if len(parts) >= 2 and parts[0] and parts[1]:
        return f"{parts[0]}-{parts[1]}"
    return "en-US"


def _audio_bytes_to_segment(data: bytes, mime_type: str, *, default_rate: int) -> AudioSegment:
    mime_type = mime_type or "audio/wav"
    if mime_type.lower().startswith("audio/l"):
        params = _parse_linear_pcm_mime(mime_type, default_rate=default_rate)
        sample_width = params["sample_width"]
        channels = params["channels"]
        frame_width = sample_width * channels
        if len(data) % frame_width:
            raise MalformedAudioError(
                f"PCM payload of {len(data)} bytes is not a whole number of {frame_width}-byte frames."
            )
        return AudioSegment(
            data=data,
            sample_width=sample_width,
            frame_rate=params["rate"],
            channels=channels,
        )

    guessed = (mimetypes.guess_extension(mime_type) or "").lstrip(".")
    fmt = guessed or mime_type.split("/")[-1]
    if data[:4] == b"RIFF":
        fmt = "wav"
    try:
        return AudioSegment.from_file(io.BytesIO(data), format=fmt)
    except Exception as exc:
        raise MalformedAudioError(f"Unable to decode {mime_type} payload: {exc}") from exc


def _parse_linear_pcm_mime(mime_type: str, *, default_rate: int = 24000) -> Dict[str, int]:
    params: Dict[str, int] = {"rate": default_rate, "sample_width": 2, "channels": 1}
    fragments = [fragment.strip() for fragment in mime_type.split(";")]
    for fragment in fragments:
        if fragment.lower().startswith("rate="):
            try:
                params["rate"] = int(fragment.split("=", 1)[1])
            except ValueError:
                logger.warning("Unable to parse rate from mime type %s", mime_type)
        elif fragment.lower().startswith("channels="):
            try:
                params["channels"] = int(fragment.split("=", 1)[1])
            except ValueError:
                logger.warning("Unable to parse channels from mime type %s", mime_type)
        elif fragment.lower().startswith("audio/l"):
            try:
                bits = int(fragment[len("audio/l"):])
                params["sample_width"] = max(1, bits // 8)
            except ValueError:
                logger.warning("Unable to parse bits from mime type %s", mime_type)
    return params
