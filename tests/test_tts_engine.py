from types import SimpleNamespace

import httpx
import pytest
from google.api_core import exceptions as api_exceptions
from google.cloud import texttospeech

from narration_pipeline.config import ClientSettings
from narration_pipeline.errors import ConfigurationError, MalformedAudioError, TransportTimeoutError
from narration_pipeline.profiles import FAST, PREMIUM
from narration_pipeline.tts_engine import (
    CloudTtsEngine,
    GeminiTtsEngine,
    MockTtsEngine,
    _audio_bytes_to_segment,
    _parse_linear_pcm_mime,
    create_gemini_client,
    language_code_from_voice,
)
from narration_pipeline.wav import encode_wav


class FakeGeminiModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class FakeCloudClient:
    def __init__(self, audio_content=b"", error=None):
        self.audio_content = audio_content
        self.error = error
        self.calls = []

    def synthesize_speech(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(audio_content=self.audio_content)


def _gemini_response(*payloads, mime_type="audio/L16;codec=pcm;rate=24000"):
    parts = [SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type)) for data in payloads]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


def test_mock_engine_duration_maps_to_bytes():
    engine = MockTtsEngine(duration_ms=2000)

    pcm = engine.synthesize_pcm("anything", "mock")

    # 2 s at 24 kHz, mono, 16-bit.
    assert len(pcm) == 96000


def test_mock_engine_tone_is_not_silent():
    engine = MockTtsEngine(duration_ms=100, tone_hz=440.0)

    pcm = engine.synthesize_pcm("beep", "mock")

    assert len(pcm) == 4800
    assert any(pcm)


def test_parse_linear_pcm_mime():
    params = _parse_linear_pcm_mime("audio/L16;codec=pcm;rate=16000", default_rate=24000)

    assert params == {"rate": 16000, "sample_width": 2, "channels": 1}
    assert _parse_linear_pcm_mime("audio/L16")["rate"] == 24000


def test_linear_pcm_with_partial_frame_is_malformed():
    with pytest.raises(MalformedAudioError):
        _audio_bytes_to_segment(b"\x00\x01\x02", "audio/L16;rate=24000", default_rate=24000)


def test_wav_payload_decodes_without_ffmpeg():
    pcm = b"\x10\x00" * 240
    segment = _audio_bytes_to_segment(encode_wav(pcm), "audio/wav", default_rate=24000)

    assert segment.frame_rate == 24000
    assert segment.raw_data == pcm


def test_gemini_engine_builds_voice_config_and_collects_parts():
    models = FakeGeminiModels(response=_gemini_response(b"\x01\x00" * 100, b"\x02\x00" * 50))
    engine = GeminiTtsEngine(client=SimpleNamespace(models=models), model="tts-model")

    pcm = engine.synthesize_pcm("Once upon a time.", "Kore", speaking_rate=1.5)

    assert pcm == b"\x01\x00" * 100 + b"\x02\x00" * 50
    call = models.calls[0]
    assert call["model"] == "tts-model"
    assert call["contents"] == "Once upon a time."
    config = call["config"]
    assert config.speech_config.voice_config.prebuilt_voice_config.voice_name == "Kore"
    assert engine.profile is PREMIUM


def test_gemini_engine_without_audio_is_malformed():
    models = FakeGeminiModels(response=SimpleNamespace(candidates=[]))
    engine = GeminiTtsEngine(client=SimpleNamespace(models=models))

    with pytest.raises(MalformedAudioError):
        engine.synthesize_pcm("Hello.", "Charon")


def test_gemini_transport_timeout_is_mapped():
    models = FakeGeminiModels(error=httpx.ReadTimeout("read timed out"))
    engine = GeminiTtsEngine(client=SimpleNamespace(models=models))

    with pytest.raises(TransportTimeoutError):
        engine.synthesize_pcm("Hello.", "Charon")


def test_cloud_engine_requests_linear16_with_rate():
    pcm = b"\x05\x00" * 480
    client = FakeCloudClient(audio_content=encode_wav(pcm))
    engine = CloudTtsEngine(client=client, timeout_sec=30)

    result = engine.synthesize_pcm("A quick line.", "en-GB-Neural2-B", speaking_rate=1.5)

    assert result == pcm
    call = client.calls[0]
    assert call["audio_config"].audio_encoding == texttospeech.AudioEncoding.LINEAR16
    assert call["audio_config"].sample_rate_hertz == 24000
    assert call["audio_config"].speaking_rate == pytest.approx(1.5)
    assert call["voice"].language_code == "en-GB"
    assert call["voice"].name == "en-GB-Neural2-B"
    assert call["retry"] is None
    assert call["timeout"] == 30
    assert engine.profile is FAST


def test_cloud_engine_accepts_headerless_pcm():
    pcm = b"\x07\x00" * 64
    engine = CloudTtsEngine(client=FakeCloudClient(audio_content=pcm))

    assert engine.synthesize_pcm("Hi.", "en-US-Neural2-D") == pcm


def test_cloud_engine_rejects_bad_speaking_rate():
    engine = CloudTtsEngine(client=FakeCloudClient(audio_content=b"\x00\x00"))

    with pytest.raises(ValueError):
        engine.synthesize_pcm("Hi.", "en-US-Neural2-D", speaking_rate=3.0)


def test_cloud_engine_empty_audio_is_malformed():
    engine = CloudTtsEngine(client=FakeCloudClient(audio_content=b""))

    with pytest.raises(MalformedAudioError):
        engine.synthesize_pcm("Hi.", "en-US-Neural2-D")


def test_cloud_deadline_is_transport_timeout():
    engine = CloudTtsEngine(client=FakeCloudClient(error=api_exceptions.DeadlineExceeded("deadline")))

    with pytest.raises(TransportTimeoutError):
        engine.synthesize_pcm("Hi.", "en-US-Neural2-D")


def test_language_code_from_voice():
    assert language_code_from_voice("en-US-Neural2-D") == "en-US"
    assert language_code_from_voice("de-DE-Wavenet-A") == "de-DE"
    assert language_code_from_voice("Charon") == "en-US"


def test_gemini_client_requires_api_key():
    with pytest.raises(ConfigurationError):
        create_gemini_client(ClientSettings(gemini_api_key=None))
