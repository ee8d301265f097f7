import struct

import pytest

from narration_pipeline.errors import MalformedAudioError
from narration_pipeline.wav import WAV_HEADER_SIZE, encode_wav, read_wav_header


def test_encode_wav_header_fields():
    pcm = b"\x01\x00" * 24000
    data = encode_wav(pcm, sample_rate=24000, channels=1, bits_per_sample=16)

    assert len(data) == WAV_HEADER_SIZE + len(pcm)
    assert data[0:4] == b"RIFF"
    assert data[8:12] == b"WAVE"
    assert struct.unpack("<I", data[4:8])[0] == 36 + len(pcm)
    assert struct.unpack("<I", data[40:44])[0] == len(pcm)
    assert struct.unpack("<H", data[22:24])[0] == 1
    assert struct.unpack("<I", data[24:28])[0] == 24000
    assert struct.unpack("<I", data[28:32])[0] == 48000
    assert struct.unpack("<H", data[32:34])[0] == 2
    assert struct.unpack("<H", data[34:36])[0] == 16
    assert data[WAV_HEADER_SIZE:] == pcm


def test_encode_wav_empty_pcm_is_header_only():
    data = encode_wav(b"")
    header = read_wav_header(data)

    assert len(data) == WAV_HEADER_SIZE
    assert header.data_size == 0
    assert header.riff_size == 36


def test_encode_wav_stereo_block_align():
    header = read_wav_header(encode_wav(b"\x00" * 16, sample_rate=44100, channels=2))

    assert header.channels == 2
    assert header.block_align == 4
    assert header.byte_rate == 44100 * 4


def test_encode_wav_rejects_partial_samples():
    with pytest.raises(MalformedAudioError):
        encode_wav(b"\x00\x01\x02")


def test_read_wav_header_rejects_garbage():
    with pytest.raises(MalformedAudioError):
        read_wav_header(b"not a wav file at all, just some bytes here!!")
