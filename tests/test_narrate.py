import json

import narrate
from narration_pipeline.wav import WAV_HEADER_SIZE, read_wav_header


def test_cli_mock_engine_writes_wav_and_report(tmp_path):
    story = tmp_path / "story.txt"
    story.write_text("Once upon a time.", encoding="utf-8")
    output = tmp_path / "out" / "story.wav"
    report_path = tmp_path / "out" / "report.json"

    code = narrate.main([
        "--engine", "mock",
        "--input", str(story),
        "--output", str(output),
        "--report-output", str(report_path),
        "--no-progress",
    ])

    assert code == 0
    wav = output.read_bytes()
    header = read_wav_header(wav)
    assert header.data_size == len(wav) - WAV_HEADER_SIZE > 0
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert len(report["chunks"]) == 1
    assert report["voice_id"] == "mock"
    assert report["input_path"] == str(story)


def test_cli_preview(tmp_path):
    output = tmp_path / "preview.wav"

    code = narrate.main(["--engine", "mock", "--preview", "--output", str(output)])

    assert code == 0
    assert output.read_bytes()[:4] == b"RIFF"


def test_cli_lists_voices(capsys):
    assert narrate.main(["--list-voices"]) == 0

    out = capsys.readouterr().out
    assert "Charon" in out
    assert "Kore" in out
