#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Sequence

from narration_pipeline.config import DEFAULT_VOICES, NARRATOR_VOICES, ClientSettings
from narration_pipeline.metadata import ReportBuilder
from narration_pipeline.profiles import FAST, PREMIUM
from narration_pipeline.progress import TqdmProgressListener
from narration_pipeline.synthesizer import LongAudioSynthesizer
from narration_pipeline.tts_engine import (
    CloudTtsEngine,
    GeminiTtsEngine,
    MockTtsEngine,
    TtsEngine,
    create_cloud_client,
    create_gemini_client,
)

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Long-form narration synthesis.")
    parser.add_argument("--input", help="Input text file path.")
    parser.add_argument("--input-encoding", default="utf-8", help="Encoding used for input file.")
    parser.add_argument("--engine", default="premium", choices=["premium", "fast", "mock"], help="Synthesis engine.")
    parser.add_argument("--voice-id", help="Voice identifier (engine specific).")
    parser.add_argument("--speaking-rate", type=float, default=1.0, help="Speaking rate 0.5-2.0 (fast engine only).")
    parser.add_argument("--output", default="./output/narration.wav", help="Path for the WAV output.")
    parser.add_argument("--report-output", default="./output/report.json", help="Path for the JSON run report.")
    parser.add_argument("--api-key", help="API key for the premium engine (defaults to GEMINI_API_KEY).")
    parser.add_argument("--gemini-model", help="Gemini TTS model name.")
    parser.add_argument("--credentials", help="Service account file for the fast engine.")
    parser.add_argument("--preview", action="store_true", help="Synthesize a short voice preview instead of --input.")
    parser.add_argument("--list-voices", action="store_true", help="List narrator voices for the premium engine and exit.")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def load_input_text(path: Path, encoding: str) -> str:
    if not path.exists():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    return path.read_text(encoding=encoding)


def create_engine(args: argparse.Namespace, settings: ClientSettings) -> TtsEngine:
    engine_name = (args.engine or "").lower()
    if engine_name == "mock":
        return MockTtsEngine(profile=FAST, tone_hz=220.0)

    if engine_name == "premium":
        return GeminiTtsEngine(
            client=create_gemini_client(settings),
            model=settings.gemini_model,
            profile=PREMIUM,
        )

    if engine_name == "fast":
        return CloudTtsEngine(
            client=create_cloud_client(settings),
            profile=FAST,
            timeout_sec=settings.transport_timeout_sec,
        )

    raise ValueError(f"Unsupported engine: {args.engine}")


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    configure_logging(args.debug)

    if args.list_voices:
        for voice_id, label in NARRATOR_VOICES.items():
            print(f"{voice_id:<10} {label}")
        return 0

    settings = ClientSettings.from_env(
        gemini_api_key=args.api_key,
        gemini_model=args.gemini_model,
        google_credentials_path=args.credentials,
    )
    engine = create_engine(args, settings)
    synthesizer = LongAudioSynthesizer({args.engine: engine})
    voice_id = args.voice_id or DEFAULT_VOICES[args.engine]
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if args.preview:
        output_path.write_bytes(synthesizer.preview_voice(voice_id, args.engine, args.speaking_rate))
        logger.info("Voice preview saved to %s", output_path)
        return 0

    if not args.input:
        raise ValueError("--input is required unless --preview or --list-voices is given.")

    input_path = Path(args.input)
    text = load_input_text(input_path, args.input_encoding)
    if not text:
        logger.warning("Input is empty. Writing a header-only WAV file.")

    cancel_event = threading.Event()

    def _request_cancel(signum, frame):
        logger.warning("Interrupt received; finishing the current chunk and stopping.")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, _request_cancel)
    listeners = [] if args.no_progress else [TqdmProgressListener()]
    try:
        result = synthesizer.synthesize_long_audio(
            text,
            voice_id,
            args.engine,
            args.speaking_rate,
            listeners=listeners,
            cancel_event=cancel_event,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        for listener in listeners:
            listener.close()

    output_path.write_bytes(result.to_wav())

    report_builder = ReportBuilder(
        engine_descriptor=result.engine_descriptor,
        profile=result.profile,
        output_path=Path(args.report_output),
    )
    report_builder.write_report(result.report(report_builder, input_path=input_path))
    logger.info("Report written to %s", report_builder.output_path)

    logger.info("Synthesis complete. Final audio saved to %s", output_path)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.error("Interrupted by user.")
        sys.exit(1)
    except Exception as exc:
        logger.exception("Fatal error: %s", exc)
        sys.exit(1)
