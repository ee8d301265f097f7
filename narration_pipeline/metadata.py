from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Sequence

from .profiles import EngineProfile

__all__ = ["ChunkRecord", "ReportBuilder"]


@dataclass(frozen=True)
class ChunkRecord:
    index: int
    characters: int
    byte_length: int
    attempts: int


@dataclass
class ReportBuilder:
    engine_descriptor: str
    profile: EngineProfile
    output_path: Optional[Path] = None

    def pcm_duration_ms(self, byte_length: int) -> int:
        frame_bytes = self.profile.sample_width * self.profile.channels
        return int(byte_length / frame_bytes / self.profile.sample_rate * 1000)

    def build_report(
        self,
        *,
        chunks: Sequence[ChunkRecord],
        final_pcm_bytes: int,
        voice_id: str,
        speaking_rate: Optional[float],
        elapsed_seconds: float,
        options: Optional[Dict[str, object]] = None,
    ) -> Dict[str, object]:
        options = options or {}
        total_attempts = sum(chunk.attempts for chunk in chunks)
        retries_by_chunk = {
            str(chunk.index): chunk.attempts - 1 for chunk in chunks if chunk.attempts > 1
        }

        return {
            "created_at": datetime.now(timezone.utc).isoformat(),
            "engine": self.engine_descriptor,
            "profile": self.profile.name,
            "voice_id": voice_id,
            "speaking_rate": speaking_rate if self.profile.supports_speaking_rate else None,
            "sample_rate": self.profile.sample_rate,
            "channels": self.profile.channels,
            "sample_width": self.profile.sample_width,
            "crossfade": self.profile.needs_crossfade,
            "input_path": str(options.get("input_path")) if options.get("input_path") else None,
            "chunks": [
                {
                    "index": chunk.index,
                    "chars": chunk.characters,
                    "bytes": chunk.byte_length,
                    "ms": self.pcm_duration_ms(chunk.byte_length),
                    "attempts": chunk.attempts,
                }
                for chunk in chunks
            ],
            "final_bytes": final_pcm_bytes,
            "final_ms": self.pcm_duration_ms(final_pcm_bytes),
            "elapsed_seconds": round(elapsed_seconds, 3),
            "attempts": {"total": total_attempts, "retries_by_chunk": retries_by_chunk},
        }

    def write_report(self, report: Dict[str, object]) -> None:
        if self.output_path is None:
            raise ValueError("No output path configured for the synthesis report.")
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        with self.output_path.open("w", encoding="utf-8") as f:
            json.dump(report, f, ensure_ascii=False, indent=2)
