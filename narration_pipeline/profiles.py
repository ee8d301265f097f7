from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .errors import ConfigurationError

__all__ = [
    "EngineProfile",
    "PREMIUM",
    "FAST",
    "ENGINE_PROFILES",
    "get_profile",
    "validate_speaking_rate",
    "MIN_SPEAKING_RATE",
    "MAX_SPEAKING_RATE",
]

MIN_SPEAKING_RATE = 0.5
MAX_SPEAKING_RATE = 2.0


@dataclass(frozen=True)
class EngineProfile:
    """
    Capability descriptor for one synthesis engine.

    Everything that differs between engines lives here so a single pipeline
    can drive any of them: chunk size, retry schedule, pacing between chunks,
    whether the engine takes a speaking rate, and whether chunk boundaries
    need a crossfade. ``seconds_per_chunk`` and ``estimated_inter_chunk_seconds``
    are calibrated from observed runs and only feed the progress estimate.
    """

    name: str
    chunk_size: int
    retry_count: int
    base_delay_ms: int
    inter_chunk_delay_ms: int
    supports_speaking_rate: bool
    needs_crossfade: bool
    seconds_per_chunk: float
    estimated_inter_chunk_seconds: float
    backoff_factor: float = 2.0
    sample_rate: int = 24000
    channels: int = 1
    sample_width: int = 2

    @property
    def inter_chunk_delay(self) -> float:
        return self.inter_chunk_delay_ms / 1000.0


PREMIUM = EngineProfile(
    name="premium",
    chunk_size=3000,
    retry_count=5,
    base_delay_ms=3000,
    inter_chunk_delay_ms=2000,
    supports_speaking_rate=False,
    needs_crossfade=False,
    seconds_per_chunk=20.0,
    # Retries inflate the average gap well past the fixed 2s pause.
    estimated_inter_chunk_seconds=9.0,
)

FAST = EngineProfile(
    name="fast",
    chunk_size=4000,
    retry_count=3,
    base_delay_ms=1000,
    inter_chunk_delay_ms=500,
    supports_speaking_rate=True,
    needs_crossfade=True,
    seconds_per_chunk=5.0,
    estimated_inter_chunk_seconds=0.5,
)

ENGINE_PROFILES: Dict[str, EngineProfile] = {
    "premium": PREMIUM,
    "gemini": PREMIUM,
    "fast": FAST,
    "google-cloud": FAST,
    "google_cloud": FAST,
}


def get_profile(name: str) -> EngineProfile:
    key = (name or "").lower()
    if key not in ENGINE_PROFILES:
        available = ", ".join(sorted(ENGINE_PROFILES))
        raise ConfigurationError(f"Unknown engine '{name}'. Available: {available}")
    return ENGINE_PROFILES[key]


def validate_speaking_rate(rate: Optional[float]) -> float:
    if rate is None:
        return 1.0
    if not MIN_SPEAKING_RATE <= rate <= MAX_SPEAKING_RATE:
        raise ValueError(
            f"Speaking rate {rate} outside supported range "
            f"[{MIN_SPEAKING_RATE}, {MAX_SPEAKING_RATE}]."
        )
    return float(rate)
