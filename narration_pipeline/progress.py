"""Progress estimation and reporting for long synthesis jobs."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from tqdm import tqdm

from .profiles import EngineProfile

logger = logging.getLogger(__name__)

__all__ = [
    "ProgressEvent",
    "ProgressListener",
    "ProgressEstimator",
    "ProgressTicker",
    "TqdmProgressListener",
    "estimate_chunk_count",
    "estimate_total_seconds",
    "format_clock",
]

TICK_INTERVAL_SEC = 1.0


@dataclass(frozen=True)
class ProgressEvent:
    elapsed_seconds: int
    estimated_total_seconds: float
    remaining_seconds: float
    percent: int
    chunk_index: int
    chunk_count: int
    status: str
    done: bool = False
    failed: bool = False


ProgressListener = Callable[[ProgressEvent], None]


def estimate_chunk_count(character_count: int, profile: EngineProfile) -> int:
    if character_count <= 0:
        return 0
    return math.ceil(character_count / profile.chunk_size)


def estimate_total_seconds(character_count: int, profile: EngineProfile) -> float:
    """
    Expected wall-clock seconds for a job of ``character_count`` characters.

    Uses the profile's calibrated per-chunk latency plus the average gap
    between chunks.
    """
    chunks = estimate_chunk_count(character_count, profile)
    if chunks == 0:
        return 0.0
    return chunks * profile.seconds_per_chunk + (chunks - 1) * profile.estimated_inter_chunk_seconds


def format_clock(seconds: float) -> str:
    seconds = max(0, int(round(seconds)))
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class ProgressEstimator:
    """
    Holds the progress state of one job and publishes it to listeners.

    ``estimated_total_seconds`` is fixed at construction. The ticker is the
    only caller of :meth:`tick`; the synthesis loop only reports chunk
    completions and the final transition.
    """

    def __init__(
        self,
        character_count: int,
        profile: EngineProfile,
        *,
        chunk_count: Optional[int] = None,
    ) -> None:
        self.profile = profile
        self.character_count = character_count
        self.chunk_count = estimate_chunk_count(character_count, profile) if chunk_count is None else chunk_count
        self.estimated_total_seconds = estimate_total_seconds(character_count, profile)
        self.elapsed_seconds = 0
        self.chunk_index = 0
        self.done = False
        self.failed = False
        self._listeners: List[ProgressListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def remaining_seconds(self) -> float:
        if self.done:
            return 0.0
        return max(0.0, self.estimated_total_seconds - self.elapsed_seconds)

    @property
    def percent(self) -> int:
        if self.done and not self.failed:
            return 100
        if self.estimated_total_seconds <= 0:
            return 0
        return max(0, min(100, math.floor(self.elapsed_seconds / self.estimated_total_seconds * 100)))

    def status(self) -> str:
        if self.failed:
            return f"Audio generation failed after {format_clock(self.elapsed_seconds)}."
        if self.done:
            return f"Audio generation complete in {format_clock(self.elapsed_seconds)}."
        return (
            f"Generating audio... chunk {min(self.chunk_index + 1, max(self.chunk_count, 1))}/{self.chunk_count}"
            f" | {format_clock(self.elapsed_seconds)} elapsed"
            f" | ~{format_clock(self.remaining_seconds)} remaining ({self.percent}%)"
        )

    def snapshot(self) -> ProgressEvent:
        return ProgressEvent(
            elapsed_seconds=self.elapsed_seconds,
            estimated_total_seconds=self.estimated_total_seconds,
            remaining_seconds=self.remaining_seconds,
            percent=self.percent,
            chunk_index=self.chunk_index,
            chunk_count=self.chunk_count,
            status=self.status(),
            done=self.done,
            failed=self.failed,
        )

    def tick(self) -> ProgressEvent:
        with self._lock:
            if not self.done:
                self.elapsed_seconds += 1
            event = self.snapshot()
            self._publish(event)
        return event

    def chunk_completed(self, chunk_index: int) -> ProgressEvent:
        with self._lock:
            self.chunk_index = max(self.chunk_index, chunk_index + 1)
            event = self.snapshot()
            self._publish(event)
        return event

    def finish(self, *, failed: bool = False) -> ProgressEvent:
        with self._lock:
            self.done = True
            self.failed = failed
            event = self.snapshot()
            self._publish(event)
        return event

    def _publish(self, event: ProgressEvent) -> None:
        for listener in list(self._listeners):
            listener(event)


class ProgressTicker:
    """
    Background thread that advances an estimator once per interval.

    Use it as a context manager so it is stopped however the job ends.
    """

    def __init__(self, estimator: ProgressEstimator, *, interval: float = TICK_INTERVAL_SEC) -> None:
        self.estimator = estimator
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "ProgressTicker":
        if self._thread is not None:
            raise RuntimeError("Ticker already started.")
        self._thread = threading.Thread(target=self._run, name="progress-ticker", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def __enter__(self) -> "ProgressTicker":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.estimator.tick()
            except Exception:
                logger.exception("Progress listener failed; stopping ticker.")
                return


class TqdmProgressListener:
    """Renders progress events on a terminal bar."""

    def __init__(self, description: str = "Narration") -> None:
        self._bar = tqdm(
            total=100,
            desc=description,
            unit="%",
            bar_format="{l_bar}{bar}| {postfix}",
        )

    def __call__(self, event: ProgressEvent) -> None:
        self._bar.n = event.percent
        self._bar.set_postfix_str(
            f"chunk {event.chunk_index}/{event.chunk_count}, "
            f"{format_clock(event.elapsed_seconds)} elapsed, "
            f"~{format_clock(event.remaining_seconds)} left",
            refresh=False,
        )
        self._bar.refresh()
        if event.done:
            self.close()

    def close(self) -> None:
        self._bar.close()
