import threading
import time

import pytest

from narration_pipeline.errors import (
    ChunkSynthesisError,
    ConfigurationError,
    SynthesisCancelled,
    TransportTimeoutError,
)
from narration_pipeline.profiles import FAST, PREMIUM
from narration_pipeline.retry import RetryPolicy, retry_call
from narration_pipeline.tts_engine import EngineAdapter, MockTtsEngine


class FakeSleep:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


def test_policy_delays_double():
    policy = RetryPolicy.for_profile(PREMIUM)

    assert [policy.delay_for(n) for n in range(1, 6)] == [3.0, 6.0, 12.0, 24.0, 48.0]


def test_premium_exhausts_after_five_attempts():
    sleep = FakeSleep()
    engine = MockTtsEngine(profile=PREMIUM, always_fail=True)
    adapter = EngineAdapter(engine, sleep=sleep)

    with pytest.raises(ChunkSynthesisError) as excinfo:
        adapter.synthesize("Some text.", 7, "Charon")

    assert len(engine.calls) == 5
    assert excinfo.value.attempts == 5
    assert excinfo.value.chunk_index == 7
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert sleep.delays == [3.0, 6.0, 12.0, 24.0]


def test_fast_exhausts_after_three_attempts():
    sleep = FakeSleep()
    engine = MockTtsEngine(profile=FAST, always_fail=True)
    adapter = EngineAdapter(engine, sleep=sleep)

    with pytest.raises(ChunkSynthesisError):
        adapter.synthesize("Some text.", 0, "en-US-Neural2-D", 1.0)

    assert len(engine.calls) == 3
    assert sleep.delays == [1.0, 2.0]


def test_transient_failures_recover_within_budget():
    sleep = FakeSleep()
    engine = MockTtsEngine(profile=FAST, failures=2, duration_ms=100)
    adapter = EngineAdapter(engine, sleep=sleep)

    audio = adapter.synthesize_chunk("Hello.", 3, "en-US-Neural2-D", 1.25)

    assert audio.attempts == 3
    assert len(audio.pcm) == 4800
    assert sleep.delays == [1.0, 2.0]
    assert engine.calls[-1]["speaking_rate"] == 1.25


def test_premium_adapter_drops_speaking_rate():
    engine = MockTtsEngine(profile=PREMIUM, duration_ms=10)
    EngineAdapter(engine, sleep=FakeSleep()).synthesize("Hi.", 0, "Puck", 1.5)

    assert engine.calls[0]["speaking_rate"] is None


@pytest.mark.parametrize("error", [ConfigurationError("no key"), TransportTimeoutError("too slow")])
def test_non_retryable_errors_propagate_immediately(error):
    sleep = FakeSleep()
    calls = []

    def boom():
        calls.append(1)
        raise error

    with pytest.raises(type(error)):
        retry_call(boom, RetryPolicy(max_attempts=5, base_delay_ms=3000), sleep=sleep)

    assert calls == [1]
    assert sleep.delays == []


def test_retry_outcome_records_errors():
    outcome = retry_call(
        lambda: 1 / 0,
        RetryPolicy(max_attempts=2, base_delay_ms=500),
        sleep=FakeSleep(),
    )

    assert not outcome.ok
    assert outcome.attempts == 2
    assert len(outcome.errors) == 2
    assert isinstance(outcome.last_error, ZeroDivisionError)
    assert outcome.delays == [0.5]


def test_cancel_during_backoff_stops_further_attempts():
    cancel = threading.Event()
    delays = []

    def sleep(seconds):
        delays.append(seconds)
        cancel.set()

    engine = MockTtsEngine(profile=PREMIUM, always_fail=True)
    adapter = EngineAdapter(engine, sleep=sleep, cancel_event=cancel)

    with pytest.raises(SynthesisCancelled):
        adapter.synthesize("Some text.", 0, "Charon")

    assert len(engine.calls) == 1
    assert delays == [3.0]


def test_preset_cancel_makes_no_call():
    cancel = threading.Event()
    cancel.set()
    calls = []

    outcome = retry_call(
        lambda: calls.append(1),
        RetryPolicy(max_attempts=3, base_delay_ms=1000),
        cancel_event=cancel,
    )

    assert outcome.cancelled
    assert not outcome.ok
    assert outcome.attempts == 0
    assert calls == []


def test_backoff_waits_on_cancel_event():
    cancel = threading.Event()

    def fail_and_cancel():
        cancel.set()
        raise RuntimeError("boom")

    started = time.monotonic()
    outcome = retry_call(
        fail_and_cancel,
        RetryPolicy(max_attempts=5, base_delay_ms=3000),
        cancel_event=cancel,
    )

    assert outcome.cancelled
    assert outcome.attempts == 1
    assert outcome.delays == [3.0]
    assert time.monotonic() - started < 2.0
