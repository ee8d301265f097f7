from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Optional, TypeVar

from .errors import ConfigurationError, TransportTimeoutError
from .profiles import EngineProfile

logger = logging.getLogger(__name__)

__all__ = ["RetryPolicy", "RetryOutcome", "retry_call", "resolve_sleep", "NON_RETRYABLE_ERRORS"]

T = TypeVar("T")

NON_RETRYABLE_ERRORS = (ConfigurationError, TransportTimeoutError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay_ms: int
    backoff_factor: float = 2.0

    @classmethod
    def for_profile(cls, profile: EngineProfile) -> "RetryPolicy":
        return cls(
            max_attempts=profile.retry_count,
            base_delay_ms=profile.base_delay_ms,
            backoff_factor=profile.backoff_factor,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return (self.base_delay_ms / 1000.0) * (self.backoff_factor ** (attempt - 1))


def resolve_sleep(
    sleep: Optional[Callable[[float], None]],
    cancel_event: Optional[threading.Event] = None,
) -> Callable[[float], None]:
    """An explicit ``sleep`` wins; otherwise waits end early when ``cancel_event`` is set."""
    if sleep is not None:
        return sleep
    if cancel_event is not None:
        return cancel_event.wait
    return time.sleep


@dataclass
class RetryOutcome(Generic[T]):
    value: Optional[T] = None
    attempts: int = 0
    errors: List[BaseException] = field(default_factory=list)
    delays: List[float] = field(default_factory=list)
    succeeded: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.succeeded

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.errors[-1] if self.errors else None


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Optional[Callable[[float], None]] = None,
    label: str = "call",
    cancel_event: Optional[threading.Event] = None,
) -> RetryOutcome[T]:
    """
    Call ``func`` until it succeeds or ``policy.max_attempts`` is reached.

    Failures are collected on the returned outcome instead of being raised,
    except for configuration and transport-timeout errors which propagate
    immediately without consuming the retry budget.

    ``cancel_event`` is checked before every attempt; once set, no further
    call is made and the outcome comes back with ``cancelled`` set. Without an
    explicit ``sleep`` the backoff waits on the event, so a cancel cuts it short.
    """
    sleep = resolve_sleep(sleep, cancel_event)
    outcome: RetryOutcome[T] = RetryOutcome()
    while outcome.attempts < policy.max_attempts:
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("%s cancelled after %d attempt(s).", label, outcome.attempts)
            outcome.cancelled = True
            return outcome
        outcome.attempts += 1
        try:
            outcome.value = func()
            outcome.succeeded = True
            if outcome.attempts > 1:
                logger.info("%s succeeded on attempt %d/%d.", label, outcome.attempts, policy.max_attempts)
            return outcome
        except NON_RETRYABLE_ERRORS:
            raise
        except Exception as exc:
            outcome.errors.append(exc)
            if outcome.attempts >= policy.max_attempts:
                logger.error(
                    "%s permanently failed after %d attempts: %s",
                    label,
                    outcome.attempts,
                    exc,
                )
                break
            delay = policy.delay_for(outcome.attempts)
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.2fs.",
                label,
                outcome.attempts,
                policy.max_attempts,
                exc,
                delay,
            )
            outcome.delays.append(delay)
            sleep(delay)
    return outcome
