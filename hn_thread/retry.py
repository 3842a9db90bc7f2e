"""Retry policy and cancellation for the fetch orchestrator."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from tenacity import (
    RetryCallState,
    stop_after_attempt,
    stop_never,
    wait_exponential,
    wait_none,
)
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from hn_thread.constants import (
    FETCH_BACKOFF_BASE,
    FETCH_BACKOFF_MAX,
    FETCH_MAX_ATTEMPTS,
)


def _call_state(attempt_number: int) -> RetryCallState:
    state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
    state.attempt_number = attempt_number
    return state


@dataclass(frozen=True)
class RetryPolicy:
    """How often a failed id is requeued, and how long to wait first.

    ``max_attempts=None`` requeues forever; callers that can't tolerate that
    should bound attempts here or pass a ``CancelToken`` with a deadline.
    The policy is expressed as tenacity stop/wait strategies so the root
    fetch can drive an ``AsyncRetrying`` loop with it, while the orchestrator
    consults the same strategies per requeued id.
    """

    max_attempts: Optional[int] = FETCH_MAX_ATTEMPTS
    backoff: float = FETCH_BACKOFF_BASE
    backoff_max: float = FETCH_BACKOFF_MAX

    def stop(self) -> stop_base:
        if self.max_attempts is None:
            return stop_never
        return stop_after_attempt(self.max_attempts)

    def wait(self) -> wait_base:
        if self.backoff <= 0:
            return wait_none()
        return wait_exponential(multiplier=self.backoff, max=self.backoff_max)

    def exhausted(self, attempts: int) -> bool:
        return self.stop()(_call_state(attempts))

    def delay(self, attempt: int) -> float:
        """Seconds to sleep before ``attempt`` (1-based); first try is immediate."""
        if attempt <= 1:
            return 0.0
        return float(self.wait()(_call_state(attempt - 1)))


class CancelToken:
    """Cooperative cancellation signal, optionally with a deadline.

    The orchestrator checks ``cancelled`` once per loop iteration.
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        # Deadline is relative seconds from now
        self._deadline = time.monotonic() + deadline if deadline is not None else None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())


class stop_when_cancelled(stop_base):
    """Stop retrying once the token trips."""

    def __init__(self, cancel: CancelToken) -> None:
        self.cancel = cancel

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.cancel.cancelled


class wait_until_deadline(wait_base):
    """Wrap another wait so no sleep outlives the token's deadline."""

    def __init__(self, wait: wait_base, cancel: CancelToken) -> None:
        self.wait = wait
        self.cancel = cancel

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.wait(retry_state)
        remaining = self.cancel.remaining()
        return delay if remaining is None else min(delay, remaining)
