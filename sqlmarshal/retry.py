"""Retry strategy for transient database failures.

Single statements are retried immediately: the loop is synchronous, never sleeps
and is bounded only by the attempt counter. Whole transactions retried through
:class:`~sqlmarshal.repository.Repository` may opt into exponential backoff.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, Field, NonNegativeFloat, NonNegativeInt
from tenacity import (  # type: ignore[import-not-found]
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_none,
    wait_random,
    wait_random_exponential,
)

from .utils.logging import StructuredLogger

__all__ = ["RetryPolicy", "run_with_retry"]

T = TypeVar("T")


def _no_sleep(_seconds: float) -> None:
    return None


class RetryPolicy(BaseModel):
    """Retry configuration; ``retries`` counts attempts after the first one."""

    retries: NonNegativeInt = Field(
        1,
        description="Number of additional attempts made after a transient failure.",
    )
    initial_backoff: NonNegativeFloat = Field(
        0.0,
        description="Initial backoff interval in seconds. Zero retries immediately.",
    )
    max_backoff: NonNegativeFloat = Field(
        2.0,
        description="Upper bound for the exponential backoff window.",
    )
    max_jitter: NonNegativeFloat = Field(
        0.0,
        description="Additional random jitter applied on top of the exponential backoff.",
    )

    def build(
        self,
        *,
        should_retry: Callable[[BaseException], bool],
        logger: StructuredLogger,
        retries: int | None = None,
    ) -> Retrying:
        """Return a configured :class:`~tenacity.Retrying` instance.

        *retries* overrides :attr:`retries`, which lets a handle carry its own
        count on top of a shared policy.
        """

        total_retries = self.retries if retries is None else retries
        if total_retries < 0:
            raise ValueError("retries must be zero or greater")

        if self.initial_backoff > 0:
            wait = wait_random_exponential(multiplier=self.initial_backoff, max=self.max_backoff)
            if self.max_jitter > 0:
                wait = wait + wait_random(0, self.max_jitter)
            return Retrying(
                stop=stop_after_attempt(total_retries + 1),
                wait=wait,
                retry=retry_if_exception(should_retry),
                before_sleep=_log_retry(logger),
                reraise=True,
            )
        return Retrying(
            stop=stop_after_attempt(total_retries + 1),
            wait=wait_none(),
            retry=retry_if_exception(should_retry),
            before_sleep=_log_retry(logger),
            sleep=_no_sleep,
            reraise=True,
        )


def _log_retry(logger: StructuredLogger) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome is not None else None
        logger.warning(
            "Transient database failure; retrying",
            attempt=state.attempt_number,
            error_type=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
        )

    return _before_sleep


def run_with_retry(retrying: Retrying, operation: Callable[[], T]) -> T:
    """Execute *operation* under the supplied :class:`~tenacity.Retrying`."""

    for attempt in retrying:
        with attempt:
            return operation()
    raise RuntimeError("Retrying loop exited unexpectedly")
