"""Retry-until-deadline polling.

Every check of a test case is an independent polling loop: the attempt is
called until it succeeds or the deadline passes. Attempts signal "not yet"
by raising a RetryableError subclass; any other exception (notably
ConfigurationError) propagates immediately.

Functions:
    poll_until: Call an attempt until it succeeds or the deadline passes

Example:
    from telemetry_acceptance.polling import poll_until

    result = poll_until(
        check_logs,
        deadline=30.0,
        interval=0.1,
        description="logs matching 'rolling the dice'",
    )
    if not result.ok:
        raise result.to_error()
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from telemetry_acceptance.errors import DeadlineExceededError, RetryableError
from telemetry_acceptance.schemas.definition import DEFAULT_INTERVAL
from telemetry_acceptance.schemas.test_case import DEFAULT_TIMEOUT


@dataclass(frozen=True)
class PollResult:
    """Outcome of a polling loop.

    Attributes:
        ok: True if an attempt succeeded before the deadline.
        iterations: Number of attempts made.
        elapsed: Seconds spent in the loop.
        last_error: Last retryable error observed (None on first-try success).
        description: What was being waited for.
        timeout: The deadline, in seconds from the start of the loop.
    """

    ok: bool
    iterations: int
    elapsed: float
    last_error: RetryableError | None = None
    description: str = "condition"
    timeout: float = 0.0

    def to_error(self) -> DeadlineExceededError:
        """Build the terminal error for a failed loop."""
        return DeadlineExceededError(
            self.description,
            self.timeout,
            last_error=self.last_error,
            iterations=self.iterations,
        )


RetryCallback = Callable[[int, float, RetryableError], None]


def poll_until(
    attempt: Callable[[], object],
    deadline: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
    description: str = "condition",
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: RetryCallback | None = None,
) -> PollResult:
    """Call ``attempt`` until it returns without a RetryableError.

    The deadline is checked at the head of every iteration, so an attempt
    is never started after the deadline has passed. The sleep between
    attempts never exceeds the remaining time.

    Args:
        attempt: Callable performing one iteration. Raises RetryableError
            to mean "not yet"; returning normally means success.
        deadline: Seconds from now until the loop gives up.
        interval: Seconds to sleep between attempts.
        description: What is being waited for, for error messages.
        clock: Monotonic clock, injectable for tests.
        sleep: Sleep function, injectable for tests.
        on_retry: Called with (iteration, elapsed, error) after every failed
            attempt.

    Returns:
        PollResult describing the outcome. The loop state is not shared
        with the caller; everything observed is in the result.

    Raises:
        Exception: Any non-retryable exception raised by ``attempt``
            (e.g. ConfigurationError) propagates unchanged.
    """
    start = clock()
    iterations = 0
    last_error: RetryableError | None = None

    while True:
        elapsed = clock() - start
        if iterations > 0 and elapsed >= deadline:
            return PollResult(
                ok=False,
                iterations=iterations,
                elapsed=elapsed,
                last_error=last_error,
                description=description,
                timeout=deadline,
            )

        iterations += 1
        try:
            attempt()
        except RetryableError as e:
            last_error = e
        else:
            return PollResult(
                ok=True,
                iterations=iterations,
                elapsed=clock() - start,
                last_error=last_error,
                description=description,
                timeout=deadline,
            )

        elapsed = clock() - start
        if on_retry is not None:
            on_retry(iterations, elapsed, last_error)

        # Sleep for interval, but don't exceed remaining time
        remaining = deadline - elapsed
        sleep_time = min(interval, remaining)
        if sleep_time > 0:
            sleep(sleep_time)


__all__ = [
    "PollResult",
    "poll_until",
]
