"""Exception hierarchy for telemetry-acceptance.

All exceptions inherit from HarnessError, the base exception class.

Exception Hierarchy:
    HarnessError (base)
    ├── ConfigurationError      # Invalid test case definition (fatal, never retried)
    ├── RetryableError          # "Not yet" - retried until the check deadline
    │   ├── TransientQueryError # Backend/application unreachable or not ready
    │   └── AssertionMismatch   # Telemetry found, but it does not match yet
    ├── DeadlineExceededError   # Check deadline passed (also a TimeoutError)
    └── CheckFailedError        # Test case failed with at least one check

Example:
    >>> from telemetry_acceptance.errors import AssertionMismatch
    >>> raise AssertionMismatch("expected at least 1 match, found 0", query="{}")
    Traceback (most recent call last):
        ...
    AssertionMismatch: expected at least 1 match, found 0
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

MAX_RESPONSE_SNIPPET = 2000
"""Maximum number of response characters included in diagnostics."""


def truncate_response(response: bytes | str | None, limit: int = MAX_RESPONSE_SNIPPET) -> str:
    """Render a raw backend response as a bounded string for error messages.

    Args:
        response: Raw response body (bytes or text), or None.
        limit: Maximum number of characters to keep.

    Returns:
        Decoded text, cut to ``limit`` characters with a ".." suffix when truncated.
    """
    if response is None:
        return ""
    text = response.decode("utf-8", errors="replace") if isinstance(response, bytes) else response
    if len(text) > limit:
        return text[:limit] + ".."
    return text


class HarnessError(Exception):
    """Base exception for all harness errors.

    Example:
        >>> try:
        ...     runner.run()
        ... except HarnessError as e:
        ...     print(f"Acceptance test failed: {e}")
    """

    pass


class ConfigurationError(HarnessError):
    """Raised when a test case definition is invalid.

    Configuration errors are fatal: they are surfaced before any
    provisioning starts and are never retried by the polling loop.

    Attributes:
        errors: Every validation failure found, in check order.
        source: Path of the offending definition, if known.

    Example:
        >>> raise ConfigurationError("invalid test case", ["input path is empty"])
        Traceback (most recent call last):
            ...
        ConfigurationError: invalid test case:
          - input path is empty
    """

    def __init__(
        self,
        message: str,
        errors: Sequence[str] | None = None,
        source: str | None = None,
    ) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Summary of the failure.
            errors: Individual validation failures.
            source: Path of the offending definition.
        """
        self.errors = list(errors or [])
        self.source = source
        text = message
        if source:
            text = f"{text} ({source})"
        if self.errors:
            text += ":\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(text)


class RetryableError(HarnessError):
    """Base class for failures that mean "not yet".

    The polling loop retries these until the check deadline. They carry the
    query that was issued and the raw response so the final failure can be
    reported with full diagnostic context.

    Attributes:
        query: The query (PromQL, TraceQL, LogQL, URL, ...) that was issued.
        response: The raw response body, if any.
    """

    def __init__(
        self,
        message: str,
        query: str | None = None,
        response: bytes | str | None = None,
    ) -> None:
        self.message = message
        self.query = query
        self.response = response
        super().__init__(message)

    def diagnostics(self) -> str:
        """Format the message together with the query and a response snippet.

        Returns:
            Multi-line diagnostic text.
        """
        lines = [self.message]
        if self.query:
            lines.append(f"query: {self.query}")
        snippet = truncate_response(self.response)
        if snippet:
            lines.append(f"response: {snippet}")
        return "\n".join(lines)


class TransientQueryError(RetryableError):
    """Raised when the application or a backend cannot be queried yet.

    Covers network failures, non-2xx responses, empty bodies and responses
    that cannot be decoded.
    """

    pass


class AssertionMismatch(RetryableError):
    """Raised when found telemetry does not match an expectation.

    Treated as "not yet" until the check deadline, then reported as a hard
    failure.
    """

    pass


class DeadlineExceededError(HarnessError, TimeoutError):
    """Raised when a check does not succeed before its deadline.

    Attributes:
        description: What was being waited for.
        timeout: How long the check waited, in seconds.
        last_error: Last retryable error observed, kept for diagnostics.
        iterations: Number of attempts made.
    """

    def __init__(
        self,
        description: str,
        timeout: float,
        last_error: RetryableError | None = None,
        iterations: int = 0,
    ) -> None:
        self.description = description
        self.timeout = timeout
        self.last_error = last_error
        self.iterations = iterations
        message = f"Deadline exceeded waiting for {description} after {timeout:.1f}s"
        if last_error is not None:
            message += f"\n{last_error.diagnostics()}"
        super().__init__(message)


class CheckFailedError(HarnessError):
    """Raised when a test case finishes with failed checks.

    Attributes:
        test_case: Name of the failed test case.
        failures: Failure messages of every failed check.
    """

    def __init__(self, test_case: str, failures: Sequence[str]) -> None:
        self.test_case = test_case
        self.failures = list(failures)
        joined = "\n\n".join(self.failures)
        super().__init__(f"Test case '{test_case}' failed:\n{joined}")


__all__ = [
    "MAX_RESPONSE_SNIPPET",
    "AssertionMismatch",
    "CheckFailedError",
    "ConfigurationError",
    "DeadlineExceededError",
    "HarnessError",
    "RetryableError",
    "TransientQueryError",
    "truncate_response",
]
