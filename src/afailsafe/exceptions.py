r"""Exceptions raised by the retry engine.

Failures raised by the protected callable are never wrapped: they reach
the caller unchanged. The classes below only cover conditions the engine
itself detects.
"""

from __future__ import annotations

__all__ = ["FailsafeError", "InvalidRetryDecisionError", "RetryTimeoutError"]


class FailsafeError(Exception):
    """Base class for errors raised by afailsafe."""


class RetryTimeoutError(FailsafeError, TimeoutError):
    """Raised when a call cannot complete before its deadline.

    The failure that was being retried, if any, is available as
    ``__cause__``.

    Args:
        message: A descriptive error message.
        deadline_ns: The absolute ``time.monotonic_ns()`` deadline.
        now_ns: The ``time.monotonic_ns()`` value when the timeout was
            detected.

    Example:
        ```pycon
        >>> from afailsafe.exceptions import RetryTimeoutError
        >>> err = RetryTimeoutError("deadline passed", deadline_ns=10, now_ns=15)
        >>> err.overrun_ns
        5
        >>> isinstance(err, TimeoutError)
        True

        ```
    """

    def __init__(self, message: str, *, deadline_ns: int, now_ns: int) -> None:
        super().__init__(message)
        self.deadline_ns = deadline_ns
        self.now_ns = now_ns

    @property
    def overrun_ns(self) -> int:
        """Nanoseconds between the deadline and the detection time."""
        return self.now_ns - self.deadline_ns


class InvalidRetryDecisionError(FailsafeError, ValueError):
    """Raised when a retry predicate returns something that is not a
    ``RetryDecision``."""
