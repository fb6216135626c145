r"""Retry decisions returned by retry predicates."""

from __future__ import annotations

__all__ = ["RetryDecision", "RetryDecisionType"]

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


class RetryDecisionType(Enum):
    """Kinds of retry decisions.

    Attributes:
        RETRY: Run the (possibly substituted) callable again after a delay.
        ABORT: Stop and return the result or raise the failure.
    """

    RETRY = "retry"
    ABORT = "abort"


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of evaluating a retry predicate.

    Use the class-method factories rather than the constructor.

    Attributes:
        decision_type: Whether to retry or abort.
        delay_ns: Delay before the retry in nanoseconds. None on a retry
            decision means "use the default backoff" and is resolved by
            ``DefaultRetryPredicate``.
        callable: The callable to run on retry.
        result: The value returned on abort, when ``failure`` is None.
        failure: The exception raised on abort, if any.

    Example:
        ```pycon
        >>> from afailsafe.retry import RetryDecision
        >>> decision = RetryDecision.retry(1_000, print)
        >>> decision.is_retry
        True
        >>> decision.delay_ns
        1000
        >>> RetryDecision.abort_with_result(42).result
        42

        ```
    """

    decision_type: RetryDecisionType
    delay_ns: int | None = None
    callable: Callable[[], Any] | None = None
    result: Any = None
    failure: BaseException | None = None

    @property
    def is_retry(self) -> bool:
        """True if this decision asks for another attempt."""
        return self.decision_type is RetryDecisionType.RETRY

    @property
    def is_abort(self) -> bool:
        """True if this decision ends the call."""
        return self.decision_type is RetryDecisionType.ABORT

    @classmethod
    def retry(cls, delay_ns: int, fn: Callable[[], Any]) -> RetryDecision:
        """Retry ``fn`` after ``delay_ns`` nanoseconds.

        Raises:
            ValueError: If delay_ns is negative.
        """
        if delay_ns < 0:
            msg = f"Invalid retry decision delay: {delay_ns}"
            raise ValueError(msg)
        return cls(RetryDecisionType.RETRY, delay_ns=delay_ns, callable=fn)

    @classmethod
    def retry_default(cls, fn: Callable[[], Any]) -> RetryDecision:
        """Retry ``fn`` with the delay given by the policy backoff."""
        return cls(RetryDecisionType.RETRY, callable=fn)

    @classmethod
    def abort(cls) -> RetryDecision:
        """Stop retrying and return None."""
        return cls(RetryDecisionType.ABORT)

    @classmethod
    def abort_with_result(cls, result: Any) -> RetryDecision:
        """Stop retrying and return ``result``."""
        return cls(RetryDecisionType.ABORT, result=result)

    @classmethod
    def abort_with_failure(cls, failure: BaseException) -> RetryDecision:
        """Stop retrying and raise ``failure``."""
        return cls(RetryDecisionType.ABORT, failure=failure)

