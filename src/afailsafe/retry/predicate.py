r"""Retry predicates.

A *partial* retry predicate is a single rule. It inspects either the
exception raised by an attempt or the value it returned, together with
the callable that produced it, and returns a ``RetryDecision`` or None
to defer to the next rule. A full ``RetryPredicate`` always decides.
"""

from __future__ import annotations

__all__ = [
    "NO_RETRY",
    "CountLimitedPartialRetryPredicate",
    "ExceptionPartialPredicate",
    "NoRetryPredicate",
    "PartialRetryPredicate",
    "PredicateTarget",
    "ResultPartialPredicate",
    "RetryOnExceptionType",
    "RetryPredicate",
]

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

from afailsafe.core.validation import validate_max_retries
from afailsafe.exceptions import InvalidRetryDecisionError
from afailsafe.retry.decision import RetryDecision

if TYPE_CHECKING:
    from collections.abc import Callable


class PredicateTarget(Enum):
    """What a partial predicate is evaluated against.

    Attributes:
        EXCEPTION: The exception raised by an attempt.
        RESULT: The value returned by an attempt.
    """

    EXCEPTION = "exception"
    RESULT = "result"


class RetryPredicate(ABC):
    """A complete retry decision function.

    Implementations must return a decision for every input.
    """

    @abstractmethod
    def get_decision(self, result: Any, fn: Callable[[], Any]) -> RetryDecision:
        """Decide what to do after ``fn`` returned ``result``."""

    @abstractmethod
    def get_exception_decision(self, exc: BaseException, fn: Callable[[], Any]) -> RetryDecision:
        """Decide what to do after ``fn`` raised ``exc``."""

    def get_attempt_decision(
        self,
        fn: Callable[[], Any],  # noqa: ARG002
        last_failure: BaseException | None,  # noqa: ARG002
    ) -> RetryDecision | None:
        """Decide whether a retried attempt of ``fn`` may start.

        Retry loops call this right before running a retried attempt,
        after any wait.

        Args:
            fn: The callable about to run.
            last_failure: The exception of the previous attempt, or None
                if it returned a value.

        Returns:
            An abort decision that replaces the attempt, or None to run
            it.
        """
        return None


class NoRetryPredicate(RetryPredicate):
    """Predicate that never retries."""

    def get_decision(self, result: Any, fn: Callable[[], Any]) -> RetryDecision:  # noqa: ARG002
        return RetryDecision.abort_with_result(result)

    def get_exception_decision(
        self,
        exc: BaseException,
        fn: Callable[[], Any],  # noqa: ARG002
    ) -> RetryDecision:
        return RetryDecision.abort_with_failure(exc)


NO_RETRY = NoRetryPredicate()


class PartialRetryPredicate(ABC):
    """A single retry rule that may defer to the next one.

    Attributes:
        target: Whether the rule inspects exceptions or results.
    """

    target: PredicateTarget

    @abstractmethod
    def __call__(self, value: Any, fn: Callable[[], Any]) -> RetryDecision | None:
        """Evaluate the rule.

        Args:
            value: The exception or result of the last attempt.
            fn: The callable that produced ``value``.

        Returns:
            A decision, or None when the rule has no opinion.
        """


class _FunctionPartialPredicate(PartialRetryPredicate):
    def __init__(self, func: Callable[[Any, Callable[[], Any]], RetryDecision | None]) -> None:
        self.func = func

    def __call__(self, value: Any, fn: Callable[[], Any]) -> RetryDecision | None:
        decision = self.func(value, fn)
        if decision is not None and not isinstance(decision, RetryDecision):
            msg = (
                f"Retry predicate {self.func!r} must return a RetryDecision or None, "
                f"got {type(decision).__name__}"
            )
            raise InvalidRetryDecisionError(msg)
        return decision

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}({self.func!r})"


class ExceptionPartialPredicate(_FunctionPartialPredicate):
    """Wrap a function ``(exc, fn) -> RetryDecision | None`` as an
    exception rule.

    Example:
        ```pycon
        >>> from afailsafe.retry import ExceptionPartialPredicate, RetryDecision
        >>> rule = ExceptionPartialPredicate(
        ...     lambda exc, fn: RetryDecision.retry(0, fn) if "busy" in str(exc) else None
        ... )
        >>> rule(OSError("busy"), print).is_retry
        True
        >>> rule(OSError("gone"), print) is None
        True

        ```
    """

    target = PredicateTarget.EXCEPTION


class ResultPartialPredicate(_FunctionPartialPredicate):
    """Wrap a function ``(result, fn) -> RetryDecision | None`` as a
    result rule."""

    target = PredicateTarget.RESULT


class RetryOnExceptionType(PartialRetryPredicate):
    """Retry with the default backoff when the exception is an instance
    of ``exc_type``.

    Args:
        exc_type: An exception class or a tuple of exception classes.
    """

    target = PredicateTarget.EXCEPTION

    def __init__(self, exc_type: type[BaseException] | tuple[type[BaseException], ...]) -> None:
        self.exc_type = exc_type

    def __call__(self, value: Any, fn: Callable[[], Any]) -> RetryDecision | None:
        if isinstance(value, self.exc_type):
            return RetryDecision.retry_default(fn)
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}({self.exc_type!r})"


class CountLimitedPartialRetryPredicate(PartialRetryPredicate):
    """Limit how many times a rule may decide.

    The wrapped rule is consulted while fewer than ``max_retries`` of its
    decisions have been counted. Every decision it makes (deferrals do not
    count) increments the counter. Once the limit is reached the rule
    always defers.

    The counter belongs to the instance. Retry policies build a fresh
    instance for every call, so the limit applies per call.

    Args:
        max_retries: Maximum number of decisions, >= 0.
        predicate: The rule to limit.

    Raises:
        ValueError: If max_retries is negative.

    Example:
        ```pycon
        >>> from afailsafe.retry import CountLimitedPartialRetryPredicate, RetryOnExceptionType
        >>> rule = CountLimitedPartialRetryPredicate(2, RetryOnExceptionType(OSError))
        >>> [rule(OSError(), print) is not None for _ in range(3)]
        [True, True, False]

        ```
    """

    def __init__(self, max_retries: int, predicate: PartialRetryPredicate) -> None:
        validate_max_retries(max_retries)
        self.max_retries = max_retries
        self.predicate = predicate
        self.target = predicate.target
        self.count = 0

    def __call__(self, value: Any, fn: Callable[[], Any]) -> RetryDecision | None:
        if self.count >= self.max_retries:
            return None
        decision = self.predicate(value, fn)
        if decision is not None:
            self.count += 1
        return decision

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(max_retries={self.max_retries}, "
            f"predicate={self.predicate!r}, count={self.count})"
        )
