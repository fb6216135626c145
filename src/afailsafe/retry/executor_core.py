r"""Shared core logic for retry loops and executors.

The helpers below are used by the synchronous loop, the thread pool
executor and the asyncio loop alike, so that the three execution modes
evaluate and complete decisions the same way.
"""

from __future__ import annotations

__all__ = [
    "INTERRUPTS",
    "complete",
    "evaluate_attempt",
    "evaluate_exception",
    "evaluate_result",
    "is_interrupt",
    "log_retry",
]

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from afailsafe.exceptions import InvalidRetryDecisionError
from afailsafe.retry.decision import RetryDecision
from afailsafe.utils.exceptions import add_previous_failure
from afailsafe.utils.structured_logging import log_structured

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from afailsafe.retry.predicate import RetryPredicate

logger: logging.Logger = logging.getLogger(__name__)

# Exceptions that signal an interruption. They are never retried.
INTERRUPTS: tuple[type[BaseException], ...] = (
    KeyboardInterrupt,
    SystemExit,
    GeneratorExit,
    asyncio.CancelledError,
)


def is_interrupt(exc: BaseException) -> bool:
    """Return True if ``exc`` interrupts the call rather than failing
    it."""
    return isinstance(exc, INTERRUPTS)


def evaluate_result(predicate: RetryPredicate, result: Any, fn: Callable[[], Any]) -> RetryDecision:
    """Ask ``predicate`` what to do with a returned value.

    Raises:
        InvalidRetryDecisionError: If the predicate does not return a
            ``RetryDecision``.
    """
    return _check(predicate, predicate.get_decision(result, fn))


def evaluate_exception(
    predicate: RetryPredicate, exc: BaseException, fn: Callable[[], Any]
) -> RetryDecision:
    """Ask ``predicate`` what to do with a raised exception.

    Raises:
        InvalidRetryDecisionError: If the predicate does not return a
            ``RetryDecision``.
    """
    return _check(predicate, predicate.get_exception_decision(exc, fn))


def evaluate_attempt(
    predicate: RetryPredicate, fn: Callable[[], Any], last_failure: BaseException | None
) -> RetryDecision | None:
    """Ask ``predicate`` whether a retried attempt of ``fn`` may start.

    Returns:
        The abort decision replacing the attempt, or None to run it.

    Raises:
        InvalidRetryDecisionError: If the predicate returns something
            that is not an abort ``RetryDecision`` or None.
    """
    decision = predicate.get_attempt_decision(fn, last_failure)
    if decision is None:
        return None
    decision = _check(predicate, decision)
    if not decision.is_abort:
        msg = f"{predicate!r} returned {decision!r} before an attempt, expected an abort"
        raise InvalidRetryDecisionError(msg)
    return decision


def _check(predicate: RetryPredicate, decision: Any) -> RetryDecision:
    if not isinstance(decision, RetryDecision):
        msg = f"{predicate!r} returned {decision!r} instead of a RetryDecision"
        raise InvalidRetryDecisionError(msg)
    return decision


def log_retry(
    attempt: int,
    decision: RetryDecision,
    failure: BaseException | None,
    result: Any,
) -> None:
    """Log a retry decision.

    Args:
        attempt: The attempt that was just completed (0-indexed).
        decision: The retry decision.
        failure: The exception raised by the attempt, if any.
        result: The value returned by the attempt, if it did not raise.
    """
    cause = f"{type(failure).__name__}: {failure}" if failure is not None else f"result {result!r}"
    delay_ns = decision.delay_ns or 0
    log_structured(
        logger,
        logging.DEBUG,
        f"Attempt {attempt + 1} failed with {cause}, retrying in {delay_ns / 1e6:.3f}ms",
        attempt=attempt + 1,
        delay_ns=delay_ns,
    )


def complete(
    decision: RetryDecision,
    previous_failures: Iterable[BaseException],
    max_exception_chain: int,
    attempt: int,
) -> Any:
    """Carry out an abort decision.

    Args:
        decision: The abort decision.
        previous_failures: Exceptions raised by earlier attempts, oldest
            first. They are recorded as notes on the raised exception.
        max_exception_chain: Maximum number of recorded failures.
        attempt: The last attempt (0-indexed).

    Returns:
        The decision result.

    Raises:
        BaseException: The decision failure, unchanged in type and
            identity.
    """
    failure = decision.failure
    if failure is None:
        logger.debug(f"Call completed after {attempt + 1} attempt(s)")
        return decision.result
    for previous in reversed(list(previous_failures)):
        add_previous_failure(failure, previous, max_exception_chain)
    logger.debug(
        f"Call aborted after {attempt + 1} attempt(s) with {type(failure).__name__}: {failure}"
    )
    raise failure
