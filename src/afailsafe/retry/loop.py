r"""Synchronous retry loop."""

from __future__ import annotations

__all__ = ["call"]

import time
from collections import deque
from typing import TYPE_CHECKING, TypeVar

from afailsafe.core.config import DEFAULT_MAX_EXCEPTION_CHAIN
from afailsafe.retry.executor_core import (
    complete,
    evaluate_attempt,
    evaluate_exception,
    evaluate_result,
    is_interrupt,
    log_retry,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from afailsafe.retry.predicate import RetryPredicate

T = TypeVar("T")


def call(
    fn: Callable[[], T],
    predicate: RetryPredicate,
    exception_type: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    max_exception_chain: int = DEFAULT_MAX_EXCEPTION_CHAIN,
) -> T:
    """Call ``fn`` on the current thread, retrying as ``predicate``
    decides.

    Every attempt, successful or not, is submitted to the predicate:
    results through ``get_decision`` and exceptions through
    ``get_exception_decision``. A retry decision blocks the calling
    thread for its delay, then runs the callable it carries (the
    original one unless the predicate substituted another). An abort
    decision ends the call.

    There is no limit on the number of attempts other than the ones the
    predicate enforces.

    The failures of earlier attempts are recorded as notes on the raised
    exception object itself. A callable that raises the same pre-built
    exception instance in several calls accumulates the notes of all
    those calls on it, up to ``max_exception_chain``.

    Args:
        fn: The unit of work. It may run several times.
        predicate: A fresh predicate for this call.
        exception_type: Exceptions handled by the predicate. Other
            exceptions propagate from ``fn`` immediately.
        max_exception_chain: Maximum number of failures of earlier
            attempts recorded on the raised exception.

    Returns:
        The result of the last attempt, or the result chosen by the
        predicate.

    Raises:
        BaseException: The exception of the last attempt, unchanged, or
            the exception chosen by the predicate (e.g.
            ``RetryTimeoutError``). ``KeyboardInterrupt`` and other
            interruptions always propagate, including during a wait.

    Example:
        ```pycon
        >>> from afailsafe.retry import NO_RETRY
        >>> from afailsafe.retry.loop import call
        >>> call(lambda: 42, NO_RETRY)
        42

        ```
    """
    what = fn
    previous_failures: deque[BaseException] = deque(maxlen=max_exception_chain)
    attempt = 0
    while True:
        failure: BaseException | None = None
        result = None
        try:
            result = what()
        except exception_type as exc:
            if is_interrupt(exc):
                raise
            failure = exc
            decision = evaluate_exception(predicate, exc, what)
        else:
            decision = evaluate_result(predicate, result, what)
        if decision.is_abort:
            return complete(decision, previous_failures, max_exception_chain, attempt)
        log_retry(attempt, decision, failure, result)
        if failure is not None:
            previous_failures.append(failure)
        delay_ns = decision.delay_ns or 0
        if delay_ns > 0:
            time.sleep(delay_ns / 1e9)
        what = decision.callable
        start = evaluate_attempt(predicate, what, failure)
        if start is not None:
            return complete(start, previous_failures, max_exception_chain, attempt)
        attempt += 1
