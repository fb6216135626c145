r"""Asyncio retry loop.

This module provides the coroutine counterpart of
``afailsafe.retry.loop.call``: attempts are awaited and the waits
between attempts use ``asyncio.sleep``, so the event loop keeps running
other tasks while a call backs off.
"""

from __future__ import annotations

__all__ = ["acall"]

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Any, TypeVar

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
    from collections.abc import Awaitable, Callable

    from afailsafe.retry.predicate import RetryPredicate

T = TypeVar("T")


async def acall(
    fn: Callable[[], Awaitable[T]],
    predicate: RetryPredicate,
    exception_type: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    max_exception_chain: int = DEFAULT_MAX_EXCEPTION_CHAIN,
) -> T:
    """Await ``fn``, retrying as ``predicate`` decides.

    The decision semantics are those of ``afailsafe.retry.loop.call``.
    Predicates receive the coroutine function, and a retry decision may
    substitute another coroutine function.

    Args:
        fn: A zero-argument coroutine function. It may run several times.
        predicate: A fresh predicate for this call.
        exception_type: Exceptions handled by the predicate. Other
            exceptions propagate immediately.
        max_exception_chain: Maximum number of failures of earlier
            attempts recorded on the raised exception.

    Returns:
        The result of the last attempt, or the result chosen by the
        predicate.

    Raises:
        BaseException: The exception of the last attempt, unchanged, or
            the exception chosen by the predicate.
            ``asyncio.CancelledError`` propagates when the task is
            cancelled, including during a wait.

    Example:
        ```pycon
        >>> import asyncio
        >>> from afailsafe.retry import NO_RETRY
        >>> from afailsafe.retry.executor_async import acall
        >>> async def fetch():
        ...     return "data"
        ...
        >>> asyncio.run(acall(fetch, NO_RETRY))
        'data'

        ```
    """
    what: Callable[[], Awaitable[Any]] = fn
    previous_failures: deque[BaseException] = deque(maxlen=max_exception_chain)
    attempt = 0
    while True:
        failure: BaseException | None = None
        result = None
        try:
            result = await what()
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
            await asyncio.sleep(delay_ns / 1e9)
        what = decision.callable
        start = evaluate_attempt(predicate, what, failure)
        if start is not None:
            return complete(start, previous_failures, max_exception_chain, attempt)
        attempt += 1
