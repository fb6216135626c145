r"""Retry rules for httpx.

The rules plug into ``RetryPredicateBuilder`` to retry HTTP calls made
with httpx on transport errors and on transient status codes, honoring
the ``Retry-After`` header sent by the server.

Example:
    ```pycon
    >>> import httpx
    >>> from afailsafe import RetryPolicy
    >>> from afailsafe.http import retry_on_status, retry_on_transport_error
    >>> policy = (
    ...     RetryPolicy.new_builder()
    ...     .retry_predicate_builder()
    ...     .with_exception_partial_predicate(retry_on_transport_error, max_retries=3)
    ...     .with_result_partial_predicate(retry_on_status(), max_retries=3)
    ...     .finish_predicate()
    ...     .build()
    ... )
    >>> with httpx.Client() as client:  # doctest: +SKIP
    ...     response = policy.call(lambda: client.get("https://api.example.com/data"))
    ...

    ```
"""

from __future__ import annotations

__all__ = [
    "RETRY_STATUS_CODES",
    "retry_on_status",
    "retry_on_status_error",
    "retry_on_transport_error",
]

import logging
from typing import TYPE_CHECKING, Any

import httpx

from afailsafe.retry.decision import RetryDecision
from afailsafe.retry.predicate import ExceptionPartialPredicate, ResultPartialPredicate
from afailsafe.utils.retry_after import parse_retry_after

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger: logging.Logger = logging.getLogger(__name__)

# HTTP status codes that usually indicate a transient condition
# 429: Too Many Requests - Rate limiting
# 500: Internal Server Error - Temporary server issue
# 502: Bad Gateway - Upstream server error
# 503: Service Unavailable - Server overloaded or down
# 504: Gateway Timeout - Upstream server timeout
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


def _decide(
    response: httpx.Response, fn: Callable[[], Any], respect_retry_after: bool
) -> RetryDecision:
    if respect_retry_after:
        delay_ns = parse_retry_after(response.headers.get("Retry-After"))
        if delay_ns is not None:
            logger.debug(
                f"Status {response.status_code}: retrying after Retry-After delay of "
                f"{delay_ns / 1e9:.2f}s"
            )
            return RetryDecision.retry(delay_ns, fn)
    logger.debug(f"Status {response.status_code}: retrying with default backoff")
    return RetryDecision.retry_default(fn)


def retry_on_transport_error(exc: BaseException, fn: Callable[[], Any]) -> RetryDecision | None:
    """Retry with the default backoff on ``httpx.TransportError``.

    Transport errors cover timeouts, connection failures and protocol
    errors, where no usable response was received.

    Args:
        exc: The raised exception.
        fn: The callable that raised it.

    Returns:
        A default-timing retry decision, or None for other exceptions.
    """
    if isinstance(exc, httpx.TransportError):
        return RetryDecision.retry_default(fn)
    return None


def retry_on_status(
    status_codes: Iterable[int] = RETRY_STATUS_CODES,
    respect_retry_after: bool = True,
) -> ResultPartialPredicate:
    """Create a result rule retrying ``httpx.Response`` objects with a
    transient status code.

    Args:
        status_codes: Status codes that trigger a retry.
        respect_retry_after: Use the ``Retry-After`` header, when present
            and valid, as the retry delay.

    Returns:
        The rule. It defers for values that are not responses and for
        other status codes.
    """
    codes = frozenset(status_codes)

    def predicate(result: Any, fn: Callable[[], Any]) -> RetryDecision | None:
        if not isinstance(result, httpx.Response) or result.status_code not in codes:
            return None
        return _decide(result, fn, respect_retry_after)

    return ResultPartialPredicate(predicate)


def retry_on_status_error(
    status_codes: Iterable[int] = RETRY_STATUS_CODES,
    respect_retry_after: bool = True,
) -> ExceptionPartialPredicate:
    """Create an exception rule retrying ``httpx.HTTPStatusError`` (as
    raised by ``Response.raise_for_status``) with a transient status
    code.

    Args:
        status_codes: Status codes that trigger a retry.
        respect_retry_after: Use the ``Retry-After`` header, when present
            and valid, as the retry delay.

    Returns:
        The rule.
    """
    codes = frozenset(status_codes)

    def predicate(exc: BaseException, fn: Callable[[], Any]) -> RetryDecision | None:
        if not isinstance(exc, httpx.HTTPStatusError) or exc.response.status_code not in codes:
            return None
        return _decide(exc.response, fn, respect_retry_after)

    return ExceptionPartialPredicate(predicate)
