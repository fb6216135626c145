r"""Deadline aware retry predicate."""

from __future__ import annotations

__all__ = ["TimeoutRetryPredicate"]

import logging
import time
from typing import TYPE_CHECKING, Any

from afailsafe.exceptions import RetryTimeoutError
from afailsafe.retry.decision import RetryDecision
from afailsafe.retry.predicate import RetryPredicate

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)


class TimeoutRetryPredicate(RetryPredicate):
    """Abort with a timeout when a call cannot finish before its
    deadline.

    For every decision the deadline is obtained from
    ``deadline_supplier`` (an absolute ``time.monotonic_ns()`` value, or
    None for no deadline). If the deadline has passed, a
    ``RetryTimeoutError`` abort is returned without consulting the
    wrapped predicate. If the wrapped predicate asks for a retry whose
    delay would end at or after the deadline, the retry is replaced by a
    ``RetryTimeoutError`` abort. The remaining time is measured after the
    wrapped predicate decided. Any other decision is returned unchanged.

    ``get_attempt_decision`` aborts a retried attempt that would start at
    or after the deadline, so no attempt starts once the deadline passed.

    The synthesized ``RetryTimeoutError`` keeps the exception that was
    being retried as its ``__cause__``.

    Args:
        predicate: The wrapped predicate.
        deadline_supplier: Returns the deadline for a callable.
    """

    def __init__(
        self,
        predicate: RetryPredicate,
        deadline_supplier: Callable[[Callable[[], Any]], int | None],
    ) -> None:
        self.predicate = predicate
        self.deadline_supplier = deadline_supplier

    def get_decision(self, result: Any, fn: Callable[[], Any]) -> RetryDecision:
        return self._decide(fn, None, lambda: self.predicate.get_decision(result, fn))

    def get_exception_decision(self, exc: BaseException, fn: Callable[[], Any]) -> RetryDecision:
        return self._decide(fn, exc, lambda: self.predicate.get_exception_decision(exc, fn))

    def _decide(
        self,
        fn: Callable[[], Any],
        exc: BaseException | None,
        decide: Callable[[], RetryDecision],
    ) -> RetryDecision:
        deadline_ns = self.deadline_supplier(fn)
        if deadline_ns is None:
            return decide()
        now_ns = time.monotonic_ns()
        if now_ns >= deadline_ns:
            return self._timeout(
                f"Deadline passed {(now_ns - deadline_ns) / 1e6:.3f}ms ago",
                deadline_ns,
                now_ns,
                exc,
            )
        decision = decide()
        if not decision.is_retry:
            return decision
        # Remaining time is measured after the rules ran
        now_ns = time.monotonic_ns()
        if now_ns + (decision.delay_ns or 0) >= deadline_ns:
            return self._timeout(
                f"Retry delay of {(decision.delay_ns or 0) / 1e6:.3f}ms exceeds the "
                f"{(deadline_ns - now_ns) / 1e6:.3f}ms left before the deadline",
                deadline_ns,
                now_ns,
                exc,
            )
        return decision

    def get_attempt_decision(
        self, fn: Callable[[], Any], last_failure: BaseException | None
    ) -> RetryDecision | None:
        deadline_ns = self.deadline_supplier(fn)
        if deadline_ns is not None:
            now_ns = time.monotonic_ns()
            if now_ns >= deadline_ns:
                return self._timeout(
                    f"Deadline passed {(now_ns - deadline_ns) / 1e6:.3f}ms before the next "
                    "attempt could start",
                    deadline_ns,
                    now_ns,
                    last_failure,
                )
        return self.predicate.get_attempt_decision(fn, last_failure)

    @staticmethod
    def _timeout(
        message: str, deadline_ns: int, now_ns: int, exc: BaseException | None
    ) -> RetryDecision:
        logger.debug(f"Aborting call: {message}")
        error = RetryTimeoutError(message, deadline_ns=deadline_ns, now_ns=now_ns)
        if exc is not None:
            error.__cause__ = exc
        return RetryDecision.abort_with_failure(error)
