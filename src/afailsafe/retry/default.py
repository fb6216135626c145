r"""Composite retry predicate evaluating an ordered chain of rules."""

from __future__ import annotations

__all__ = ["DefaultRetryPredicate"]

import logging
from typing import TYPE_CHECKING, Any

from afailsafe.core.config import DEFAULT_MAX_EXCEPTION_CHAIN
from afailsafe.retry.decision import RetryDecision
from afailsafe.retry.predicate import PredicateTarget, RetryPredicate
from afailsafe.utils.exceptions import iter_exception_chain

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from afailsafe.backoff.typed import TypeBasedRetryDelaySupplier
    from afailsafe.retry.predicate import PartialRetryPredicate

logger: logging.Logger = logging.getLogger(__name__)


class DefaultRetryPredicate(RetryPredicate):
    """Evaluate partial predicates in registration order.

    Exceptions are matched against exception rules only, results against
    result rules only. The first rule that returns a decision wins. When
    every rule defers, the call is aborted with the original exception or
    result, untouched.

    Exception rules are evaluated against the raised exception first,
    then against each exception of its cause chain, following at most
    ``max_exception_chain`` links. A deeper cause can therefore trigger a
    retry that the top-level exception does not.

    Retry decisions without a delay (``RetryDecision.retry_default``) get
    their delay from ``delay_suppliers``, keyed by the type of the
    matched exception or result.

    Args:
        delay_suppliers: Per-call backoff used by default-timing retries.
        predicates: The partial predicates, in evaluation order. They are
            used as given, so stateful predicates must be fresh instances.
        max_exception_chain: Maximum number of exception chain links that
            are inspected.
    """

    def __init__(
        self,
        delay_suppliers: TypeBasedRetryDelaySupplier,
        predicates: Sequence[PartialRetryPredicate] = (),
        max_exception_chain: int = DEFAULT_MAX_EXCEPTION_CHAIN,
    ) -> None:
        self.delay_suppliers = delay_suppliers
        self.exception_predicates = tuple(
            p for p in predicates if p.target is PredicateTarget.EXCEPTION
        )
        self.result_predicates = tuple(p for p in predicates if p.target is PredicateTarget.RESULT)
        self.max_exception_chain = max_exception_chain

    def get_decision(self, result: Any, fn: Callable[[], Any]) -> RetryDecision:
        for predicate in self.result_predicates:
            decision = predicate(result, fn)
            if decision is not None:
                return self._resolve_delay(decision, result)
        return RetryDecision.abort_with_result(result)

    def get_exception_decision(self, exc: BaseException, fn: Callable[[], Any]) -> RetryDecision:
        if self.exception_predicates:
            for link in iter_exception_chain(exc, self.max_exception_chain):
                for predicate in self.exception_predicates:
                    decision = predicate(link, fn)
                    if decision is not None:
                        if link is not exc:
                            logger.debug(
                                f"Exception rule matched cause {type(link).__name__} "
                                f"of {type(exc).__name__}"
                            )
                        return self._resolve_delay(decision, link)
        return RetryDecision.abort_with_failure(exc)

    def _resolve_delay(self, decision: RetryDecision, value: Any) -> RetryDecision:
        if decision.is_retry and decision.delay_ns is None:
            return RetryDecision.retry(self.delay_suppliers.next_delay(value), decision.callable)
        return decision
