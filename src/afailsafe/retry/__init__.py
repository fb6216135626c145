r"""Retry decision and execution engine.

This package provides the building blocks assembled by
``afailsafe.RetryPolicy``:

Public API:
    - RetryDecision: Outcome of a retry predicate
    - PartialRetryPredicate and its implementations: Single retry rules
    - DefaultRetryPredicate: Ordered chain of partial predicates
    - TimeoutRetryPredicate: Deadline enforcement around a predicate
    - call / acall: Synchronous and asyncio retry loops
    - RetryExecutor: Background retry executor returning futures
"""

from __future__ import annotations

__all__ = [
    "NO_RETRY",
    "CountLimitedPartialRetryPredicate",
    "DefaultRetryPredicate",
    "ExceptionPartialPredicate",
    "NoRetryPredicate",
    "PartialRetryPredicate",
    "PredicateTarget",
    "ResultPartialPredicate",
    "RetryDecision",
    "RetryDecisionType",
    "RetryExecutor",
    "RetryFuture",
    "RetryOnExceptionType",
    "RetryPredicate",
    "TimeoutRetryPredicate",
    "acall",
    "call",
    "get_default_executor",
    "shutdown_default_executor",
]

from afailsafe.retry.decision import RetryDecision, RetryDecisionType
from afailsafe.retry.default import DefaultRetryPredicate
from afailsafe.retry.executor import (
    RetryExecutor,
    RetryFuture,
    get_default_executor,
    shutdown_default_executor,
)
from afailsafe.retry.executor_async import acall
from afailsafe.retry.loop import call
from afailsafe.retry.predicate import (
    NO_RETRY,
    CountLimitedPartialRetryPredicate,
    ExceptionPartialPredicate,
    NoRetryPredicate,
    PartialRetryPredicate,
    PredicateTarget,
    ResultPartialPredicate,
    RetryOnExceptionType,
    RetryPredicate,
)
from afailsafe.retry.timeout import TimeoutRetryPredicate
