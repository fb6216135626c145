r"""Retry policies and their builders.

A ``RetryPolicy`` is an immutable bundle of a predicate factory, an
executor supplier and an exception chain limit. It is built once and can
be shared by any number of threads: every invocation creates its own
predicate, counters and backoff state.

Example:
    ```pycon
    >>> from afailsafe import RetryPolicy
    >>> policy = (
    ...     RetryPolicy.new_builder()
    ...     .retry_predicate_builder()
    ...     .with_retry_on_exception(ConnectionError, max_retries=3)
    ...     .with_initial_delay(0.01)
    ...     .with_max_delay(1.0)
    ...     .finish_predicate()
    ...     .build()
    ... )
    >>> attempts = []
    >>> def flaky():
    ...     attempts.append(1)
    ...     if len(attempts) < 3:
    ...         raise ConnectionError("reset")
    ...     return "ok"
    ...
    >>> policy.call(flaky)
    'ok'
    >>> len(attempts)
    3

    ```
"""

from __future__ import annotations

__all__ = ["RetryPolicy", "RetryPolicyBuilder", "RetryPredicateBuilder"]

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, TypeVar

from afailsafe.backoff import (
    FibonacciRetryDelaySupplier,
    JitteredDelaySupplier,
    TypeBasedRetryDelaySupplier,
)
from afailsafe.core.config import DEFAULT_JITTER_FACTOR, get_defaults
from afailsafe.core.context import get_context_deadline_ns
from afailsafe.core.validation import (
    validate_delay_ns,
    validate_jitter_factor,
    validate_max_exception_chain,
    validate_max_retries,
)
from afailsafe.retry.default import DefaultRetryPredicate
from afailsafe.retry.executor import get_default_executor
from afailsafe.retry.executor_async import acall
from afailsafe.retry.loop import call
from afailsafe.retry.predicate import (
    NO_RETRY,
    CountLimitedPartialRetryPredicate,
    ExceptionPartialPredicate,
    PartialRetryPredicate,
    PredicateTarget,
    ResultPartialPredicate,
    RetryOnExceptionType,
)
from afailsafe.retry.timeout import TimeoutRetryPredicate
from afailsafe.utils.structured_logging import call_scope

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from afailsafe.retry.decision import RetryDecision
    from afailsafe.retry.executor import RetryExecutor, RetryFuture
    from afailsafe.retry.predicate import RetryPredicate

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")

ExceptionTypes = type[BaseException] | tuple[type[BaseException], ...]


class RetryPolicy:
    """Immutable retry configuration.

    Use ``RetryPolicy.new_builder()`` to create one.

    Args:
        predicate_factory: Creates the predicate of one invocation.
        executor_supplier: Returns the executor used by ``submit``.
        max_exception_chain: Maximum number of exception chain links
            inspected by predicates and recorded on raised exceptions.
    """

    __slots__ = ("_executor_supplier", "_max_exception_chain", "_predicate_factory")

    def __init__(
        self,
        predicate_factory: Callable[[], RetryPredicate],
        executor_supplier: Callable[[], RetryExecutor],
        max_exception_chain: int,
    ) -> None:
        validate_max_exception_chain(max_exception_chain)
        self._predicate_factory = predicate_factory
        self._executor_supplier = executor_supplier
        self._max_exception_chain = max_exception_chain

    @property
    def max_exception_chain(self) -> int:
        """Maximum number of exception chain links."""
        return self._max_exception_chain

    @staticmethod
    def new_builder() -> RetryPolicyBuilder:
        """Create a builder with the process-wide defaults."""
        return RetryPolicyBuilder()

    def get_retry_predicate(self) -> RetryPredicate:
        """Create the predicate for a new invocation.

        Returns:
            A deadline aware predicate with its own per-call state.
        """
        return self._predicate_factory()

    def call(self, fn: Callable[[], T], exception_type: ExceptionTypes = Exception) -> T:
        """Call ``fn`` on the current thread, retrying per this policy.

        The failures of earlier attempts are added as notes to the raised
        exception. Notes accumulate, up to ``max_exception_chain``, on an
        exception instance that ``fn`` re-raises across calls.

        Args:
            fn: The unit of work. It may run several times.
            exception_type: Exceptions considered by the retry rules.
                Other exceptions propagate from ``fn`` immediately.

        Returns:
            The result of ``fn``.

        Raises:
            BaseException: The last exception raised by ``fn``, unchanged.
            RetryTimeoutError: If the deadline does not leave room for
                another attempt.
        """
        with call_scope():
            return call(fn, self.get_retry_predicate(), exception_type, self._max_exception_chain)

    async def acall(
        self, fn: Callable[[], Awaitable[T]], exception_type: ExceptionTypes = Exception
    ) -> T:
        """Await ``fn``, retrying per this policy.

        Args:
            fn: A zero-argument coroutine function.
            exception_type: Exceptions considered by the retry rules.

        Returns:
            The result of ``fn``.

        Raises:
            BaseException: The last exception raised by ``fn``, unchanged.
            RetryTimeoutError: If the deadline does not leave room for
                another attempt.
        """
        with call_scope():
            return await acall(
                fn, self.get_retry_predicate(), exception_type, self._max_exception_chain
            )

    def submit(
        self, fn: Callable[[], T], exception_type: ExceptionTypes = Exception
    ) -> RetryFuture:
        """Run ``fn`` in the background, retrying per this policy.

        Args:
            fn: The unit of work.
            exception_type: Exceptions considered by the retry rules.

        Returns:
            A cancellable future of the result.
        """
        return self._executor_supplier().submit(fn, self, exception_type)

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(max_exception_chain={self._max_exception_chain})"


def _context_deadline(fn: Callable[[], Any]) -> int | None:  # noqa: ARG001
    return get_context_deadline_ns()


class RetryPolicyBuilder:
    """Fluent builder of ``RetryPolicy``.

    Without a retry predicate the built policy never retries, but it
    still enforces the deadline.
    """

    def __init__(self) -> None:
        self._max_exception_chain = get_defaults().max_exception_chain
        self._executor_supplier: Callable[[], RetryExecutor] = get_default_executor
        self._deadline_supplier: Callable[[Callable[[], Any]], int | None] = _context_deadline
        self._predicate_factory: Callable[[int], RetryPredicate] | None = None

    def with_max_exception_chain(self, max_exception_chain: int) -> RetryPolicyBuilder:
        """Set the maximum number of exception chain links.

        Raises:
            ValueError: If max_exception_chain is not positive.
        """
        validate_max_exception_chain(max_exception_chain)
        self._max_exception_chain = max_exception_chain
        return self

    def with_executor(self, executor: RetryExecutor) -> RetryPolicyBuilder:
        """Use ``executor`` instead of the default executor for
        ``submit``."""
        self._executor_supplier = lambda: executor
        return self

    def with_deadline_supplier(
        self, deadline_supplier: Callable[[Callable[[], Any]], int | None]
    ) -> RetryPolicyBuilder:
        """Set the deadline supplier.

        Args:
            deadline_supplier: Receives the callable about to be judged and
                returns an absolute ``time.monotonic_ns()`` deadline, or
                None for no deadline. It is called for every decision. The
                default returns the ambient deadline set with
                ``afailsafe.core.context.deadline_scope``.
        """
        self._deadline_supplier = deadline_supplier
        return self

    def retry_predicate_builder(self) -> RetryPredicateBuilder:
        """Start configuring the retry rules and backoff.

        Call ``finish_predicate`` on the returned builder to come back to
        this one.
        """
        return RetryPredicateBuilder(self)

    def build(self) -> RetryPolicy:
        """Build the policy."""
        factory = self._predicate_factory
        deadline_supplier = self._deadline_supplier
        max_exception_chain = self._max_exception_chain

        def new_predicate() -> RetryPredicate:
            predicate = factory(max_exception_chain) if factory is not None else NO_RETRY
            return TimeoutRetryPredicate(predicate, deadline_supplier)

        return RetryPolicy(new_predicate, self._executor_supplier, max_exception_chain)

    def _set_predicate_factory(self, factory: Callable[[int], RetryPredicate]) -> None:
        self._predicate_factory = factory


def _to_ns(delay: float | timedelta, name: str) -> int:
    if isinstance(delay, timedelta):
        delay = delay.total_seconds()
    delay_ns = int(delay * 1e9)
    validate_delay_ns(delay_ns, name=name)
    return delay_ns


def _as_partial(
    predicate: PartialRetryPredicate | Callable[[Any, Callable[[], Any]], RetryDecision | None],
    target: PredicateTarget,
) -> PartialRetryPredicate:
    if isinstance(predicate, PartialRetryPredicate):
        if predicate.target is not target:
            msg = f"{predicate!r} is a {predicate.target.value} predicate, expected {target.value}"
            raise TypeError(msg)
        return predicate
    if target is PredicateTarget.EXCEPTION:
        return ExceptionPartialPredicate(predicate)
    return ResultPartialPredicate(predicate)


class RetryPredicateBuilder:
    """Fluent builder of the retry rules and backoff of a policy.

    Rules are evaluated in the order they are added. Backoff defaults
    come from ``afailsafe.core.config.get_defaults``.
    """

    def __init__(self, parent: RetryPolicyBuilder) -> None:
        defaults = get_defaults()
        self._parent = parent
        self._suppliers: list[Callable[[], PartialRetryPredicate]] = []
        self._nr_initial_retries = defaults.initial_nodelay_retries
        self._start_delay_ns = defaults.initial_delay_ns
        self._max_delay_ns = defaults.max_delay_ns
        self._jitter_factor = DEFAULT_JITTER_FACTOR

    def with_retry_on_exception(
        self, exc_type: ExceptionTypes, max_retries: int | None = None
    ) -> RetryPredicateBuilder:
        """Retry with the default backoff on exceptions of ``exc_type``.

        Args:
            exc_type: An exception class or a tuple of classes.
            max_retries: Optional limit on the retries granted by this rule
                per call.
        """
        return self._add(lambda: RetryOnExceptionType(exc_type), max_retries)

    def with_exception_partial_predicate(
        self,
        predicate: Callable[[BaseException, Callable[[], Any]], RetryDecision | None],
        max_retries: int | None = None,
    ) -> RetryPredicateBuilder:
        """Add a stateless exception rule.

        Args:
            predicate: Function ``(exc, fn) -> RetryDecision | None``.
            max_retries: Optional limit on the decisions of this rule per
                call.
        """
        rule = _as_partial(predicate, PredicateTarget.EXCEPTION)
        return self._add(lambda: rule, max_retries)

    def with_exception_stateful_partial_predicate(
        self, supplier: Callable[[], Callable[[BaseException, Callable[[], Any]], Any]]
    ) -> RetryPredicateBuilder:
        """Add an exception rule created anew for every call.

        Args:
            supplier: Returns a fresh rule for each call.
        """
        return self._add(lambda: _as_partial(supplier(), PredicateTarget.EXCEPTION), None)

    def with_result_partial_predicate(
        self,
        predicate: Callable[[Any, Callable[[], Any]], RetryDecision | None],
        max_retries: int | None = None,
    ) -> RetryPredicateBuilder:
        """Add a stateless result rule.

        Args:
            predicate: Function ``(result, fn) -> RetryDecision | None``.
            max_retries: Optional limit on the decisions of this rule per
                call.
        """
        rule = _as_partial(predicate, PredicateTarget.RESULT)
        return self._add(lambda: rule, max_retries)

    def with_result_stateful_partial_predicate(
        self, supplier: Callable[[], Callable[[Any, Callable[[], Any]], Any]]
    ) -> RetryPredicateBuilder:
        """Add a result rule created anew for every call.

        Args:
            supplier: Returns a fresh rule for each call.
        """
        return self._add(lambda: _as_partial(supplier(), PredicateTarget.RESULT), None)

    def with_jitter_factor(self, jitter_factor: float) -> RetryPredicateBuilder:
        """Set the jitter factor of the default backoff.

        Raises:
            ValueError: If jitter_factor is outside ``[0, 1]``.
        """
        validate_jitter_factor(jitter_factor)
        self._jitter_factor = jitter_factor
        return self

    def with_initial_retries(self, retries: int) -> RetryPredicateBuilder:
        """Set the number of retries executed without delay.

        Raises:
            ValueError: If retries is negative.
        """
        validate_max_retries(retries, name="retries")
        self._nr_initial_retries = retries
        return self

    def with_initial_delay(self, delay: float | timedelta) -> RetryPredicateBuilder:
        """Set the first non-zero delay, in seconds or as a timedelta.

        Raises:
            ValueError: If delay is negative.
        """
        self._start_delay_ns = _to_ns(delay, "initial delay")
        return self

    def with_max_delay(self, delay: float | timedelta) -> RetryPredicateBuilder:
        """Set the maximum delay, in seconds or as a timedelta.

        Raises:
            ValueError: If delay is negative.
        """
        self._max_delay_ns = _to_ns(delay, "max delay")
        return self

    def finish_predicate(self) -> RetryPolicyBuilder:
        """Install the configured predicate on the policy builder.

        Later changes to this builder do not affect the installed
        predicate.

        Returns:
            The policy builder.
        """
        suppliers = tuple(self._suppliers)
        nr_initial_retries = self._nr_initial_retries
        start_delay_ns = self._start_delay_ns
        max_delay_ns = self._max_delay_ns
        jitter_factor = self._jitter_factor

        def new_backoff(_: type) -> JitteredDelaySupplier:
            return JitteredDelaySupplier(
                FibonacciRetryDelaySupplier(nr_initial_retries, start_delay_ns, max_delay_ns),
                jitter_factor,
            )

        def factory(max_exception_chain: int) -> RetryPredicate:
            return DefaultRetryPredicate(
                TypeBasedRetryDelaySupplier(new_backoff),
                [supplier() for supplier in suppliers],
                max_exception_chain,
            )

        logger.debug(
            f"Retry predicate with {len(suppliers)} rule(s), {nr_initial_retries} immediate "
            f"retries, delays {start_delay_ns}ns..{max_delay_ns}ns, jitter {jitter_factor}"
        )
        self._parent._set_predicate_factory(factory)
        return self._parent

    def _add(
        self, supplier: Callable[[], PartialRetryPredicate], max_retries: int | None
    ) -> RetryPredicateBuilder:
        if max_retries is None:
            self._suppliers.append(supplier)
            return self
        validate_max_retries(max_retries)
        self._suppliers.append(lambda: CountLimitedPartialRetryPredicate(max_retries, supplier()))
        return self


RetryPolicy.Builder = RetryPolicyBuilder
RetryPolicyBuilder.PredicateBuilder = RetryPredicateBuilder
