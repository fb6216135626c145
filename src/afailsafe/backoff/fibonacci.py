r"""Fibonacci retry delay supplier."""

from __future__ import annotations

__all__ = ["FibonacciRetryDelaySupplier"]

from afailsafe.backoff.base import BaseRetryDelaySupplier
from afailsafe.core.validation import validate_delay_ns, validate_max_retries


class FibonacciRetryDelaySupplier(BaseRetryDelaySupplier):
    """Fibonacci backoff with an initial run of immediate retries.

    The first ``nr_initial_retries`` delays are zero. After that the
    delays follow ``start, start, 2*start, 3*start, 5*start, ...``, each
    capped at ``max_delay_ns``.

    Args:
        nr_initial_retries: Number of retries executed without delay.
        start_delay_ns: First non-zero delay in nanoseconds.
        max_delay_ns: Maximum delay in nanoseconds.

    Raises:
        ValueError: If any argument is negative.

    Example:
        ```pycon
        >>> from afailsafe.backoff import FibonacciRetryDelaySupplier
        >>> supplier = FibonacciRetryDelaySupplier(2, 10, 50)
        >>> [supplier.next_delay() for _ in range(8)]
        [0, 0, 10, 10, 20, 30, 50, 50]

        ```
    """

    def __init__(self, nr_initial_retries: int, start_delay_ns: int, max_delay_ns: int) -> None:
        validate_max_retries(nr_initial_retries, name="nr_initial_retries")
        validate_delay_ns(start_delay_ns, name="start_delay_ns")
        validate_delay_ns(max_delay_ns, name="max_delay_ns")
        self.nr_initial_retries = nr_initial_retries
        self.start_delay_ns = start_delay_ns
        self.max_delay_ns = max_delay_ns
        self._immediate_left = nr_initial_retries
        self._current = min(start_delay_ns, max_delay_ns)
        self._next = self._current

    def next_delay(self) -> int:
        if self._immediate_left > 0:
            self._immediate_left -= 1
            return 0
        delay = self._current
        # Terms are capped so they stop growing once max_delay_ns is reached
        self._current, self._next = self._next, min(self._current + self._next, self.max_delay_ns)
        return delay

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(nr_initial_retries={self.nr_initial_retries}, "
            f"start_delay_ns={self.start_delay_ns}, max_delay_ns={self.max_delay_ns})"
        )
