r"""Type based dispatch between retry delay suppliers."""

from __future__ import annotations

__all__ = ["TypeBasedRetryDelaySupplier"]

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from afailsafe.backoff.base import BaseRetryDelaySupplier


class TypeBasedRetryDelaySupplier:
    """Keep one delay supplier per failure or result type.

    Suppliers are created lazily by ``factory`` the first time a type is
    seen and reused for every later retry of the same type, so each kind
    of failure backs off along its own sequence.

    Args:
        factory: Creates a new supplier for the given type.

    Example:
        ```pycon
        >>> from afailsafe.backoff import FibonacciRetryDelaySupplier, TypeBasedRetryDelaySupplier
        >>> suppliers = TypeBasedRetryDelaySupplier(
        ...     lambda _: FibonacciRetryDelaySupplier(0, 10, 100)
        ... )
        >>> suppliers.next_delay(OSError())
        10
        >>> suppliers.next_delay(OSError())
        10
        >>> suppliers.next_delay(OSError())
        20
        >>> suppliers.next_delay(KeyError())
        10

        ```
    """

    def __init__(self, factory: Callable[[type], BaseRetryDelaySupplier]) -> None:
        self._factory = factory
        self._suppliers: dict[type, BaseRetryDelaySupplier] = {}

    def get(self, value: Any) -> BaseRetryDelaySupplier:
        """Get the supplier associated with the type of ``value``.

        Args:
            value: The failure or result being retried.

        Returns:
            The cached supplier, created on first use.
        """
        key = type(value)
        supplier = self._suppliers.get(key)
        if supplier is None:
            supplier = self._factory(key)
            self._suppliers[key] = supplier
        return supplier

    def next_delay(self, value: Any) -> int:
        """Get the next delay for the type of ``value``.

        Args:
            value: The failure or result being retried.

        Returns:
            The delay in nanoseconds.
        """
        return self.get(value).next_delay()
