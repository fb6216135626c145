r"""Abstract base class for retry delay suppliers."""

from __future__ import annotations

__all__ = ["BaseRetryDelaySupplier"]

from abc import ABC, abstractmethod


class BaseRetryDelaySupplier(ABC):
    """Abstract base class for retry delay suppliers.

    A delay supplier produces the wait before each successive retry of a
    single call. Suppliers are stateful: every call to ``next_delay``
    advances the sequence, so an instance must never be shared between
    concurrent invocations of a retry policy.
    """

    @abstractmethod
    def next_delay(self) -> int:
        """Return the delay before the next retry attempt.

        Returns:
            The delay in nanoseconds, always >= 0.
        """
