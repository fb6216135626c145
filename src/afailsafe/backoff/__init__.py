r"""Retry delay suppliers.

This package provides the stateful delay suppliers used to compute the
wait between retry attempts: Fibonacci growth, a jitter transform and a
type based dispatcher.
"""

from __future__ import annotations

__all__ = [
    "BaseRetryDelaySupplier",
    "FibonacciRetryDelaySupplier",
    "JitteredDelaySupplier",
    "TypeBasedRetryDelaySupplier",
]

from afailsafe.backoff.base import BaseRetryDelaySupplier
from afailsafe.backoff.fibonacci import FibonacciRetryDelaySupplier
from afailsafe.backoff.jitter import JitteredDelaySupplier
from afailsafe.backoff.typed import TypeBasedRetryDelaySupplier
