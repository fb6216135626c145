r"""Utility functions shared by the retry engine.

This package provides exception chain helpers, Retry-After header
parsing and structured logging.
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "add_previous_failure",
    "iter_exception_chain",
    "log_structured",
    "parse_retry_after",
]

from afailsafe.utils.exceptions import add_previous_failure, iter_exception_chain
from afailsafe.utils.retry_after import parse_retry_after
from afailsafe.utils.structured_logging import StructuredFormatter, log_structured
