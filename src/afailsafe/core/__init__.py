r"""Core shared configuration, validation and execution context.

This package contains the process-wide defaults, the parameter
validation helpers and the ambient deadline used by retry policies.
"""

from __future__ import annotations

__all__ = [
    "FailsafeDefaults",
    "deadline_scope",
    "get_context_deadline_ns",
    "get_defaults",
    "time_remaining",
    "validate_delay_ns",
    "validate_jitter_factor",
    "validate_max_exception_chain",
    "validate_max_retries",
]

from afailsafe.core.config import FailsafeDefaults, get_defaults
from afailsafe.core.context import deadline_scope, get_context_deadline_ns, time_remaining
from afailsafe.core.validation import (
    validate_delay_ns,
    validate_jitter_factor,
    validate_max_exception_chain,
    validate_max_retries,
)
