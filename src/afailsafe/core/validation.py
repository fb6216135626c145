r"""Parameter validation utilities for retry policies and delay
suppliers.

The functions raise ``ValueError`` so that invalid configuration fails at
build time rather than when a call is retried.
"""

from __future__ import annotations

__all__ = [
    "validate_delay_ns",
    "validate_jitter_factor",
    "validate_max_exception_chain",
    "validate_max_retries",
]


def validate_jitter_factor(jitter_factor: float) -> None:
    """Validate a jitter factor.

    Args:
        jitter_factor: Fraction of the delay used as the randomization
            range. Must be within ``[0, 1]``.

    Raises:
        ValueError: If jitter_factor is outside ``[0, 1]``.

    Example:
        ```pycon
        >>> from afailsafe.core.validation import validate_jitter_factor
        >>> validate_jitter_factor(0.2)
        >>> validate_jitter_factor(1.5)
        Traceback (most recent call last):
        ...
        ValueError: Invalid jitter factor 1.5, must be within [0, 1]

        ```
    """
    if not 0.0 <= jitter_factor <= 1.0:
        msg = f"Invalid jitter factor {jitter_factor}, must be within [0, 1]"
        raise ValueError(msg)


def validate_max_retries(max_retries: int, name: str = "max_retries") -> None:
    """Validate a retry count.

    Args:
        max_retries: The number of retries. Must be >= 0.
        name: Parameter name used in the error message.

    Raises:
        ValueError: If max_retries is negative.
    """
    if max_retries < 0:
        msg = f"{name} must be >= 0, got {max_retries}"
        raise ValueError(msg)


def validate_delay_ns(delay_ns: int, name: str = "delay_ns") -> None:
    """Validate a delay expressed in nanoseconds.

    Args:
        delay_ns: The delay. Must be >= 0.
        name: Parameter name used in the error message.

    Raises:
        ValueError: If delay_ns is negative.
    """
    if delay_ns < 0:
        msg = f"{name} must be >= 0, got {delay_ns}"
        raise ValueError(msg)


def validate_max_exception_chain(max_exception_chain: int) -> None:
    """Validate the exception chain length limit.

    Args:
        max_exception_chain: Maximum number of chain links. Must be > 0.

    Raises:
        ValueError: If max_exception_chain is not positive.
    """
    if max_exception_chain <= 0:
        msg = f"max_exception_chain must be > 0, got {max_exception_chain}"
        raise ValueError(msg)
