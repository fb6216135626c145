r"""Process-wide defaults for retry policies.

The defaults can be overridden with environment variables. They are read
once, the first time ``get_defaults`` is called, and cached for the
lifetime of the process.

Environment variables:
    - AFAILSAFE_DEFAULT_MAX_EXCEPTION_CHAIN: maximum number of exception
      chain links that are inspected or recorded (default: 10)
    - AFAILSAFE_DEFAULT_INITIAL_NODELAY_RETRIES: number of retries
      executed without delay (default: 3)
    - AFAILSAFE_DEFAULT_INITIAL_RETRY_DELAY_NS: first non-zero retry
      delay in nanoseconds (default: 1000)
    - AFAILSAFE_DEFAULT_MAX_RETRY_DELAY_MS: maximum retry delay in
      milliseconds (default: 5000)
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_INITIAL_DELAY_NS",
    "DEFAULT_INITIAL_NODELAY_RETRIES",
    "DEFAULT_JITTER_FACTOR",
    "DEFAULT_MAX_DELAY_NS",
    "DEFAULT_MAX_EXCEPTION_CHAIN",
    "FailsafeDefaults",
    "get_defaults",
]

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

# Maximum number of links followed in an exception cause chain
DEFAULT_MAX_EXCEPTION_CHAIN = 10

# Number of retries executed immediately, before any backoff applies
DEFAULT_INITIAL_NODELAY_RETRIES = 3

# First backoff delay after the no-delay retries (1 microsecond)
DEFAULT_INITIAL_DELAY_NS = 1_000

# Backoff delays never grow past this value (5 seconds)
DEFAULT_MAX_DELAY_NS = 5_000_000_000

# Delays are randomized within +/- 20% of the computed value
DEFAULT_JITTER_FACTOR = 0.2

_NS_PER_MS = 1_000_000


@dataclass(frozen=True)
class FailsafeDefaults:
    """Process-wide default values used by ``RetryPolicy.Builder``.

    Attributes:
        max_exception_chain: Maximum number of exception chain links.
        initial_nodelay_retries: Number of retries without delay.
        initial_delay_ns: First backoff delay in nanoseconds.
        max_delay_ns: Maximum backoff delay in nanoseconds.

    Example:
        ```pycon
        >>> from afailsafe.core.config import FailsafeDefaults
        >>> defaults = FailsafeDefaults.from_env({})
        >>> defaults.max_exception_chain
        10
        >>> FailsafeDefaults.from_env(
        ...     {"AFAILSAFE_DEFAULT_MAX_RETRY_DELAY_MS": "100"}
        ... ).max_delay_ns
        100000000

        ```
    """

    max_exception_chain: int = DEFAULT_MAX_EXCEPTION_CHAIN
    initial_nodelay_retries: int = DEFAULT_INITIAL_NODELAY_RETRIES
    initial_delay_ns: int = DEFAULT_INITIAL_DELAY_NS
    max_delay_ns: int = DEFAULT_MAX_DELAY_NS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FailsafeDefaults:
        """Build the defaults from environment variables.

        Args:
            environ: The mapping to read from. Defaults to ``os.environ``.

        Returns:
            The defaults, with unset variables falling back to the
            factory values.

        Raises:
            ValueError: If a variable is not a non-negative integer.
        """
        if environ is None:
            environ = os.environ
        max_delay_ms = _read_int(
            environ, "AFAILSAFE_DEFAULT_MAX_RETRY_DELAY_MS", DEFAULT_MAX_DELAY_NS // _NS_PER_MS
        )
        return cls(
            max_exception_chain=_read_int(
                environ, "AFAILSAFE_DEFAULT_MAX_EXCEPTION_CHAIN", DEFAULT_MAX_EXCEPTION_CHAIN
            ),
            initial_nodelay_retries=_read_int(
                environ,
                "AFAILSAFE_DEFAULT_INITIAL_NODELAY_RETRIES",
                DEFAULT_INITIAL_NODELAY_RETRIES,
            ),
            initial_delay_ns=_read_int(
                environ, "AFAILSAFE_DEFAULT_INITIAL_RETRY_DELAY_NS", DEFAULT_INITIAL_DELAY_NS
            ),
            max_delay_ns=max_delay_ms * _NS_PER_MS,
        )


def _read_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ValueError(msg) from None
    if value < 0:
        msg = f"{name} must be >= 0, got {value}"
        raise ValueError(msg)
    logger.debug(f"Using {name}={value} from the environment")
    return value


@lru_cache(maxsize=1)
def get_defaults() -> FailsafeDefaults:
    """Return the process-wide defaults, reading the environment on
    first use.

    Call ``get_defaults.cache_clear()`` to force the environment to be
    read again (useful in tests).

    Returns:
        The cached process-wide defaults.
    """
    return FailsafeDefaults.from_env()
