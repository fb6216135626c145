r"""Retry-After header parsing.

The header (RFC 9110) is either a number of seconds or an HTTP date.
"""

from __future__ import annotations

__all__ = ["parse_retry_after"]

import logging
import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

logger: logging.Logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None, now: datetime | None = None) -> int | None:
    """Parse a Retry-After header into a delay in nanoseconds.

    Args:
        value: The header value, or None if the header is absent.
        now: Reference time for HTTP dates. Defaults to the current UTC
            time.

    Returns:
        The delay in nanoseconds, or None if the header is absent or
        cannot be parsed. Negative values and dates in the past give 0.

    Example:
        ```pycon
        >>> from afailsafe.utils import parse_retry_after
        >>> parse_retry_after("2")
        2000000000
        >>> parse_retry_after("0.5")
        500000000
        >>> parse_retry_after(None) is None
        True
        >>> parse_retry_after("soon") is None
        True

        ```
    """
    if value is None:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is None:
        try:
            retry_at = parsedate_to_datetime(value)
        except (ValueError, TypeError, OverflowError, IndexError):
            logger.debug(f"Failed to parse Retry-After header: {value!r}")
            return None
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        seconds = (retry_at - (now or datetime.now(timezone.utc))).total_seconds()
    if not math.isfinite(seconds):
        logger.debug(f"Ignoring non-finite Retry-After header: {value!r}")
        return None
    return max(0, int(seconds * 1e9))
