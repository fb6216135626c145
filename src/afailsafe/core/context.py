r"""Ambient execution deadline.

A deadline set with ``deadline_scope`` applies to every retry policy
invoked inside the scope that uses the default deadline supplier. The
deadline is stored in a context variable, so it follows the current
thread or asyncio task, and is carried over to the worker threads of a
``RetryExecutor``.

Example:
    ```pycon
    >>> from afailsafe.core.context import deadline_scope, get_context_deadline_ns
    >>> get_context_deadline_ns() is None
    True
    >>> with deadline_scope(5.0):
    ...     get_context_deadline_ns() is not None
    ...
    True

    ```
"""

from __future__ import annotations

__all__ = [
    "deadline_scope",
    "get_context_deadline_ns",
    "set_context_deadline_ns",
    "time_remaining",
]

import contextvars
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

# Absolute time.monotonic_ns() deadline, None means no deadline
_deadline_ns: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "afailsafe_deadline_ns", default=None
)


def get_context_deadline_ns() -> int | None:
    """Get the deadline of the current context.

    Returns:
        The absolute ``time.monotonic_ns()`` deadline, or None if no
        deadline is set.
    """
    return _deadline_ns.get()


def set_context_deadline_ns(deadline_ns: int | None) -> contextvars.Token[int | None]:
    """Set the deadline of the current context.

    Args:
        deadline_ns: Absolute ``time.monotonic_ns()`` deadline, or None to
            remove the deadline.

    Returns:
        A token that can be passed to ``ContextVar.reset``.
    """
    return _deadline_ns.set(deadline_ns)


def time_remaining() -> float | None:
    """Get the number of seconds left until the context deadline.

    Returns:
        The remaining time in seconds (negative if the deadline has
        passed), or None if no deadline is set.
    """
    deadline_ns = _deadline_ns.get()
    if deadline_ns is None:
        return None
    return (deadline_ns - time.monotonic_ns()) / 1e9


@contextmanager
def deadline_scope(timeout: float | timedelta) -> Generator[int, None, None]:
    """Run a block of code with a deadline.

    A nested scope can only shorten the deadline of its parent, never
    extend it.

    Args:
        timeout: Time budget for the block, in seconds or as a timedelta.

    Yields:
        The absolute ``time.monotonic_ns()`` deadline of the scope.

    Raises:
        ValueError: If timeout is negative.
    """
    if isinstance(timeout, timedelta):
        timeout = timeout.total_seconds()
    if timeout < 0:
        msg = f"timeout must be >= 0, got {timeout}"
        raise ValueError(msg)
    deadline_ns = time.monotonic_ns() + int(timeout * 1e9)
    parent = _deadline_ns.get()
    if parent is not None:
        deadline_ns = min(deadline_ns, parent)
    token = _deadline_ns.set(deadline_ns)
    try:
        yield deadline_ns
    finally:
        _deadline_ns.reset(token)
