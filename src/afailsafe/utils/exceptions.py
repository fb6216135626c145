r"""Exception chain utilities.

This module provides bounded traversal of exception cause chains and the
bookkeeping that records the failures of earlier attempts on the
exception finally raised to the caller.
"""

from __future__ import annotations

__all__ = ["add_previous_failure", "iter_exception_chain"]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREVIOUS_FAILURE_PREFIX = "Previous attempt failed with "


def iter_exception_chain(exc: BaseException, max_links: int) -> Iterator[BaseException]:
    """Iterate over an exception and its causes.

    The explicit cause (``__cause__``) is followed first, then the
    implicit context (``__context__``) unless it was suppressed with
    ``raise ... from None``. Iteration stops after ``max_links``
    exceptions or when an exception repeats, so self-referential chains
    terminate.

    Args:
        exc: The exception to start from.
        max_links: Maximum number of exceptions to yield.

    Yields:
        ``exc`` followed by its causes.

    Example:
        ```pycon
        >>> from afailsafe.utils.exceptions import iter_exception_chain
        >>> try:
        ...     try:
        ...         raise OSError("disk")
        ...     except OSError as err:
        ...         raise RuntimeError("load") from err
        ... except RuntimeError as err:
        ...     chain = [type(e).__name__ for e in iter_exception_chain(err, 10)]
        ...
        >>> chain
        ['RuntimeError', 'OSError']

        ```
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and len(seen) < max_links and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def add_previous_failure(exc: BaseException, previous: BaseException, max_notes: int) -> None:
    """Record the failure of an earlier attempt on ``exc``.

    The record is added as an exception note, so ``exc`` keeps its type
    and identity. At most ``max_notes`` records are kept per exception.
    The notes stay on the exception object, so an instance shared between
    calls keeps the records of every call until the limit is reached.

    Args:
        exc: The exception of the latest attempt.
        previous: The exception of an earlier attempt.
        max_notes: Maximum number of records kept on ``exc``.
    """
    if exc is previous:
        return
    notes = getattr(exc, "__notes__", ())
    recorded = sum(1 for note in notes if note.startswith(_PREVIOUS_FAILURE_PREFIX))
    if recorded >= max_notes:
        return
    exc.add_note(f"{_PREVIOUS_FAILURE_PREFIX}{type(previous).__qualname__}: {previous}")
