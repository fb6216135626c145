r"""Structured logging for retry events.

Every retry policy invocation gets a call id, stored in a context
variable, so all the log records of one invocation (including those
emitted from executor worker threads) can be correlated. The JSON
``StructuredFormatter`` adds it to each record.

Example:
    Enable structured logging for afailsafe:

    ```python
    import logging
    from afailsafe.utils.structured_logging import StructuredFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    logger = logging.getLogger("afailsafe")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    ```
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "call_scope",
    "clear_call_id",
    "get_call_id",
    "log_structured",
    "set_call_id",
]

import contextvars
import itertools
import json
import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Generator

_call_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "afailsafe_call_id", default=None
)
_call_counter = itertools.count(1)

# LogRecord attributes that are not user supplied extra fields
_RESERVED_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


def get_call_id() -> str | None:
    """Get the id of the retry policy invocation in progress.

    Returns:
        The call id, or None outside of a policy invocation.
    """
    return _call_id.get()


def set_call_id(call_id: str) -> contextvars.Token[str | None]:
    """Set the call id for the current context.

    Args:
        call_id: The call id.

    Returns:
        A token that can be passed to ``ContextVar.reset``.
    """
    return _call_id.set(call_id)


def clear_call_id() -> None:
    """Clear the call id of the current context."""
    _call_id.set(None)


@contextmanager
def call_scope() -> Generator[str, None, None]:
    """Assign a new call id for the duration of the block.

    Yields:
        The new call id.

    Example:
        ```pycon
        >>> from afailsafe.utils.structured_logging import call_scope, get_call_id
        >>> with call_scope() as call_id:
        ...     get_call_id() == call_id
        ...
        True
        >>> get_call_id() is None
        True

        ```
    """
    call_id = f"call-{next(_call_counter)}"
    token = _call_id.set(call_id)
    try:
        yield call_id
    finally:
        _call_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Standard fields in the JSON output:
        - timestamp: ISO 8601 timestamp
        - level: Log level name
        - logger: Logger name
        - message: Log message
        - call_id: Id of the retry policy invocation, if any
        - module, function, line: Origin of the record
        - thread: Thread name

    Fields passed with the ``extra`` parameter of logging calls are
    included as well.

    Example:
        ```pycon
        >>> import json
        >>> import logging
        >>> from io import StringIO
        >>> from afailsafe.utils.structured_logging import StructuredFormatter
        >>> stream = StringIO()
        >>> handler = logging.StreamHandler(stream)
        >>> handler.setFormatter(StructuredFormatter())
        >>> logger = logging.getLogger("afailsafe.doctest")
        >>> logger.addHandler(handler)
        >>> logger.setLevel(logging.INFO)
        >>> logger.info("retrying", extra={"attempt": 2})
        >>> json.loads(stream.getvalue())["attempt"]
        2

        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }
        call_id = get_call_id()
        if call_id is not None:
            log_data["call_id"] = call_id
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value
        return json.dumps(log_data, default=repr)

    def formatTime(
        self,
        record: logging.LogRecord,
        datefmt: str | None = None,  # noqa: ARG002
    ) -> str:
        """Format the record time as ISO 8601 with millisecond
        precision."""
        return (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z"
        )


def log_structured(logger: logging.Logger, level: int, message: str, **extra: Any) -> None:
    """Log a message with structured fields.

    Args:
        logger: Logger to use.
        level: Log level (e.g., logging.DEBUG).
        message: Log message.
        **extra: Structured fields to attach to the record.
    """
    if logger.isEnabledFor(level):
        logger.log(level, message, extra=extra)
