r"""afailsafe - Retry and failsafe execution engine.

This package runs a unit of work and decides, attempt after attempt,
whether to retry it, how long to wait and when to give up, within an
optional deadline.

Key Features:
    - Composable retry rules on exceptions and on returned values
    - Per-rule retry limits and cause-chain matching
    - Fibonacci backoff with immediate first retries and jitter
    - Deadline enforcement from an ambient, context-local deadline
    - Blocking, thread pool and asyncio execution modes
    - Failures that are not retried reach the caller unchanged

Example:
    ```pycon
    >>> from afailsafe import RetryPolicy
    >>> policy = (
    ...     RetryPolicy.new_builder()
    ...     .retry_predicate_builder()
    ...     .with_retry_on_exception(TimeoutError, max_retries=5)
    ...     .finish_predicate()
    ...     .build()
    ... )
    >>> policy.call(lambda: "done")
    'done'

    ```
"""

from __future__ import annotations

__all__ = [
    "FailsafeError",
    "RetryDecision",
    "RetryExecutor",
    "RetryPolicy",
    "RetryPolicyBuilder",
    "RetryPredicateBuilder",
    "RetryTimeoutError",
    "__version__",
    "deadline_scope",
]

from importlib.metadata import PackageNotFoundError, version

from afailsafe.core.context import deadline_scope
from afailsafe.exceptions import FailsafeError, RetryTimeoutError
from afailsafe.policy import RetryPolicy, RetryPolicyBuilder, RetryPredicateBuilder
from afailsafe.retry import RetryDecision, RetryExecutor

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    # Package is not installed, fallback if needed
    __version__ = "0.0.0"
