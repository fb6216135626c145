r"""Thread pool retry executor.

``RetryExecutor.submit`` runs a call in the background and returns a
``RetryFuture`` right away. Attempts run on a thread pool. The waits
between attempts are entries in a single scheduler thread, so a call that
backs off does not hold a worker thread.

A process-wide executor is created on first use by
``get_default_executor`` and shut down when the interpreter exits, or
explicitly with ``shutdown_default_executor``.
"""

from __future__ import annotations

__all__ = [
    "RetryExecutor",
    "RetryFuture",
    "get_default_executor",
    "shutdown_default_executor",
]

import atexit
import contextvars
import heapq
import itertools
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from afailsafe.core.config import DEFAULT_MAX_EXCEPTION_CHAIN
from afailsafe.retry.executor_core import (
    complete,
    evaluate_attempt,
    evaluate_exception,
    evaluate_result,
    is_interrupt,
    log_retry,
)
from afailsafe.utils.structured_logging import set_call_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from afailsafe.policy import RetryPolicy
    from afailsafe.retry.predicate import RetryPredicate

logger: logging.Logger = logging.getLogger(__name__)

_call_counter = itertools.count(1)


class RetryFuture(Future):
    """Future of a call submitted to a ``RetryExecutor``.

    Cancelling the future stops the call: the next attempt is never
    started and a pending wait is dropped. An attempt that is already
    running cannot be interrupted; it completes but its outcome is
    discarded.
    """

    def __init__(self) -> None:
        super().__init__()
        self._tracking_lock = threading.Lock()
        self._cancel_lock = threading.RLock()
        self._scheduled: _ScheduledTask | None = None
        self._in_flight: Future | None = None

    def cancel(self) -> bool:
        with self._cancel_lock:
            if self.cancelled():
                return True
            if not super().cancel():
                return False
            # Moves the state to CANCELLED_AND_NOTIFIED and wakes up
            # concurrent.futures.wait and as_completed waiters
            self.set_running_or_notify_cancel()
        logger.debug("Retry future cancelled")
        with self._tracking_lock:
            scheduled, in_flight = self._scheduled, self._in_flight
            self._scheduled = self._in_flight = None
        if scheduled is not None:
            scheduled.cancel()
        if in_flight is not None:
            in_flight.cancel()
        return True

    def _track(
        self,
        scheduled: _ScheduledTask | None = None,
        in_flight: Future | None = None,
    ) -> bool:
        """Remember the pending step of the call.

        Returns:
            False if the future was cancelled, in which case the step is
            cancelled too.
        """
        with self._tracking_lock:
            self._scheduled = scheduled
            self._in_flight = in_flight
        if self.cancelled():
            if scheduled is not None:
                scheduled.cancel()
            if in_flight is not None:
                in_flight.cancel()
            return False
        return True


@dataclass(order=True)
class _ScheduledTask:
    when_ns: int
    sequence: int
    action: Callable[[], None] = field(compare=False)
    owner: RetryFuture | None = field(default=None, compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class _DelayScheduler:
    """Run actions after a delay on a single daemon thread."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._queue: list[_ScheduledTask] = []
        self._condition = threading.Condition()
        self._sequence = itertools.count()
        self._thread: threading.Thread | None = None
        self._shutdown = False

    def schedule(
        self, delay_ns: int, action: Callable[[], None], owner: RetryFuture | None = None
    ) -> _ScheduledTask:
        task = _ScheduledTask(
            when_ns=time.monotonic_ns() + delay_ns,
            sequence=next(self._sequence),
            action=action,
            owner=owner,
        )
        with self._condition:
            if self._shutdown:
                msg = "cannot schedule new retries after shutdown"
                raise RuntimeError(msg)
            heapq.heappush(self._queue, task)
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
            self._condition.notify()
        return task

    def shutdown(self, wait: bool = True) -> list[_ScheduledTask]:
        """Stop the scheduler thread.

        Returns:
            The tasks that were still waiting, which will never run.
        """
        with self._condition:
            self._shutdown = True
            pending = [task for task in self._queue if not task.cancelled]
            self._queue.clear()
            self._condition.notify_all()
            thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join()
        return pending

    def _run(self) -> None:
        while True:
            with self._condition:
                while True:
                    if self._shutdown:
                        return
                    if not self._queue:
                        self._condition.wait()
                        continue
                    task = self._queue[0]
                    if task.cancelled:
                        heapq.heappop(self._queue)
                        continue
                    wait_ns = task.when_ns - time.monotonic_ns()
                    if wait_ns <= 0:
                        heapq.heappop(self._queue)
                        break
                    self._condition.wait(wait_ns / 1e9)
            try:
                task.action()
            except Exception:
                logger.exception("Scheduled retry failed to start")


@dataclass
class _CallState:
    future: RetryFuture
    fn: Callable[[], Any]
    predicate: RetryPredicate
    exception_type: type[BaseException] | tuple[type[BaseException], ...]
    max_exception_chain: int
    context: contextvars.Context
    previous_failures: deque[BaseException]
    last_failure: BaseException | None = None
    attempt: int = 0


class RetryExecutor:
    """Run retry policy calls in the background.

    Args:
        max_workers: Maximum number of attempts running at the same time.
            Defaults to the ``ThreadPoolExecutor`` default.
        thread_name_prefix: Prefix of the worker and scheduler thread
            names.

    Example:
        ```pycon
        >>> from afailsafe import RetryPolicy
        >>> from afailsafe.retry import RetryExecutor
        >>> policy = RetryPolicy.new_builder().build()
        >>> with RetryExecutor(max_workers=2) as executor:
        ...     executor.submit(lambda: 42, policy).result()
        ...
        42

        ```
    """

    def __init__(
        self, max_workers: int | None = None, thread_name_prefix: str = "afailsafe-retry"
    ) -> None:
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )
        self._scheduler = _DelayScheduler(f"{thread_name_prefix}-scheduler")
        self._pending: set[RetryFuture] = set()
        self._pending_lock = threading.Lock()

    def submit(
        self,
        fn: Callable[[], Any],
        policy: RetryPolicy,
        exception_type: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    ) -> RetryFuture:
        """Start a call of ``fn`` governed by ``policy``.

        The submitting thread is never blocked. Its ``contextvars``
        context (including the ambient deadline) is captured and every
        attempt runs in a copy of it.

        Args:
            fn: The unit of work.
            policy: The retry policy. A fresh predicate is created for
                this call.
            exception_type: Exceptions handled by the predicate. Other
                exceptions fail the future immediately.

        Returns:
            The future of the call.

        Raises:
            RuntimeError: If the executor was shut down.
        """
        return self.submit_with_predicate(
            fn, policy.get_retry_predicate(), exception_type, policy.max_exception_chain
        )

    def submit_with_predicate(
        self,
        fn: Callable[[], Any],
        predicate: RetryPredicate,
        exception_type: type[BaseException] | tuple[type[BaseException], ...] = Exception,
        max_exception_chain: int = DEFAULT_MAX_EXCEPTION_CHAIN,
    ) -> RetryFuture:
        """Start a call of ``fn`` with an explicit per-call predicate.

        See ``submit``.
        """
        future = RetryFuture()
        context = contextvars.copy_context()
        context.run(set_call_id, f"async-call-{next(_call_counter)}")
        state = _CallState(
            future=future,
            fn=fn,
            predicate=predicate,
            exception_type=exception_type,
            max_exception_chain=max_exception_chain,
            context=context,
            previous_failures=deque(maxlen=max_exception_chain),
        )
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        try:
            self._dispatch(state)
        except RuntimeError:
            future.cancel()
            raise
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        """Shut down the executor.

        Calls waiting for their next attempt are cancelled, since they can
        no longer be scheduled.

        Args:
            wait: Wait for running attempts to finish.
            cancel_futures: Also cancel the calls whose attempt is running
                or queued.
        """
        for task in self._scheduler.shutdown(wait=wait):
            if task.owner is not None:
                task.owner.cancel()
        if cancel_futures:
            with self._pending_lock:
                pending = list(self._pending)
            for future in pending:
                future.cancel()
        self._pool.shutdown(wait=wait, cancel_futures=cancel_futures)

    def __enter__(self) -> RetryExecutor:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.shutdown(wait=True, cancel_futures=exc_val is not None)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _dispatch(self, state: _CallState) -> None:
        if state.future.cancelled():
            return
        in_flight = self._pool.submit(state.context.copy().run, self._attempt, state)
        state.future._track(in_flight=in_flight)

    def _dispatch_later(self, state: _CallState) -> None:
        try:
            self._dispatch(state)
        except RuntimeError as exc:
            _set_exception(state.future, exc)

    def _attempt(self, state: _CallState) -> None:
        future = state.future
        if future.cancelled():
            return
        failure: BaseException | None = None
        result = None
        try:
            if state.attempt > 0:
                start = evaluate_attempt(state.predicate, state.fn, state.last_failure)
                if start is not None:
                    value = complete(
                        start, state.previous_failures, state.max_exception_chain, state.attempt - 1
                    )
                    _set_result(future, value)
                    return
            try:
                result = state.fn()
            except state.exception_type as exc:
                if is_interrupt(exc):
                    raise
                failure = exc
                decision = evaluate_exception(state.predicate, exc, state.fn)
            else:
                decision = evaluate_result(state.predicate, result, state.fn)
            if decision.is_abort:
                value = complete(
                    decision, state.previous_failures, state.max_exception_chain, state.attempt
                )
                _set_result(future, value)
                return
        except BaseException as exc:  # noqa: BLE001
            _set_exception(future, exc)
            return
        if future.cancelled():
            return
        log_retry(state.attempt, decision, failure, result)
        if failure is not None:
            state.previous_failures.append(failure)
        state.last_failure = failure
        state.fn = decision.callable
        state.attempt += 1
        delay_ns = decision.delay_ns or 0
        try:
            if delay_ns > 0:
                task = self._scheduler.schedule(
                    delay_ns, lambda: self._dispatch_later(state), owner=future
                )
                future._track(scheduled=task)
            else:
                self._dispatch(state)
        except RuntimeError as exc:
            _set_exception(future, exc)


def _set_result(future: Future, value: Any) -> None:
    try:
        future.set_result(value)
    except InvalidStateError:
        logger.debug("Discarding the result of a cancelled call")


def _set_exception(future: Future, exc: BaseException) -> None:
    try:
        future.set_exception(exc)
    except InvalidStateError:
        logger.debug(f"Discarding {type(exc).__name__} raised by a cancelled call")


_default_executor: RetryExecutor | None = None
_default_executor_lock = threading.Lock()


def get_default_executor() -> RetryExecutor:
    """Get the process-wide executor, creating it on first use.

    The executor is shut down automatically when the interpreter exits.

    Returns:
        The default executor.
    """
    global _default_executor  # noqa: PLW0603
    with _default_executor_lock:
        if _default_executor is None:
            _default_executor = RetryExecutor(thread_name_prefix="afailsafe-default")
            atexit.register(shutdown_default_executor, wait=False)
            logger.debug("Started the default retry executor")
        return _default_executor


def shutdown_default_executor(wait: bool = True) -> None:
    """Shut down the process-wide executor, if it was started.

    A later ``get_default_executor`` call starts a new one.

    Args:
        wait: Wait for running attempts to finish.
    """
    global _default_executor  # noqa: PLW0603
    with _default_executor_lock:
        executor, _default_executor = _default_executor, None
    if executor is not None:
        atexit.unregister(shutdown_default_executor)
        executor.shutdown(wait=wait)
        logger.debug("Stopped the default retry executor")
