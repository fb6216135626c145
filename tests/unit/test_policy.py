r"""Unit tests for RetryPolicy and its builders."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from afailsafe import RetryPolicy, RetryTimeoutError, deadline_scope
from afailsafe.retry import (
    NO_RETRY,
    RetryDecision,
    RetryExecutor,
    RetryOnExceptionType,
    TimeoutRetryPredicate,
)


def builder_with(**delays: float) -> RetryPolicy:
    predicate_builder = RetryPolicy.new_builder().retry_predicate_builder()
    predicate_builder.with_retry_on_exception(OSError, max_retries=delays.pop("max_retries", None))
    if "initial_delay" in delays:
        predicate_builder.with_initial_delay(delays["initial_delay"])
    if "max_delay" in delays:
        predicate_builder.with_max_delay(delays["max_delay"])
    if "initial_retries" in delays:
        predicate_builder.with_initial_retries(int(delays["initial_retries"]))
    return predicate_builder.finish_predicate().build()


################################
#     RetryPolicy defaults     #
################################


def test_policy_without_rules_never_retries() -> None:
    """Test that a policy without retry rules fails on the first error."""
    policy = RetryPolicy.new_builder().build()
    error = OSError("once")
    fn = Mock(side_effect=error)
    with pytest.raises(OSError, match=r"once") as exc_info:
        policy.call(fn)
    assert exc_info.value is error
    fn.assert_called_once_with()


def test_policy_without_rules_returns_result() -> None:
    assert RetryPolicy.new_builder().build().call(lambda: None) is None


def test_policy_predicate_is_deadline_aware() -> None:
    predicate = RetryPolicy.new_builder().build().get_retry_predicate()
    assert isinstance(predicate, TimeoutRetryPredicate)
    assert predicate.predicate is NO_RETRY


def test_policy_fresh_predicate_per_call() -> None:
    policy = builder_with(max_retries=1)
    assert policy.get_retry_predicate() is not policy.get_retry_predicate()


def test_policy_repr() -> None:
    assert repr(RetryPolicy.new_builder().build()) == "RetryPolicy(max_exception_chain=10)"


def test_policy_is_immutable() -> None:
    policy = RetryPolicy.new_builder().build()
    with pytest.raises(AttributeError):
        policy.extra = 1


#########################
#     Retry scenarios   #
#########################


def test_policy_retries_then_succeeds(mock_sleep: Mock) -> None:
    """Test two failures followed by a success with two retries
    allowed."""
    fn = Mock(side_effect=[OSError(), OSError(), "done"])
    assert builder_with(max_retries=2).call(fn) == "done"
    assert fn.call_count == 3
    # The first three retries run without delay
    mock_sleep.assert_not_called()


def test_policy_retries_exhausted(mock_sleep: Mock) -> None:  # noqa: ARG001
    """Test that the third failure is raised unchanged after two
    retries."""
    errors = [OSError("1"), OSError("2"), OSError("3")]
    fn = Mock(side_effect=errors)
    with pytest.raises(OSError, match=r"3") as exc_info:
        builder_with(max_retries=2).call(fn)
    assert exc_info.value is errors[2]
    assert fn.call_count == 3


def test_policy_deadline_prevents_retry(mock_sleep: Mock) -> None:
    """Test that a retry whose delay overshoots the deadline becomes a
    timeout."""
    error = OSError("slow")
    fn = Mock(side_effect=error)
    policy = builder_with(initial_retries=0, initial_delay=0.1, max_delay=1.0)
    with deadline_scope(0.05), pytest.raises(RetryTimeoutError) as exc_info:
        policy.call(fn)
    assert exc_info.value.__cause__ is error
    fn.assert_called_once_with()
    mock_sleep.assert_not_called()


def test_policy_result_rule_retries_until_value(mock_sleep: Mock) -> None:  # noqa: ARG001
    fn = Mock(side_effect=[None, None, None, 42])
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_result_partial_predicate(
            lambda result, fn: RetryDecision.retry_default(fn) if result is None else None,
            max_retries=5,
        )
        .finish_predicate()
        .build()
    )
    assert policy.call(fn) == 42
    assert fn.call_count == 4


def test_policy_result_rule_limit_returns_last_result(mock_sleep: Mock) -> None:  # noqa: ARG001
    fn = Mock(side_effect=[None, None, None])
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_result_partial_predicate(
            lambda result, fn: RetryDecision.retry_default(fn) if result is None else None,
            max_retries=2,
        )
        .finish_predicate()
        .build()
    )
    assert policy.call(fn) is None
    assert fn.call_count == 3


def test_policy_backoff_delays(mock_sleep: Mock) -> None:
    """Test the Fibonacci delays after the no-delay retries."""
    fn = Mock(side_effect=[OSError()] * 6 + ["ok"])
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_retry_on_exception(OSError)
        .with_initial_retries(2)
        .with_initial_delay(0.01)
        .with_max_delay(0.025)
        .with_jitter_factor(0.0)
        .finish_predicate()
        .build()
    )
    assert policy.call(fn) == "ok"
    assert [c.args[0] for c in mock_sleep.call_args_list] == pytest.approx(
        [0.01, 0.01, 0.02, 0.025]
    )


def test_policy_backoff_with_jitter(mock_sleep: Mock) -> None:
    fn = Mock(side_effect=[OSError()] * 5 + ["ok"])
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_retry_on_exception(OSError)
        .with_initial_retries(0)
        .with_initial_delay(timedelta(seconds=1))
        .with_max_delay(timedelta(seconds=1))
        .with_jitter_factor(0.5)
        .finish_predicate()
        .build()
    )
    policy.call(fn)
    assert all(0.5 <= c.args[0] <= 1.5 for c in mock_sleep.call_args_list)
    assert mock_sleep.call_count == 5


def test_policy_rules_evaluated_in_order(mock_sleep: Mock) -> None:  # noqa: ARG001
    """Test that an earlier abort rule takes precedence."""
    marker = RuntimeError("stop")
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_exception_partial_predicate(
            lambda exc, fn: RetryDecision.abort_with_failure(marker)
            if "fatal" in str(exc)
            else None
        )
        .with_retry_on_exception(OSError, max_retries=3)
        .finish_predicate()
        .build()
    )
    fn = Mock(side_effect=[OSError("transient"), OSError("fatal")])
    with pytest.raises(RuntimeError) as exc_info:
        policy.call(fn)
    assert exc_info.value is marker
    assert fn.call_count == 2


def test_policy_count_limits_independent_per_rule(mock_sleep: Mock) -> None:  # noqa: ARG001
    """Test that each rule consumes its own retry budget."""
    fn = Mock(side_effect=[KeyError(), KeyError(), OSError(), OSError(), OSError(), "ok"])
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_retry_on_exception(KeyError, max_retries=2)
        .with_retry_on_exception(OSError, max_retries=3)
        .finish_predicate()
        .build()
    )
    assert policy.call(fn) == "ok"


def test_policy_count_limits_reset_per_call(mock_sleep: Mock) -> None:  # noqa: ARG001
    policy = builder_with(max_retries=1)
    for _ in range(3):
        assert policy.call(Mock(side_effect=[OSError(), "ok"])) == "ok"


def test_policy_stateful_predicate_fresh_per_call(mock_sleep: Mock) -> None:  # noqa: ARG001
    created = []

    def new_rule() -> object:
        seen = []
        created.append(seen)

        def rule(exc: BaseException, fn: object) -> RetryDecision | None:
            seen.append(exc)
            return RetryDecision.retry_default(fn) if len(seen) < 2 else None

        return rule

    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_exception_stateful_partial_predicate(new_rule)
        .finish_predicate()
        .build()
    )
    for _ in range(2):
        with pytest.raises(OSError):
            policy.call(Mock(side_effect=OSError()))
    assert [len(seen) for seen in created] == [2, 2]


def test_policy_stateful_result_predicate(mock_sleep: Mock) -> None:  # noqa: ARG001
    def new_rule() -> object:
        budget = iter(range(1))
        return lambda result, fn: (
            RetryDecision.retry_default(fn) if next(budget, None) is not None else None
        )

    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_result_stateful_partial_predicate(new_rule)
        .finish_predicate()
        .build()
    )
    fn = Mock(side_effect=[1, 2, 3, 4])
    assert policy.call(fn) == 2
    assert policy.call(fn) == 4


def test_policy_cause_chain_match(mock_sleep: Mock) -> None:  # noqa: ARG001
    def work() -> str:
        if work.calls == 0:
            work.calls += 1
            try:
                raise ConnectionResetError("reset")
            except ConnectionResetError as exc:
                raise RuntimeError("request failed") from exc
        return "ok"

    work.calls = 0
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_retry_on_exception(ConnectionError)
        .finish_predicate()
        .build()
    )
    assert policy.call(work) == "ok"


def test_policy_max_exception_chain(mock_sleep: Mock) -> None:  # noqa: ARG001
    errors = [OSError(str(i)) for i in range(5)]
    policy = (
        RetryPolicy.new_builder()
        .with_max_exception_chain(1)
        .retry_predicate_builder()
        .with_retry_on_exception(OSError, max_retries=4)
        .finish_predicate()
        .build()
    )
    assert policy.max_exception_chain == 1
    with pytest.raises(OSError, match=r"4") as exc_info:
        policy.call(Mock(side_effect=errors))
    assert exc_info.value.__notes__ == ["Previous attempt failed with OSError: 3"]


def test_policy_exception_type_filter() -> None:
    fn = Mock(side_effect=OSError())
    with pytest.raises(OSError):
        builder_with(max_retries=3).call(fn, exception_type=ValueError)
    fn.assert_called_once_with()


def test_policy_concurrent_calls_are_independent() -> None:
    """Test that threads sharing one policy do not share state."""
    policy = builder_with(max_retries=2)
    results = []
    lock = threading.Lock()

    def worker(i: int) -> None:
        value = policy.call(Mock(side_effect=[OSError(), OSError(), i]))
        with lock:
            results.append(value)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert sorted(results) == list(range(16))


####################
#     Deadlines    #
####################


def test_policy_deadline_passed_before_first_decision() -> None:
    """Test that a deadline that passed during an attempt aborts even a
    success."""
    policy = RetryPolicy.new_builder().build()

    def slow() -> str:
        time.sleep(0.02)
        return "late"

    with deadline_scope(0.001), pytest.raises(RetryTimeoutError):
        policy.call(slow)


def test_policy_custom_deadline_supplier(mock_sleep: Mock) -> None:  # noqa: ARG001
    supplier = Mock(return_value=time.monotonic_ns() - 1)
    policy = (
        RetryPolicy.new_builder()
        .with_deadline_supplier(supplier)
        .retry_predicate_builder()
        .with_retry_on_exception(OSError)
        .finish_predicate()
        .build()
    )
    fn = Mock(side_effect=OSError())
    with pytest.raises(RetryTimeoutError):
        policy.call(fn)
    supplier.assert_called_once_with(fn)


def test_policy_retries_within_deadline(mock_sleep: Mock) -> None:  # noqa: ARG001
    fn = Mock(side_effect=[OSError(), "ok"])
    with deadline_scope(30):
        assert builder_with().call(fn) == "ok"


######################
#     Submission     #
######################


def test_policy_submit_uses_configured_executor() -> None:
    with RetryExecutor(max_workers=2) as executor:
        policy = (
            RetryPolicy.new_builder()
            .with_executor(executor)
            .retry_predicate_builder()
            .with_retry_on_exception(OSError, max_retries=2)
            .finish_predicate()
            .build()
        )
        future = policy.submit(Mock(side_effect=[OSError(), "ok"]))
        assert future.result(timeout=5) == "ok"


@pytest.mark.asyncio
async def test_policy_acall(mock_asleep: Mock) -> None:  # noqa: ARG001
    fn = AsyncMock(side_effect=[OSError(), OSError(), "ok"])
    assert await builder_with(max_retries=2).acall(fn) == "ok"


@pytest.mark.asyncio
async def test_policy_acall_exhausted(mock_asleep: Mock) -> None:  # noqa: ARG001
    error = OSError("gone")
    fn = AsyncMock(side_effect=error)
    with pytest.raises(OSError, match=r"gone") as exc_info:
        await builder_with(max_retries=1).acall(fn)
    assert exc_info.value is error


####################
#     Builders     #
####################


def test_builder_invalid_jitter_factor() -> None:
    with pytest.raises(ValueError, match=r"Invalid jitter factor"):
        RetryPolicy.new_builder().retry_predicate_builder().with_jitter_factor(1.5)


def test_builder_invalid_max_exception_chain() -> None:
    with pytest.raises(ValueError, match=r"max_exception_chain must be > 0"):
        RetryPolicy.new_builder().with_max_exception_chain(0)


def test_builder_invalid_max_retries() -> None:
    with pytest.raises(ValueError, match=r"max_retries must be >= 0"):
        RetryPolicy.new_builder().retry_predicate_builder().with_retry_on_exception(
            OSError, max_retries=-1
        )


def test_builder_invalid_delays() -> None:
    predicate_builder = RetryPolicy.new_builder().retry_predicate_builder()
    with pytest.raises(ValueError, match=r"initial delay must be >= 0"):
        predicate_builder.with_initial_delay(-1)
    with pytest.raises(ValueError, match=r"max delay must be >= 0"):
        predicate_builder.with_max_delay(timedelta(seconds=-1))
    with pytest.raises(ValueError, match=r"retries must be >= 0"):
        predicate_builder.with_initial_retries(-1)


def test_builder_rejects_wrong_predicate_target() -> None:
    predicate_builder = RetryPolicy.new_builder().retry_predicate_builder()
    with pytest.raises(TypeError, match=r"expected result"):
        predicate_builder.with_result_partial_predicate(RetryOnExceptionType(OSError))


def test_builder_accepts_partial_predicate_instance(mock_sleep: Mock) -> None:  # noqa: ARG001
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_exception_partial_predicate(RetryOnExceptionType(OSError), max_retries=1)
        .finish_predicate()
        .build()
    )
    assert policy.call(Mock(side_effect=[OSError(), 1])) == 1


def test_finish_predicate_snapshots_configuration(mock_sleep: Mock) -> None:  # noqa: ARG001
    """Test that changes after finish_predicate do not leak into the
    policy."""
    predicate_builder = (
        RetryPolicy.new_builder().retry_predicate_builder().with_retry_on_exception(OSError, 1)
    )
    policy = predicate_builder.finish_predicate().build()
    predicate_builder.with_retry_on_exception(KeyError)
    with pytest.raises(KeyError):
        policy.call(Mock(side_effect=KeyError()))


@pytest.mark.usefixtures("fresh_defaults")
def test_builder_uses_environment_defaults(
    monkeypatch: pytest.MonkeyPatch, mock_sleep: Mock
) -> None:
    monkeypatch.setenv("AFAILSAFE_DEFAULT_INITIAL_NODELAY_RETRIES", "0")
    monkeypatch.setenv("AFAILSAFE_DEFAULT_INITIAL_RETRY_DELAY_NS", "1000000")
    policy = (
        RetryPolicy.new_builder()
        .retry_predicate_builder()
        .with_retry_on_exception(OSError, max_retries=1)
        .with_jitter_factor(0.0)
        .finish_predicate()
        .build()
    )
    policy.call(Mock(side_effect=[OSError(), "ok"]))
    mock_sleep.assert_called_once_with(0.001)


def test_builder_aliases() -> None:
    assert isinstance(RetryPolicy.new_builder(), RetryPolicy.Builder)
    assert isinstance(
        RetryPolicy.new_builder().retry_predicate_builder(), RetryPolicy.Builder.PredicateBuilder
    )


def test_policy_shared_exception_notes_capped(mock_sleep: Mock) -> None:  # noqa: ARG001
    """Test that a re-raised exception instance collects the notes of
    several calls up to max_exception_chain."""
    shared = KeyError("terminal")
    policy = (
        RetryPolicy.new_builder()
        .with_max_exception_chain(2)
        .retry_predicate_builder()
        .with_retry_on_exception(OSError)
        .finish_predicate()
        .build()
    )
    for i in range(3):
        with pytest.raises(KeyError) as exc_info:
            policy.call(Mock(side_effect=[OSError(f"call {i}"), shared]))
        assert exc_info.value is shared
    assert shared.__notes__ == [
        "Previous attempt failed with OSError: call 0",
        "Previous attempt failed with OSError: call 1",
    ]
