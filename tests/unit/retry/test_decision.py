from __future__ import annotations

import pytest

from afailsafe.retry import RetryDecision, RetryDecisionType


def work() -> str:
    return "ok"


def test_retry_decision_retry() -> None:
    decision = RetryDecision.retry(1_000, work)
    assert decision.decision_type is RetryDecisionType.RETRY
    assert decision.is_retry
    assert not decision.is_abort
    assert decision.delay_ns == 1_000
    assert decision.callable is work


def test_retry_decision_retry_zero_delay() -> None:
    assert RetryDecision.retry(0, work).delay_ns == 0


def test_retry_decision_retry_negative_delay() -> None:
    """Test that a negative delay is rejected at construction."""
    with pytest.raises(ValueError, match=r"Invalid retry decision delay: -1"):
        RetryDecision.retry(-1, work)


def test_retry_decision_retry_default() -> None:
    decision = RetryDecision.retry_default(work)
    assert decision.is_retry
    assert decision.delay_ns is None
    assert decision.callable is work


def test_retry_decision_abort_with_result() -> None:
    decision = RetryDecision.abort_with_result([1, 2])
    assert decision.is_abort
    assert decision.result == [1, 2]
    assert decision.failure is None


def test_retry_decision_abort_with_none_result() -> None:
    decision = RetryDecision.abort_with_result(None)
    assert decision.is_abort
    assert decision.result is None
    assert decision.failure is None


def test_retry_decision_abort_with_failure() -> None:
    error = OSError("disk")
    decision = RetryDecision.abort_with_failure(error)
    assert decision.is_abort
    assert decision.failure is error


def test_retry_decision_is_immutable() -> None:
    decision = RetryDecision.retry(5, work)
    with pytest.raises(AttributeError):
        decision.delay_ns = 10


def test_retry_decision_abort() -> None:
    decision = RetryDecision.abort()
    assert decision.is_abort
    assert decision.result is None
    assert decision.failure is None
