from __future__ import annotations

import pytest

from afailsafe.core.validation import (
    validate_delay_ns,
    validate_jitter_factor,
    validate_max_exception_chain,
    validate_max_retries,
)


@pytest.mark.parametrize("jitter_factor", [0.0, 0.5, 1.0])
def test_validate_jitter_factor_valid(jitter_factor: float) -> None:
    validate_jitter_factor(jitter_factor)


@pytest.mark.parametrize("jitter_factor", [-0.01, 1.01, 10.0])
def test_validate_jitter_factor_invalid(jitter_factor: float) -> None:
    with pytest.raises(ValueError, match=r"Invalid jitter factor .*, must be within \[0, 1\]"):
        validate_jitter_factor(jitter_factor)


def test_validate_max_retries() -> None:
    validate_max_retries(0)
    validate_max_retries(5)
    with pytest.raises(ValueError, match=r"max_retries must be >= 0, got -1"):
        validate_max_retries(-1)


def test_validate_max_retries_custom_name() -> None:
    with pytest.raises(ValueError, match=r"nr_initial_retries must be >= 0"):
        validate_max_retries(-3, name="nr_initial_retries")


def test_validate_delay_ns() -> None:
    validate_delay_ns(0)
    with pytest.raises(ValueError, match=r"delay_ns must be >= 0, got -5"):
        validate_delay_ns(-5)


@pytest.mark.parametrize("max_exception_chain", [0, -1])
def test_validate_max_exception_chain_invalid(max_exception_chain: int) -> None:
    with pytest.raises(ValueError, match=r"max_exception_chain must be > 0"):
        validate_max_exception_chain(max_exception_chain)


def test_validate_max_exception_chain_valid() -> None:
    validate_max_exception_chain(1)
