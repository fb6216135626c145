from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock, patch

import pytest

from afailsafe.core.config import get_defaults
from afailsafe.retry import RetryExecutor

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def mock_sleep() -> Generator[Mock, None, None]:
    """Patch time.sleep to make tests run faster."""
    with patch("time.sleep", return_value=None) as mock:
        yield mock


@pytest.fixture
def mock_asleep() -> Generator[Mock, None, None]:
    """Patch asyncio.sleep to make tests run faster."""
    with patch("asyncio.sleep", return_value=None) as mock:
        yield mock


@pytest.fixture
def fresh_defaults() -> Generator[None, None, None]:
    """Make the process-wide defaults re-read the environment."""
    get_defaults.cache_clear()
    yield
    get_defaults.cache_clear()


@pytest.fixture
def executor() -> Generator[RetryExecutor, None, None]:
    """Create a RetryExecutor shut down after the test."""
    retry_executor = RetryExecutor(max_workers=4, thread_name_prefix="test-retry")
    yield retry_executor
    retry_executor.shutdown(wait=True, cancel_futures=True)
