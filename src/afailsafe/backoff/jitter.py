r"""Jitter transform for retry delay suppliers."""

from __future__ import annotations

__all__ = ["JitteredDelaySupplier"]

import logging
import math
import random

from afailsafe.backoff.base import BaseRetryDelaySupplier
from afailsafe.core.validation import validate_jitter_factor

logger: logging.Logger = logging.getLogger(__name__)


class JitteredDelaySupplier(BaseRetryDelaySupplier):
    """Randomize the delays of another supplier.

    Each delay ``d`` produced by the wrapped supplier is replaced by an
    integer drawn uniformly from ``[d * (1 - jitter_factor), d * (1 +
    jitter_factor)]``. Randomized delays keep concurrent callers that
    failed together from retrying in lockstep.

    Args:
        wrapped: The supplier producing the base delays.
        jitter_factor: Relative width of the randomization range, within
            ``[0, 1]``. A factor of 0 returns the base delays unchanged.
        rng: Optional random generator. By default each instance gets its
            own generator seeded from OS entropy, so two calls sharing a
            policy draw independent jitter.

    Raises:
        ValueError: If jitter_factor is outside ``[0, 1]``.

    Example:
        ```pycon
        >>> from afailsafe.backoff import FibonacciRetryDelaySupplier, JitteredDelaySupplier
        >>> supplier = JitteredDelaySupplier(FibonacciRetryDelaySupplier(0, 100, 1000), 0.1)
        >>> 90 <= supplier.next_delay() <= 110
        True

        ```
    """

    def __init__(
        self,
        wrapped: BaseRetryDelaySupplier,
        jitter_factor: float,
        rng: random.Random | None = None,
    ) -> None:
        validate_jitter_factor(jitter_factor)
        self.wrapped = wrapped
        self.jitter_factor = jitter_factor
        self._rng = rng if rng is not None else random.Random()  # noqa: S311

    def next_delay(self) -> int:
        delay = self.wrapped.next_delay()
        if delay <= 0 or self.jitter_factor == 0:
            return delay
        low = math.ceil(delay * (1.0 - self.jitter_factor))
        high = math.floor(delay * (1.0 + self.jitter_factor))
        if low >= high:
            return delay
        jittered = self._rng.randint(low, high)
        logger.debug(f"Jittered retry delay {delay}ns -> {jittered}ns")
        return jittered

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(wrapped={self.wrapped!r}, "
            f"jitter_factor={self.jitter_factor})"
        )
