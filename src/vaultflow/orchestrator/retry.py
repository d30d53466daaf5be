"""Bounded retry policy for confirmation polling."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class RetryOutcome:
    """How a polling loop ended.

    Attributes:
        satisfied: The check passed before attempts ran out
        attempts: Number of checks performed
        lenient: The check never passed but the policy accepts the result anyway
    """
    satisfied: bool
    attempts: int
    lenient: bool = False

    @property
    def accepted(self) -> bool:
        return self.satisfied or self.lenient


@dataclass
class RetryPolicy:
    """Fixed-budget polling: check, wait, repeat.

    Attributes:
        max_attempts: Hard cap on checks
        interval: Seconds to wait between checks
        backoff: Multiplier applied to the interval after every wait
        lenient_after: Accept an unsatisfied outcome once this many checks ran
            (None = never)
        sleep: Awaitable sleep, replaceable in tests
    """
    max_attempts: int
    interval: float
    backoff: float = 1.0
    lenient_after: Optional[int] = None
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def allows_leniency(self, attempts: int) -> bool:
        return self.lenient_after is not None and attempts >= self.lenient_after

    async def run(self, check: Callable[[], Awaitable[bool]], label: str = "check") -> RetryOutcome:
        """Poll ``check`` until it returns True or the attempt budget is spent."""
        delay = self.interval
        attempts = 0

        while attempts < self.max_attempts:
            attempts += 1
            if await check():
                logger.debug(f"{label} satisfied after {attempts} attempt(s)")
                return RetryOutcome(satisfied=True, attempts=attempts)

            logger.debug(f"{label} not satisfied (attempt {attempts}/{self.max_attempts})")
            if attempts < self.max_attempts:
                await self.sleep(delay)
                delay *= self.backoff

        return RetryOutcome(
            satisfied=False,
            attempts=attempts,
            lenient=self.allows_leniency(attempts),
        )
