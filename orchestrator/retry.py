"""
Retry with exponential backoff around one async unit of work.

The executor never raises for a failing operation. Every failure ends as an
Outcome, so one source that keeps failing cannot abort a collection run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from models import Outcome

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0     # seconds; wait before retry n is base_delay * 2**n

    def __post_init__(self):
        if not isinstance(self.max_retries, int) or self.max_retries < 1:
            raise ValueError(f"max_retries must be an integer >= 1, got {self.max_retries!r}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay!r}")

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given zero-based attempt. No jitter, no cap."""
        return self.base_delay * (2 ** attempt)


DEFAULT_POLICY = RetryPolicy()


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class RetryExecutor:
    """
    Drives one operation through its attempt/backoff loop.

    Holds no state between calls, so a single instance can serve every
    source of a run concurrently.
    """

    async def execute(
        self,
        operation: Callable[[], Awaitable],
        name: str,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Outcome:
        """
        Call `operation` until it succeeds or the policy is exhausted.

        Returns Outcome.ok on the first success, Outcome.failed once every
        attempt has failed, or Outcome.cancelled when `cancel` is set before
        an attempt or during a backoff wait.

        Raises:
            TypeError: `operation` is not callable.
        """
        if not callable(operation):
            raise TypeError(f"operation for {name!r} is not callable: {operation!r}")

        policy = policy or DEFAULT_POLICY
        max_retries = policy.max_retries

        message = ""
        for attempt in range(max_retries):
            if cancel is not None and cancel.is_set():
                return Outcome.cancelled(attempts=attempt)

            try:
                value = await operation()
                return Outcome.ok(value, attempts=attempt + 1)
            except Exception as e:
                message = describe_error(e)

            if attempt == max_retries - 1:
                break

            delay = policy.delay_for(attempt)
            log.warning(
                f"[Collector:{name}] attempt {attempt + 1}/{max_retries} failed: "
                f"{message}. Retrying in {round(delay * 1000)}ms..."
            )
            if await self._wait(delay, cancel):
                log.info(f"[Collector:{name}] cancelled during backoff")
                return Outcome.cancelled(attempts=attempt + 1)

        log.error(f"[Collector:{name}] All {max_retries} attempts failed: {message}")
        return Outcome.failed(message, attempts=max_retries)

    async def _wait(self, delay: float, cancel: asyncio.Event | None) -> bool:
        """Sleep for `delay` seconds. Returns True if `cancel` fired first."""
        if cancel is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
