"""
Fan-out / fan-in over a fixed list of collector units.

Every unit runs concurrently under its own RetryExecutor loop. The run only
returns once all of them have settled, and it always returns a
CollectionResult: a source that fails, is cancelled, or blows up before its
retry loop starts simply ends up absent with a line in `errors`.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from models import CollectionResult, Outcome
from orchestrator.retry import DEFAULT_POLICY, RetryExecutor, RetryPolicy, describe_error

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectorUnit:
    """A named, parameterless async operation. Must be safe to call again after a failure."""
    name: str
    operation: Callable[[], Awaitable]


class CollectionOrchestrator:
    def __init__(self, policy: RetryPolicy | None = None, executor: RetryExecutor | None = None):
        self.policy = policy or DEFAULT_POLICY
        self.executor = executor or RetryExecutor()

    async def run_all(
        self,
        units: list[CollectorUnit],
        deadline: float | None = None,
    ) -> CollectionResult:
        """
        Run every unit concurrently and assemble one CollectionResult.

        Args:
            units: Ordered collector units. Names must be unique.
            deadline: Seconds after which pending backoff waits are aborted
                and their sources resolve as cancelled.

        Raises:
            ValueError: Duplicate unit names.
        """
        names = [unit.name for unit in units]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate collector names: {', '.join(duplicates)}")

        result = CollectionResult(timestamp=datetime.now(timezone.utc))
        if not units:
            return result

        cancel = asyncio.Event()
        timer = None
        if deadline is not None:
            timer = asyncio.get_running_loop().call_later(deadline, cancel.set)

        try:
            outcomes = await asyncio.gather(
                *(self._guarded(unit, cancel) for unit in units)
            )
        finally:
            if timer is not None:
                timer.cancel()

        for unit, outcome in zip(units, outcomes):
            result.outcomes[unit.name] = outcome
            if not outcome.succeeded:
                result.errors.append(f"{unit.name}: {outcome.error}")

        log.info(
            f"Collection finished: {len(result.succeeded)}/{len(units)} sources ok, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _guarded(
        self,
        unit: CollectorUnit,
        cancel: asyncio.Event,
    ) -> Outcome:
        try:
            return await self.executor.execute(unit.operation, unit.name, self.policy, cancel)
        except Exception as e:
            message = describe_error(e)
            log.error(f"[Collector:{unit.name}] failed outside retry loop: {message}")
            return Outcome.failed(message, attempts=0)


def collect(
    units: list[CollectorUnit],
    policy: RetryPolicy | None = None,
    deadline: float | None = None,
) -> CollectionResult:
    """Synchronous entry point: run all units in a fresh event loop."""
    orchestrator = CollectionOrchestrator(policy=policy)
    return asyncio.run(orchestrator.run_all(units, deadline=deadline))
