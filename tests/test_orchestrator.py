"""
Tests for the collection core:
- RetryPolicy validation and backoff schedule
- RetryExecutor attempt/backoff loop, logging and cancellation
- CollectionOrchestrator fan-out, error list and failure isolation
"""

import asyncio
import logging
import time
from pathlib import Path

import pytest
import sys

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import CollectionResult, Outcome, OutcomeStatus
from orchestrator.retry import RetryExecutor, RetryPolicy, DEFAULT_POLICY
from orchestrator.runner import CollectionOrchestrator, CollectorUnit, collect


# ──────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────

class FlakyOperation:
    """Fails `failures` times, then returns `value`. Records call times."""

    def __init__(self, failures: int, value=42, error: Exception | None = None):
        self.failures = failures
        self.value = value
        self.error = error or ConnectionError("upstream timed out")
        self.calls: list[float] = []

    async def __call__(self):
        self.calls.append(time.monotonic())
        if len(self.calls) <= self.failures:
            raise self.error
        return self.value


def always_fails(message: str = "service unavailable"):
    return FlakyOperation(failures=10**6, error=RuntimeError(message))


def succeeds(value):
    return FlakyOperation(failures=0, value=value)


def run(coro):
    return asyncio.run(coro)


FAST = RetryPolicy(max_retries=3, base_delay=0.01)


# ──────────────────────────────────────────────
# RetryPolicy
# ──────────────────────────────────────────────

class TestRetryPolicy:
    def test_defaults(self):
        assert DEFAULT_POLICY.max_retries == 3
        assert DEFAULT_POLICY.base_delay == 1.0

    def test_backoff_doubles(self):
        policy = RetryPolicy(max_retries=4, base_delay=0.1)
        assert [policy.delay_for(i) for i in range(3)] == pytest.approx([0.1, 0.2, 0.4])

    def test_zero_retries_rejected(self):
        with pytest.raises(ValueError, match="max_retries"):
            RetryPolicy(max_retries=0)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError, match="base_delay"):
            RetryPolicy(base_delay=-1)

    def test_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_POLICY.max_retries = 5


# ──────────────────────────────────────────────
# RetryExecutor
# ──────────────────────────────────────────────

class TestRetryExecutor:
    def test_first_attempt_success_short_circuits(self):
        op = succeeds(7)
        outcome = run(RetryExecutor().execute(op, "weather", FAST))
        assert outcome == Outcome.ok(7, attempts=1)
        assert len(op.calls) == 1

    def test_zero_is_a_real_value(self):
        outcome = run(RetryExecutor().execute(succeeds(0), "alerts", FAST))
        assert outcome.succeeded
        assert outcome.value == 0

    def test_fail_twice_then_succeed_waits_100_then_200ms(self):
        op = FlakyOperation(failures=2, value=5)
        policy = RetryPolicy(max_retries=3, base_delay=0.1)

        start = time.monotonic()
        outcome = run(RetryExecutor().execute(op, "gauges", policy))
        elapsed = time.monotonic() - start

        assert outcome.value == 5
        assert outcome.attempts == 3
        assert len(op.calls) == 3
        assert op.calls[1] - op.calls[0] >= 0.095
        assert op.calls[2] - op.calls[1] >= 0.195
        assert 0.29 <= elapsed < 1.0

    def test_exhaustion_returns_failed_and_never_raises(self):
        op = always_fails("HTTP 503")
        outcome = run(RetryExecutor().execute(op, "traffic", FAST))
        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.value is None
        assert outcome.error == "HTTP 503"
        assert outcome.attempts == 3
        assert len(op.calls) == 3

    def test_single_attempt_policy_does_not_sleep(self):
        op = always_fails()
        start = time.monotonic()
        outcome = run(RetryExecutor().execute(op, "weather", RetryPolicy(max_retries=1, base_delay=5)))
        assert time.monotonic() - start < 1.0
        assert outcome.attempts == 1
        assert not outcome.succeeded

    def test_empty_exception_message_uses_class_name(self):
        op = FlakyOperation(failures=10, error=TimeoutError())
        outcome = run(RetryExecutor().execute(op, "weather", RetryPolicy(max_retries=1)))
        assert outcome.error == "TimeoutError"

    def test_sync_raise_inside_operation_is_retried(self):
        calls = []

        def not_async():
            calls.append(1)
            raise ValueError("bad payload")

        outcome = run(RetryExecutor().execute(not_async, "alerts", FAST))
        assert outcome.error == "bad payload"
        assert len(calls) == 3

    def test_non_callable_raises_type_error(self):
        with pytest.raises(TypeError, match="not callable"):
            run(RetryExecutor().execute(None, "weather", FAST))

    def test_log_messages(self, caplog):
        caplog.set_level(logging.INFO, logger="orchestrator.retry")
        policy = RetryPolicy(max_retries=3, base_delay=0.1)
        run(RetryExecutor().execute(always_fails("boom"), "Weather", policy))

        messages = [r.getMessage() for r in caplog.records]
        assert "[Collector:Weather] attempt 1/3 failed: boom. Retrying in 100ms..." in messages
        assert "[Collector:Weather] attempt 2/3 failed: boom. Retrying in 200ms..." in messages
        assert "[Collector:Weather] All 3 attempts failed: boom" in messages

        terminal = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(terminal) == 1

    def test_cancel_aborts_backoff(self):
        async def scenario():
            cancel = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, cancel.set)
            policy = RetryPolicy(max_retries=3, base_delay=10)
            return await RetryExecutor().execute(always_fails(), "gauges", policy, cancel)

        start = time.monotonic()
        outcome = run(scenario())
        assert time.monotonic() - start < 2.0
        assert outcome.status is OutcomeStatus.CANCELLED
        assert outcome.attempts == 1
        assert outcome.value is None

    def test_already_cancelled_makes_no_attempt(self):
        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            return await RetryExecutor().execute(op, "weather", FAST, cancel)

        op = succeeds(3)
        outcome = run(scenario())
        assert outcome.status is OutcomeStatus.CANCELLED
        assert outcome.attempts == 0
        assert op.calls == []

    def test_task_cancellation_propagates(self):
        async def scenario():
            task = asyncio.ensure_future(
                RetryExecutor().execute(always_fails(), "alerts", RetryPolicy(base_delay=10))
            )
            await asyncio.sleep(0.02)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                return "cancelled"
            return "finished"

        assert run(scenario()) == "cancelled"


# ──────────────────────────────────────────────
# CollectionOrchestrator
# ──────────────────────────────────────────────

def four_units(weather, alerts, traffic, gauges) -> list[CollectorUnit]:
    return [
        CollectorUnit("weather", weather),
        CollectorUnit("alerts", alerts),
        CollectorUnit("traffic", traffic),
        CollectorUnit("gauges", gauges),
    ]


class TestCollectionOrchestrator:
    def test_all_succeed(self):
        units = four_units(succeeds(12), succeeds(3), succeeds(7), succeeds(40))
        start = time.monotonic()
        result = run(CollectionOrchestrator(FAST).run_all(units))

        assert time.monotonic() - start < 0.5
        assert result.values == {"weather": 12, "alerts": 3, "traffic": 7, "gauges": 40}
        assert result.errors == []
        assert list(result.outcomes) == ["weather", "alerts", "traffic", "gauges"]

    def test_timestamp_taken_before_sources_start(self):
        seen = []

        async def op():
            seen.append(time.time())
            return 1

        result = run(CollectionOrchestrator(FAST).run_all([CollectorUnit("weather", op)]))
        assert result.timestamp.timestamp() <= seen[0]
        assert result.timestamp.tzinfo is not None

    def test_all_fail_still_returns_complete_result(self):
        units = four_units(always_fails("a"), always_fails("b"), always_fails("c"), always_fails("d"))
        result = run(CollectionOrchestrator(FAST).run_all(units))

        assert result.values == {"weather": None, "alerts": None, "traffic": None, "gauges": None}
        assert result.errors == ["weather: a", "alerts: b", "traffic: c", "gauges: d"]
        assert all(o.status is OutcomeStatus.FAILED for o in result.outcomes.values())

    def test_one_failure_is_isolated(self):
        units = four_units(succeeds(1), always_fails("HTTP 500"), succeeds(2), succeeds(3))
        result = run(CollectionOrchestrator(FAST).run_all(units))

        assert result["weather"] == 1
        assert result["alerts"] is None
        assert result["traffic"] == 2
        assert result["gauges"] == 3
        assert result.errors == ["alerts: HTTP 500"]
        assert result.succeeded == ["weather", "traffic", "gauges"]

    def test_escaped_failure_recorded(self):
        units = four_units(succeeds(1), succeeds(2), None, succeeds(4))
        result = run(CollectionOrchestrator(FAST).run_all(units))

        assert result["traffic"] is None
        assert result.values["weather"] == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("traffic: ")
        assert "not callable" in result.errors[0]
        assert result.outcomes["traffic"].attempts == 0

    def test_executor_defect_caught_by_guard(self):
        class BrokenExecutor(RetryExecutor):
            async def execute(self, operation, name, policy=None, cancel=None):
                if name == "gauges":
                    raise RuntimeError("executor blew up")
                return await super().execute(operation, name, policy, cancel)

        units = four_units(succeeds(1), succeeds(2), succeeds(3), succeeds(4))
        result = run(CollectionOrchestrator(FAST, executor=BrokenExecutor()).run_all(units))

        assert result.values == {"weather": 1, "alerts": 2, "traffic": 3, "gauges": None}
        assert result.errors == ["gauges: executor blew up"]

    def test_sources_run_concurrently(self):
        # Each failing source spends 0.2 + 0.4 = 0.6s in backoff
        policy = RetryPolicy(max_retries=3, base_delay=0.2)
        units = four_units(always_fails(), always_fails(), always_fails(), succeeds(9))

        start = time.monotonic()
        result = run(CollectionOrchestrator(policy).run_all(units))
        elapsed = time.monotonic() - start

        assert result["gauges"] == 9
        assert 0.55 <= elapsed < 1.5

    def test_slow_failure_does_not_delay_success(self):
        policy = RetryPolicy(max_retries=3, base_delay=0.2)
        fast = succeeds(1)
        slow = always_fails()

        start = time.monotonic()
        run(CollectionOrchestrator(policy).run_all([
            CollectorUnit("weather", slow),
            CollectorUnit("alerts", fast),
        ]))

        assert fast.calls[0] - start < 0.1
        assert len(slow.calls) == 3

    def test_deadline_cancels_pending_backoff(self):
        policy = RetryPolicy(max_retries=3, base_delay=10)
        units = four_units(succeeds(1), always_fails(), succeeds(3), succeeds(4))

        start = time.monotonic()
        result = run(CollectionOrchestrator(policy).run_all(units, deadline=0.05))

        assert time.monotonic() - start < 2.0
        assert result.outcomes["alerts"].status is OutcomeStatus.CANCELLED
        assert result["alerts"] is None
        assert result["weather"] == 1
        assert result.errors == ["alerts: cancelled"]

    def test_duplicate_names_rejected(self):
        units = [CollectorUnit("weather", succeeds(1)), CollectorUnit("weather", succeeds(2))]
        with pytest.raises(ValueError, match="Duplicate"):
            run(CollectionOrchestrator(FAST).run_all(units))

    def test_empty_unit_list(self):
        result = run(CollectionOrchestrator(FAST).run_all([]))
        assert result.outcomes == {}
        assert result.errors == []

    def test_repeat_runs_match_except_timestamp(self):
        def units():
            return four_units(succeeds(1), always_fails("x"), FlakyOperation(1, value=3), succeeds(0))

        first = collect(units(), policy=FAST)
        second = collect(units(), policy=FAST)

        a, b = first.to_dict(), second.to_dict()
        a.pop("timestamp")
        b.pop("timestamp")
        assert a == b

    def test_collect_uses_default_policy(self):
        result = collect([CollectorUnit("weather", succeeds(5))])
        assert isinstance(result, CollectionResult)
        assert result["weather"] == 5


# ──────────────────────────────────────────────
# CollectionResult
# ──────────────────────────────────────────────

class TestCollectionResult:
    def test_to_dict_shape(self):
        result = CollectionResult()
        result.outcomes["weather"] = Outcome.ok(4, attempts=2)
        result.outcomes["alerts"] = Outcome.failed("down", attempts=3)
        result.errors.append("alerts: down")

        d = result.to_dict()
        assert d["weather"] == 4
        assert d["alerts"] is None
        assert d["errors"] == ["alerts: down"]
        assert d["timestamp"] == result.timestamp.isoformat()
        assert d["outcomes"]["alerts"] == {
            "status": "failed", "value": None, "error": "down", "attempts": 3,
        }
