"""Tests for the convergence poller."""
import asyncio
import logging
import time

import pytest

from query_node_harness.errors import EntityNotFoundError, QueryNodeError
from query_node_harness.query.polling import try_query_with_timeout


def _counter_query(results):
    calls = {"n": 0}

    async def query():
        calls["n"] += 1
        value = results[min(calls["n"], len(results)) - 1]
        if isinstance(value, Exception):
            raise value
        return value

    return query, calls


def _expect(value):
    def assert_valid(result):
        if result != value:
            raise EntityNotFoundError(f"Query node: {value} not found (got {result})")

    return assert_valid


def test_returns_first_matching_result():
    query, calls = _counter_query([None, None, "ok"])
    result = asyncio.run(try_query_with_timeout(query, _expect("ok"), timeout_ms=1000, retry_ms=5))
    assert result == "ok"
    assert calls["n"] == 3


def test_accepts_sync_query_callable():
    result = asyncio.run(try_query_with_timeout(lambda: 42, lambda r: None, timeout_ms=100, retry_ms=5))
    assert result == 42


def test_timeout_raises_last_assertion_error():
    seen = []

    def assert_valid(result):
        err = EntityNotFoundError(f"attempt {len(seen)}")
        seen.append(err)
        raise err

    start = time.perf_counter()
    with pytest.raises(EntityNotFoundError) as excinfo:
        asyncio.run(try_query_with_timeout(lambda: None, assert_valid, timeout_ms=100, retry_ms=20))
    elapsed_ms = (time.perf_counter() - start) * 1000
    assert excinfo.value is seen[-1]
    assert elapsed_ms >= 100
    assert elapsed_ms < 100 + 20 + 200  # scheduling slack


def test_transport_failures_are_retried_like_assertions():
    query, calls = _counter_query([QueryNodeError("down"), QueryNodeError("down"), "ok"])
    assert asyncio.run(try_query_with_timeout(query, _expect("ok"), timeout_ms=1000, retry_ms=5)) == "ok"
    assert calls["n"] == 3


def test_always_failing_transport_surfaces_transport_error():
    query, _ = _counter_query([QueryNodeError("connection refused")])
    with pytest.raises(QueryNodeError, match="connection refused"):
        asyncio.run(try_query_with_timeout(query, _expect("ok"), timeout_ms=50, retry_ms=5))


def test_any_exception_in_assertion_is_retried():
    query, calls = _counter_query([{"a": 1}, {"a": 1, "b": 2}])

    def assert_valid(result):
        # KeyError on the incomplete projection, not an assertion
        assert result["b"] == 2

    assert asyncio.run(try_query_with_timeout(query, assert_valid, timeout_ms=1000, retry_ms=5)) == {"a": 1, "b": 2}
    assert calls["n"] == 2


def test_timeout_before_first_attempt_completes():
    async def slow_query():
        await asyncio.sleep(1)

    with pytest.raises(QueryNodeError, match="did not complete"):
        asyncio.run(try_query_with_timeout(slow_query, lambda r: None, timeout_ms=20, retry_ms=5))


def test_concurrent_polls_are_independent():
    async def run():
        fast_query, fast_calls = _counter_query([None, None, "fast"])
        slow_query, slow_calls = _counter_query([None, None, "slow"])
        start = time.perf_counter()

        async def timed(coro):
            result = await coro
            return result, time.perf_counter() - start

        fast, slow = await asyncio.gather(
            timed(try_query_with_timeout(fast_query, _expect("fast"), timeout_ms=1000, retry_ms=5)),
            timed(try_query_with_timeout(slow_query, _expect("slow"), timeout_ms=2000, retry_ms=100)),
        )
        return fast, slow, fast_calls["n"], slow_calls["n"]

    (fast, fast_t), (slow, slow_t), fast_n, slow_n = asyncio.run(run())
    assert (fast, slow) == ("fast", "slow")
    assert fast_n == slow_n == 3
    assert fast_t < 0.1
    assert slow_t >= 0.2


def test_logs_retries_and_failure(caplog):
    caplog.set_level(logging.DEBUG, logger="query_node_harness")
    with pytest.raises(EntityNotFoundError):
        asyncio.run(
            try_query_with_timeout(
                lambda: None, _expect("ok"), timeout_ms=30, retry_ms=5, label="get_opening_by_id"
            )
        )
    names = {r.name for r in caplog.records}
    assert "query_node_harness.query_node_api.try.get_opening_by_id.retry" in names
    assert "query_node_harness.query_node_api.try.get_opening_by_id.failed" in names
    assert any("Unexpected query result" in r.getMessage() for r in caplog.records)
    assert any(r.levelno == logging.WARNING for r in caplog.records)
