"""Convergence poller: retry a query until its result passes validation.

The chain is consistent as soon as a block is finalized, the query node
catches up asynchronously.  :func:`try_query_with_timeout` bridges the two
by re-running a query at a fixed interval until the caller's assertions
hold or a hard timeout expires.

A failing assertion and an unreachable query node are handled the same way,
the caller cannot tell "not indexed yet" from a transient outage.  Every call
keeps its own state, so any number of polls may run concurrently.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from query_node_harness import config
from query_node_harness.errors import QueryNodeError

R = TypeVar("R")

logger = logging.getLogger("query_node_harness.query_node_api.try")


async def try_query_with_timeout(
    query: Callable[[], Union[Awaitable[R], R]],
    assert_valid: Callable[[R], Any],
    timeout_ms: Optional[int] = None,
    retry_ms: Optional[int] = None,
    *,
    label: Optional[str] = None,
    log: Optional[logging.Logger] = None,
) -> R:
    """Poll ``query`` until ``assert_valid`` accepts its result.

    Parameters
    ----------
    query:
        Zero-argument callable returning the result (or an awaitable of it).
    assert_valid:
        Raises when the result does not match expectations yet.
    timeout_ms:
        Hard ceiling for the whole call, measured from the first attempt.
        Defaults to ``QUERY_NODE_TIMEOUT_MS``.
    retry_ms:
        Fixed delay between attempts. Defaults to ``QUERY_NODE_RETRY_MS``.
    label:
        Name used for the per-call loggers, e.g. ``"get_opening_by_id(storageWorkingGroup-1)"``.
    log:
        Parent logger; ``retry`` and ``failed`` children are derived from it.

    Returns
    -------
    The first query result accepted by ``assert_valid``.

    Raises
    ------
    Exception
        The most recently observed error (assertion or transport) once the
        timeout expires, or :class:`QueryNodeError` if no attempt finished
        before that.
    """
    timeout_ms = config.QUERY_NODE_TIMEOUT_MS if timeout_ms is None else timeout_ms
    retry_ms = config.QUERY_NODE_RETRY_MS if retry_ms is None else retry_ms
    base = (log or logger).getChild(label or getattr(query, "__name__", "query"))
    retry_log = base.getChild("retry")
    fail_log = base.getChild("failed")
    last_error: Optional[BaseException] = None

    async def _attempts() -> R:
        nonlocal last_error
        while True:
            try:
                result = query()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:  # noqa: BLE001
                retry_log.debug("Query node unreachable (%s), retrying query in %dms...", exc, retry_ms)
                last_error = exc
            else:
                try:
                    assert_valid(result)
                    return result
                except Exception as exc:  # noqa: BLE001
                    retry_log.debug("Unexpected query result (%s), retrying query in %dms...", exc, retry_ms)
                    last_error = exc
            await asyncio.sleep(retry_ms / 1000)

    try:
        return await asyncio.wait_for(_attempts(), timeout_ms / 1000)
    except asyncio.TimeoutError:
        fail_log.warning("Query node query is still failing after timeout was reached (%dms)!", timeout_ms)
        if last_error is None:
            raise QueryNodeError(f"Query did not complete within {timeout_ms}ms") from None
        raise last_error
