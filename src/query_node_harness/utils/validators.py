"""
validators.py
--------------
Assertions applied to query node projections.

All functions return the checked value on success or raise with details:
``EntityNotFoundError`` for a missing projection and
``ProjectionMismatchError`` for a field that differs.  Both are
``AssertionError`` subclasses so they read naturally in test output.
"""

from __future__ import annotations
from typing import Any, Iterable, Optional

from query_node_harness.errors import EntityNotFoundError, ProjectionMismatchError


# ────────────────────────────────────────────────────────────────────────────
def require(value: Any, label: str) -> Any:
    if value is None or value == [] or value == {}:
        raise EntityNotFoundError(f"Query node: {label} not found")
    return value


def assert_equal(actual: Any, expected: Any, label: str) -> Any:
    if actual != expected:
        raise ProjectionMismatchError(f"{label}: expected {expected!r}, got {actual!r}")
    return actual


def assert_one_of(actual: Any, options: Iterable[Any], label: str) -> Any:
    options = list(options)
    if actual not in options:
        raise ProjectionMismatchError(f"{label}: expected one of {options!r}, got {actual!r}")
    return actual


def assert_is_none(actual: Any, label: str) -> None:
    if actual is not None:
        raise ProjectionMismatchError(f"{label}: expected no entity, got {actual!r}")


def typename(obj: Optional[dict]) -> Optional[str]:
    return (obj or {}).get("__typename")


def assert_typename(obj: Optional[dict], expected: str, label: str) -> dict:
    assert_equal(typename(obj), expected, f"{label} __typename")
    return obj


# ────────────────────────────────────────────────────────────────────────────
def assert_event_matches(
    q_event: Optional[dict],
    details,
    tx_hash: str,
    event_type: str,
    group: Any = None,
    label: Optional[str] = None,
) -> dict:
    """Check the generic part of an event record against chain ``details``.

    ``details`` is an :class:`~query_node_harness.chain.events.EventDetails`;
    ``group`` (a working group) is compared with ``q_event.group.name`` when
    given.
    """
    label = label or f"{event_type} event {details.event_id}"
    require(q_event, label)
    ev = q_event["event"]
    assert_equal(ev["inExtrinsic"], tx_hash, f"{label} inExtrinsic")
    assert_equal(ev["type"], event_type, f"{label} type")
    assert_equal(ev["inBlock"]["number"], details.block_number, f"{label} inBlock.number")
    assert_equal(ev["indexInBlock"], details.index_in_block, f"{label} indexInBlock")
    if group is not None:
        name = group.value if hasattr(group, "value") else group
        assert_equal(q_event["group"]["name"], name, f"{label} group.name")
    return q_event
