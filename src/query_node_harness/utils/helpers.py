"""
helpers.py
----------
Small shared utilities: composite ids and timestamp conversions.

The two id patterns below are the only ones the query node uses to
cross-reference chain-side identifiers, so they must match it exactly.
"""

from __future__ import annotations
import datetime as dt
import time
from typing import Union

from query_node_harness.chain.groups import WorkingGroup


# ────────────────────────────────────────────────────────────────────────────
# 1. Composite ids
# ────────────────────────────────────────────────────────────────────────────
def event_id(block_number: int, index_in_block: int) -> str:
    """Id of an event record, e.g. ``"100-3"``."""
    return f"{int(block_number)}-{int(index_in_block)}"


def entity_id(group: Union[WorkingGroup, str], runtime_id: int) -> str:
    """Id of a group-scoped entity, e.g. ``"storageWorkingGroup-7"``."""
    name = group.value if isinstance(group, WorkingGroup) else str(group)
    return f"{name}-{int(runtime_id)}"


# ────────────────────────────────────────────────────────────────────────────
# 2. Time helpers
# ────────────────────────────────────────────────────────────────────────────
_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def to_query_datetime(timestamp_ms: int) -> str:
    """Render ``timestamp_ms`` the way the query node expects a ``DateTime``.

    >>> to_query_datetime(0)
    '1970-01-01T00:00:00.000Z'
    """
    moment = _EPOCH + dt.timedelta(milliseconds=int(timestamp_ms))
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def from_query_datetime(value: str) -> int:
    """Parse a query node ``DateTime`` string back to milliseconds."""
    text = value.replace("Z", "+00:00")
    moment = dt.datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    return (moment - _EPOCH) // dt.timedelta(milliseconds=1)
