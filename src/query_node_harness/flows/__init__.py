"""
Flows: ordered sequences of fixtures.

A flow is ``async def flow(props: FlowProps) -> None``.  Flows never retry;
the first fixture error aborts the flow and is reported by the scenario
runner.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping

from query_node_harness.chain.groups import WORKING_GROUPS, WorkingGroup

_flow_logger = logging.getLogger("query_node_harness.flow")


@dataclass(frozen=True)
class FlowProps:
    api: Any
    query: Any
    env: Mapping[str, str] = field(default_factory=dict)


def flow_logger(name: str, qualifier: Any = None) -> logging.Logger:
    return _flow_logger.getChild(name if qualifier is None else f"{name}.{qualifier}")


def groups_from_env(env: Mapping[str, str]) -> List[WorkingGroup]:
    """Groups named in ``WORKING_GROUPS`` (comma separated), all groups if unset."""
    names = [n.strip() for n in env.get("WORKING_GROUPS", "").split(",") if n.strip()]
    return [WorkingGroup(n) for n in names] if names else list(WORKING_GROUPS)


async def for_each_group(props: FlowProps, run: Callable[[WorkingGroup], Awaitable[None]]) -> None:
    """Run ``run`` for every selected group concurrently."""
    await asyncio.gather(*(run(group) for group in groups_from_env(props.env)))
