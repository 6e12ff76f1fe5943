"""
base.py
-------
Two-phase fixture contract.

``execute()`` performs the chain side of a test step exactly once and returns
an immutable result.  ``run_query_node_checks(result)`` takes that result and
verifies the query node projected it.  The result is passed explicitly, so a
check can never observe a half-initialised fixture.
"""

from __future__ import annotations
import logging
from typing import Any, Generic, Optional, TypeVar

from query_node_harness.errors import FixtureStateError

R = TypeVar("R")

_fixture_logger = logging.getLogger("query_node_harness.fixture")


def fixture_logger(name: str, qualifier: Any = None) -> logging.Logger:
    """``query_node_harness.fixture.<name>[.<qualifier>]``"""
    suffix = name if qualifier is None else f"{name}.{qualifier}"
    return _fixture_logger.getChild(suffix)


class BaseFixture(Generic[R]):
    """Subclasses implement :meth:`_execute` and extend :meth:`run_query_node_checks`."""

    def __init__(self, api, query=None, log: Optional[logging.Logger] = None) -> None:
        self.api = api
        self.query = query
        self.log = log or fixture_logger(type(self).__name__)
        self._executed = False
        self._result: Optional[R] = None

    async def _execute(self) -> R:
        raise NotImplementedError

    async def execute(self) -> R:
        if self._executed:
            raise FixtureStateError(f"{type(self).__name__} was already executed")
        self._executed = True
        self._result = await self._execute()
        return self._result

    async def run_query_node_checks(self, result: R) -> Optional[R]:
        """Verify ``result`` against the query node.

        Overrides call ``await super().run_query_node_checks(result)`` first.
        An override may return an enriched copy of ``result`` carrying values
        only the query node knows (e.g. generated entity ids).
        """
        if self._result is None:
            raise FixtureStateError(f"{type(self).__name__}: query node checks requested before execute()")
        if result is not self._result:
            raise FixtureStateError(f"{type(self).__name__}: result was not produced by this fixture")
        return None


class FixtureRunner(Generic[R]):
    def __init__(self, fixture: BaseFixture[R]) -> None:
        self.fixture = fixture

    async def run(self) -> R:
        return await self.fixture.execute()

    async def run_with_query_node_checks(self) -> R:
        result = await self.fixture.execute()
        checked = await self.fixture.run_query_node_checks(result)
        return result if checked is None else checked
