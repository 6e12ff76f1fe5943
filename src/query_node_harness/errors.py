"""Exception types raised by the harness.

Only the convergence poller recovers from any of these; everywhere else the
first error aborts the fixture and the flow that runs it.
"""
from __future__ import annotations


class HarnessError(RuntimeError):
    """Base class for harness failures."""


class QueryNodeError(HarnessError):
    """Raised when the query node is unreachable or returns GraphQL errors."""


class EntityNotFoundError(HarnessError, AssertionError):
    """The query node has no projection for the requested entity (yet)."""


class ProjectionMismatchError(HarnessError, AssertionError):
    """A projected field differs from the value reported by the chain."""


class FixtureStateError(HarnessError):
    """A fixture was driven out of order (harness bug, never retried)."""


class ChainSubmissionError(HarnessError):
    """An extrinsic failed on chain or did not emit the expected event."""
