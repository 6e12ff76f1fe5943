"""Event details extracted from finalized transactions.

An :class:`EventDetails` is produced right after a transaction is finalized
and never changes afterwards.  Fixtures use it both as the lookup key for
the query node (``"<blockNumber>-<indexInBlock>"``) and as the oracle the
projected records are compared against.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from query_node_harness.utils.helpers import event_id


@dataclass(frozen=True)
class ChainEvent:
    """A decoded event record of a block."""

    index_in_block: int
    pallet: str
    name: str
    params: Any = None
    extrinsic_index: Optional[int] = None


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of a finalized extrinsic."""

    tx_hash: str
    block_hash: str
    block_number: int
    block_timestamp: int
    extrinsic_index: int
    events: List[ChainEvent] = field(default_factory=list)

    def find_event(self, pallet: str, name: str) -> Optional[ChainEvent]:
        for ev in self.events:
            if ev.pallet == pallet and ev.name == name:
                return ev
        return None


@dataclass(frozen=True)
class EventDetails:
    block_number: int
    index_in_block: int
    block_timestamp: int
    block_hash: str
    in_extrinsic: str
    event_type: str
    params: Any = None

    @property
    def event_id(self) -> str:
        return event_id(self.block_number, self.index_in_block)


@dataclass(frozen=True)
class OpeningAddedEventDetails(EventDetails):
    opening_id: int = 0


@dataclass(frozen=True)
class AppliedOnOpeningEventDetails(EventDetails):
    application_id: int = 0
    stake: int = 0


@dataclass(frozen=True)
class OpeningFilledEventDetails(EventDetails):
    application_id_to_worker_id: Dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MembershipBoughtEventDetails(EventDetails):
    member_id: int = 0


@dataclass(frozen=True)
class MemberContext:
    """A bought membership and the account controlling it."""

    account: str
    member_id: int
