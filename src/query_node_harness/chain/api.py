"""Chain action executor built on ``substrate-interface``.

Fixtures treat this class as an opaque collaborator: they compose a call,
hand it to :meth:`ChainApi.sign_and_send` and read back the decoded
:class:`~query_node_harness.chain.events.EventDetails`.  Fee estimation and
treasury top-ups are offered as black-box pre-submission steps.

``SubstrateInterface`` is blocking and its websocket is not safe to share
between threads, so reads go through one shared connection guarded by a
lock while every submission opens its own connection.  All public methods
are coroutines that push the blocking work to a worker thread.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from query_node_harness.chain.events import (
    AppliedOnOpeningEventDetails,
    ChainEvent,
    EventDetails,
    MemberContext,
    MembershipBoughtEventDetails,
    OpeningAddedEventDetails,
    OpeningFilledEventDetails,
    TransactionResult,
)
from query_node_harness.chain.groups import WorkingGroup
from query_node_harness.chain.keyring import Keyring
from query_node_harness.errors import ChainSubmissionError

logger = logging.getLogger(__name__)


def member_handle(prefix: str, account: str) -> str:
    return f"{prefix}_{account[:8].lower()}"


def connect(node_url: str):
    """Return a ``SubstrateInterface`` connection to ``node_url``."""
    from substrateinterface import SubstrateInterface  # local import for testability

    return SubstrateInterface(url=node_url)


# ────────────────────────────────────────────────────────────────────────────
# Decoding helpers
# ────────────────────────────────────────────────────────────────────────────
def _value(obj: Any) -> Any:
    """Unwrap scale-codec objects (``.value``) into plain Python values."""
    return getattr(obj, "value", obj)


def _param(params: Any, idx: int) -> Any:
    """Positional event parameter; named parameters are taken in order."""
    if isinstance(params, dict):
        params = list(params.values())
    if not isinstance(params, (list, tuple)) or len(params) <= idx:
        raise ChainSubmissionError(f"Event parameter #{idx} missing in {params!r}")
    return _value(params[idx])


def _pairs(mapping: Any) -> Iterable[tuple]:
    """Yield ``(key, value)`` from a BTreeMap decoded as dict or list of pairs."""
    if isinstance(mapping, dict):
        return mapping.items()
    return [(k, v) for k, v in mapping]


def decode_block_events(records: Iterable[Any]) -> List[ChainEvent]:
    """Decode ``System.Events`` records; list position is the index in block."""
    events: List[ChainEvent] = []
    for idx, record in enumerate(records):
        rec = _value(record) or {}
        ev = rec.get("event") or rec
        events.append(
            ChainEvent(
                index_in_block=idx,
                pallet=ev.get("module_id", ""),
                name=ev.get("event_id", ""),
                params=ev.get("attributes"),
                extrinsic_index=rec.get("extrinsic_idx"),
            )
        )
    return events


class ChainApi:
    """Submit signed extrinsics and read runtime state."""

    def __init__(
        self,
        node_url: str,
        keyring: Keyring,
        treasury_account: str,
        *,
        substrate: Any = None,
        connect_fn: Callable[[str], Any] = connect,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.node_url = node_url
        self.keyring = keyring
        self.treasury_account = treasury_account
        self._connect = connect_fn
        self._substrate = substrate if substrate is not None else connect_fn(node_url)
        self._read_lock = threading.Lock()
        self._sender_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.log = log or logger
        self._tx_logs = False
        # keeps derived accounts (and member handles) unique across runs
        self._key_seed = uuid.uuid4().hex[:8]

    @classmethod
    def connect(cls, node_url: str, treasury_uri: str = "//Alice", sudo_uri: str = "//Alice", **kwargs) -> "ChainApi":
        keyring = Keyring()
        treasury = keyring.add_from_uri(treasury_uri)
        keyring.add_from_uri(sudo_uri)
        return cls(node_url, keyring, treasury, **kwargs)

    def enable_debug_tx_logs(self) -> None:
        self._tx_logs = True

    # ------------------------------------------------------------------
    # Blocking primitives (run in worker threads)
    # ------------------------------------------------------------------
    def _read(self, fn: Callable[[Any], Any]) -> Any:
        with self._read_lock:
            return fn(self._substrate)

    def _query(self, module: str, storage_function: str, params: Optional[list] = None, block_hash: Optional[str] = None) -> Any:
        return self._read(
            lambda s: _value(
                s.query(module=module, storage_function=storage_function, params=params or [], block_hash=block_hash)
            )
        )

    def _submit(self, call: Any, account: str) -> TransactionResult:
        keypair = self.keyring.get_pair(account)
        substrate = self._connect(self.node_url)
        try:
            extrinsic = substrate.create_signed_extrinsic(call=call, keypair=keypair)
            receipt = substrate.submit_extrinsic(extrinsic, wait_for_inclusion=True, wait_for_finalization=True)
            if not getattr(receipt, "is_success", False):
                raise ChainSubmissionError(
                    f"Extrinsic {getattr(receipt, 'extrinsic_hash', '?')} failed: {getattr(receipt, 'error_message', None)}"
                )
            block_hash = receipt.block_hash
            block_number = substrate.get_block_number(block_hash)
            block_timestamp = _value(
                substrate.query(module="Timestamp", storage_function="Now", block_hash=block_hash)
            )
            events = decode_block_events(substrate.get_events(block_hash=block_hash))
        finally:
            close = getattr(substrate, "close", None)
            if close is not None:
                close()
        extrinsic_index = receipt.extrinsic_idx
        return TransactionResult(
            tx_hash=receipt.extrinsic_hash,
            block_hash=block_hash,
            block_number=int(block_number),
            block_timestamp=int(block_timestamp),
            extrinsic_index=int(extrinsic_index),
            events=[e for e in events if e.extrinsic_index == extrinsic_index],
        )

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------
    async def compose(self, module: str, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Compose a call; may fetch runtime metadata, so it runs off the loop."""
        return await asyncio.to_thread(
            self._read,
            lambda s: s.compose_call(call_module=module, call_function=function, call_params=params or {}),
        )

    async def compose_group(
        self, group: WorkingGroup, function: str, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Compose a call on the pallet bound to ``group``."""
        return await self.compose(group.pallet, function, params)

    async def compose_sudo(self, call: Any) -> Any:
        return await self.compose("Sudo", "sudo", {"call": call})

    async def estimate_tx_fee(self, call: Any, account: str) -> int:
        keypair = self.keyring.get_pair(account)
        info = await asyncio.to_thread(self._read, lambda s: s.get_payment_info(call=call, keypair=keypair))
        return int(info["partialFee"])

    async def sign_and_send(self, call: Any, account: str) -> TransactionResult:
        """Sign ``call`` with ``account`` and wait until it is finalized."""
        async with self._sender_locks[account]:
            result = await asyncio.to_thread(self._submit, call, account)
        if self._tx_logs:
            self.log.debug(
                "Extrinsic %s finalized in block #%d (%s)", result.tx_hash, result.block_number, result.block_hash
            )
        return result

    async def treasury_transfer_balance(self, account: str, amount: int) -> TransactionResult:
        call = await self.compose("Balances", "transfer", {"dest": account, "value": int(amount)})
        return await self.sign_and_send(call, self.treasury_account)

    async def send_with_fee(self, call: Any, account: str) -> TransactionResult:
        """Top up ``account`` with the estimated fee, then submit ``call``."""
        fee = await self.estimate_tx_fee(call, account)
        await self.treasury_transfer_balance(account, fee)
        return await self.sign_and_send(call, account)

    # ------------------------------------------------------------------
    # Event extraction
    # ------------------------------------------------------------------
    def retrieve_event_details(self, result: TransactionResult, pallet: str, event_name: str) -> EventDetails:
        ev = result.find_event(pallet, event_name)
        if ev is None:
            raise ChainSubmissionError(f"{pallet}.{event_name} event not found in extrinsic {result.tx_hash}")
        return EventDetails(
            block_number=result.block_number,
            index_in_block=ev.index_in_block,
            block_timestamp=result.block_timestamp,
            block_hash=result.block_hash,
            in_extrinsic=result.tx_hash,
            event_type=event_name,
            params=ev.params,
        )

    def retrieve_working_groups_event_details(
        self, result: TransactionResult, group: WorkingGroup, event_name: str
    ) -> EventDetails:
        return self.retrieve_event_details(result, group.pallet, event_name)

    def retrieve_opening_added_event_details(
        self, result: TransactionResult, group: WorkingGroup
    ) -> OpeningAddedEventDetails:
        details = self.retrieve_working_groups_event_details(result, group, "OpeningAdded")
        return OpeningAddedEventDetails(**vars(details), opening_id=int(_param(details.params, 0)))

    def retrieve_applied_on_opening_event_details(
        self, result: TransactionResult, group: WorkingGroup
    ) -> AppliedOnOpeningEventDetails:
        details = self.retrieve_working_groups_event_details(result, group, "AppliedOnOpening")
        apply_params = _param(details.params, 0) or {}
        stake = (apply_params.get("stake_parameters") or {}).get("stake", 0)
        return AppliedOnOpeningEventDetails(
            **vars(details),
            application_id=int(_param(details.params, 1)),
            stake=int(stake),
        )

    def retrieve_opening_filled_event_details(
        self, result: TransactionResult, group: WorkingGroup
    ) -> OpeningFilledEventDetails:
        details = self.retrieve_working_groups_event_details(result, group, "OpeningFilled")
        mapping = {int(_value(k)): int(_value(v)) for k, v in _pairs(_param(details.params, 1))}
        return OpeningFilledEventDetails(**vars(details), application_id_to_worker_id=mapping)

    def retrieve_membership_event_details(self, result: TransactionResult, event_name: str) -> EventDetails:
        return self.retrieve_event_details(result, "Members", event_name)

    # ------------------------------------------------------------------
    # Runtime state
    # ------------------------------------------------------------------
    async def sudo_key(self) -> str:
        return str(await asyncio.to_thread(self._query, "Sudo", "Key"))

    async def get_current_lead(self, group: WorkingGroup) -> Optional[int]:
        lead_id = await asyncio.to_thread(self._query, group.pallet, "CurrentLead")
        return None if lead_id is None else int(lead_id)

    async def get_lead_role_key(self, group: WorkingGroup) -> str:
        lead_id = await self.get_current_lead(group)
        if lead_id is None:
            raise ChainSubmissionError(f"{group.value} has no lead")
        worker = await asyncio.to_thread(self._query, group.pallet, "WorkerById", [lead_id])
        return str(worker["role_account_id"])

    async def get_opening(self, group: WorkingGroup, opening_id: int) -> Dict[str, Any]:
        return await asyncio.to_thread(self._query, group.pallet, "OpeningById", [opening_id])

    async def get_application(self, group: WorkingGroup, application_id: int) -> Dict[str, Any]:
        return await asyncio.to_thread(self._query, group.pallet, "ApplicationById", [application_id])

    async def get_balance(self, account: str) -> int:
        info = await asyncio.to_thread(self._query, "System", "Account", [account])
        return int(info["data"]["free"])

    async def get_staked_balance(self, account: str, lock_id: str) -> int:
        locks = await asyncio.to_thread(self._query, "Balances", "Locks", [account]) or []
        return sum(int(lock["amount"]) for lock in locks if str(lock["id"]) == lock_id)

    async def get_membership_price(self) -> int:
        return int(await asyncio.to_thread(self._query, "Members", "MembershipPrice"))

    # ------------------------------------------------------------------
    # Members (setup helpers used by flows)
    # ------------------------------------------------------------------
    def create_keys(self, n: int, prefix: str = "member") -> List[str]:
        start = len(self.keyring)
        return [self.keyring.add_from_uri(f"//{prefix}//{self._key_seed}//{start + i}") for i in range(n)]

    async def buy_membership(self, account: str, handle: str) -> MembershipBoughtEventDetails:
        call = await self.compose(
            "Members",
            "buy_membership",
            {
                "params": {
                    "root_account": account,
                    "controller_account": account,
                    "handle": handle,
                    "metadata": "0x",
                    "referrer_id": None,
                }
            },
        )
        fee = await self.estimate_tx_fee(call, account)
        price = await self.get_membership_price()
        await self.treasury_transfer_balance(account, fee + price)
        result = await self.sign_and_send(call, account)
        details = self.retrieve_membership_event_details(result, "MembershipBought")
        return MembershipBoughtEventDetails(**vars(details), member_id=int(_param(details.params, 0)))

    async def create_members(self, n: int, prefix: str = "member") -> List[MemberContext]:
        """Create ``n`` fresh accounts and buy a membership for each."""
        accounts = self.create_keys(n, prefix)
        bought = await asyncio.gather(
            *(self.buy_membership(account, member_handle(prefix, account)) for account in accounts)
        )
        return [MemberContext(account=account, member_id=ev.member_id) for account, ev in zip(accounts, bought)]

    async def add_staking_account(self, member_id: int, member_account: str, staking_account: str, stake: int) -> None:
        """Bind ``staking_account`` to the member and fund it with ``stake``."""
        candidate = await self.compose("Members", "add_staking_account_candidate", {"member_id": member_id})
        await self.treasury_transfer_balance(staking_account, stake)
        await self.send_with_fee(candidate, staking_account)
        confirm = await self.compose(
            "Members", "confirm_staking_account", {"member_id": member_id, "staking_account_id": staking_account}
        )
        await self.send_with_fee(confirm, member_account)
