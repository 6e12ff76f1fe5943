"""
membership.py
-------------
Membership purchases and membership system parameters.

Bought memberships must show up as members and ``MembershipBought`` events.
System parameters are updated through sudo: each changed parameter is one
``Members`` root call emitting its own update event.  The query node records
every change in a membership system snapshot, so after the events converge
the latest snapshot must combine the new values with the untouched ones from
the snapshot before the first change.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from query_node_harness.chain.api import member_handle
from query_node_harness.chain.events import EventDetails, MemberContext, MembershipBoughtEventDetails
from query_node_harness.fixtures.base import BaseFixture
from query_node_harness.utils.validators import assert_equal, assert_event_matches, require


@dataclass(frozen=True)
class SystemParam:
    call: str
    argument: str
    event: str
    query_method: str
    event_field: str
    snapshot_field: str


# Submission order is fixed
SYSTEM_PARAMS: Dict[str, SystemParam] = {
    "referral_cut": SystemParam(
        "set_referral_cut", "percent_value", "ReferralCutUpdated",
        "get_referral_cut_updated_event", "newValue", "referralCut",
    ),
    "membership_price": SystemParam(
        "set_membership_price", "new_price", "MembershipPriceUpdated",
        "get_membership_price_updated_event", "newPrice", "membershipPrice",
    ),
    "invited_initial_balance": SystemParam(
        "set_initial_invitation_balance", "new_initial_balance", "InitialInvitationBalanceUpdated",
        "get_initial_invitation_balance_updated_event", "newInitialBalance", "invitedInitialBalance",
    ),
    "default_invite_count": SystemParam(
        "set_initial_invitation_count", "new_invitation_count", "InitialInvitationCountUpdated",
        "get_initial_invitation_count_updated_event", "newInitialInvitationCount", "defaultInviteCount",
    ),
}


@dataclass(frozen=True)
class ParamUpdate:
    name: str
    value: int
    tx_hash: str
    event: EventDetails


@dataclass(frozen=True)
class MembershipSystemUpdateResult:
    updates: Tuple[ParamUpdate, ...]


def _as_text(actual: Any, expected: Any) -> Tuple[Optional[str], Optional[str]]:
    # BigInt fields come back as strings, Int fields as numbers
    return (None if actual is None else str(actual)), (None if expected is None else str(expected))


class SudoUpdateMembershipSystemFixture(BaseFixture):
    def __init__(self, api, query, changes: Mapping[str, int]) -> None:
        super().__init__(api, query)
        unknown = set(changes) - set(SYSTEM_PARAMS)
        if unknown:
            raise ValueError(f"Unknown membership system parameters: {sorted(unknown)}")
        if not changes:
            raise ValueError("At least one membership system parameter must change")
        self.changes = {name: int(changes[name]) for name in SYSTEM_PARAMS if name in changes}

    async def _execute(self) -> MembershipSystemUpdateResult:
        sudo = await self.api.sudo_key()
        updates = []
        for name, value in self.changes.items():
            param = SYSTEM_PARAMS[name]
            inner = await self.api.compose("Members", param.call, {param.argument: value})
            call = await self.api.compose_sudo(inner)
            tx = await self.api.sign_and_send(call, sudo)
            event = self.api.retrieve_membership_event_details(tx, param.event)
            self.log.debug("%s set to %s in block #%d", name, value, event.block_number)
            updates.append(ParamUpdate(name=name, value=value, tx_hash=tx.tx_hash, event=event))
        return MembershipSystemUpdateResult(updates=tuple(updates))

    def _assert_event(self, update: ParamUpdate, q_event: Optional[dict]) -> None:
        param = SYSTEM_PARAMS[update.name]
        assert_event_matches(q_event, update.event, update.tx_hash, param.event)
        actual, expected = _as_text(q_event[param.event_field], update.value)
        assert_equal(actual, expected, f"{param.event} {param.event_field}")

    def _poll_event(self, update: ParamUpdate):
        method = getattr(self.query, SYSTEM_PARAMS[update.name].query_method)
        return self.query.try_query_with_timeout(
            lambda: method(update.event.block_number, update.event.index_in_block),
            lambda q: self._assert_event(update, q),
            label=SYSTEM_PARAMS[update.name].query_method,
        )

    async def run_query_node_checks(self, result: MembershipSystemUpdateResult) -> None:
        await super().run_query_node_checks(result)
        await asyncio.gather(*(self._poll_event(u) for u in result.updates))

        first, last = result.updates[0].event, result.updates[-1].event
        before = await self.query.get_membership_system_snapshot(first.block_timestamp, "lt")
        after = require(
            await self.query.get_membership_system_snapshot(last.block_timestamp, "eq"),
            "MembershipSystemSnapshot",
        )
        assert_equal(after["snapshotBlock"]["number"], last.block_number, "MembershipSystemSnapshot snapshotBlock")
        for name, param in SYSTEM_PARAMS.items():
            if name in self.changes:
                expected = self.changes[name]
            elif before is not None:
                expected = before.get(param.snapshot_field)
            else:
                # no earlier snapshot to carry the value over from
                continue
            actual, expected = _as_text(after.get(param.snapshot_field), expected)
            assert_equal(actual, expected, f"MembershipSystemSnapshot {param.snapshot_field}")


# ────────────────────────────────────────────────────────────────────────────
# Membership purchase
# ────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class BuyMembershipResult:
    members: Tuple[MemberContext, ...]
    events: Tuple[MembershipBoughtEventDetails, ...]


class BuyMembershipFixture(BaseFixture):
    """Buy a membership for each account, used as both root and controller."""

    def __init__(self, api, query, accounts: Sequence[str], handle_prefix: str = "member") -> None:
        super().__init__(api, query)
        if not accounts:
            raise ValueError("At least one account must buy a membership")
        self.accounts = list(accounts)
        self.handles = [member_handle(handle_prefix, a) for a in self.accounts]

    async def _execute(self) -> BuyMembershipResult:
        events = await asyncio.gather(
            *(self.api.buy_membership(a, h) for a, h in zip(self.accounts, self.handles))
        )
        members = tuple(MemberContext(account=a, member_id=e.member_id) for a, e in zip(self.accounts, events))
        self.log.debug("Memberships bought: %s", [m.member_id for m in members])
        return BuyMembershipResult(members=members, events=tuple(events))

    def _assert_member(
        self, member: MemberContext, event: MembershipBoughtEventDetails, handle: str, q_member: Optional[dict]
    ) -> None:
        label = f"Member {member.member_id}"
        require(q_member, label)
        assert_equal(q_member["id"], str(member.member_id), f"{label} id")
        assert_equal(q_member["handle"], handle, f"{label} handle")
        assert_equal(q_member["rootAccount"], member.account, f"{label} rootAccount")
        assert_equal(q_member["controllerAccount"], member.account, f"{label} controllerAccount")
        assert_equal(q_member["registeredAtBlock"]["number"], event.block_number, f"{label} registeredAtBlock")
        assert_equal(q_member["isVerified"], False, f"{label} isVerified")

    async def _check_member(self, member: MemberContext, event: MembershipBoughtEventDetails, handle: str) -> None:
        await self.query.try_query_with_timeout(
            lambda: self.query.get_member_by_id(member.member_id),
            lambda q: self._assert_member(member, event, handle, q),
            label="get_member_by_id",
        )
        q_events = await self.query.get_membership_bought_events(member.member_id)
        assert_equal(len(q_events), 1, f"MembershipBought events of member {member.member_id}")
        q_event = q_events[0]
        assert_event_matches(q_event, event, event.in_extrinsic, "MembershipBought")
        assert_equal(q_event["newMember"]["id"], str(member.member_id), "MembershipBought event newMember")
        assert_equal(q_event["rootAccount"], member.account, "MembershipBought event rootAccount")
        assert_equal(q_event["controllerAccount"], member.account, "MembershipBought event controllerAccount")
        assert_equal(q_event["handle"], handle, "MembershipBought event handle")

    async def run_query_node_checks(self, result: BuyMembershipResult) -> None:
        await super().run_query_node_checks(result)
        await asyncio.gather(
            *(self._check_member(m, e, h) for m, e, h in zip(result.members, result.events, self.handles))
        )
