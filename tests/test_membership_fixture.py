import asyncio

import pytest

from fakes import BASE_TIMESTAMP, FakeChainApi, FakeQueryNode
from query_node_harness.errors import ProjectionMismatchError
from query_node_harness.fixtures.base import FixtureRunner
from query_node_harness.fixtures.membership import (
    SYSTEM_PARAMS,
    BuyMembershipFixture,
    SudoUpdateMembershipSystemFixture,
)


def q_event(event_type, block, tx_hash, **fields):
    return {
        "id": f"{block}-3",
        "event": {"inBlock": {"number": block}, "inExtrinsic": tx_hash, "indexInBlock": 3, "type": event_type},
        **fields,
    }


def _ts(block):
    return BASE_TIMESTAMP + block * 6000


def _setup(changes, before, after, event_values=None):
    api, query = FakeChainApi(), FakeQueryNode()
    block = 100
    for name in SYSTEM_PARAMS:
        if name not in changes:
            continue
        param = SYSTEM_PARAMS[name]
        api.script("Members", param.event, [changes[name]])
        value = (event_values or {}).get(name, changes[name])
        query.respond(
            param.query_method,
            (block, 3),
            None,
            q_event(param.event, block, f"0xtx{block - 99}", **{param.event_field: value}),
        )
        block += 1
    query.respond("get_membership_system_snapshot", (_ts(100), "lt"), before)
    query.respond("get_membership_system_snapshot", (_ts(block - 1), "eq"), after)
    return api, query, SudoUpdateMembershipSystemFixture(api, query, changes)


BEFORE = {
    "snapshotBlock": {"number": 90},
    "referralCut": 0,
    "membershipPrice": "100",
    "invitedInitialBalance": "50",
    "defaultInviteCount": 5,
}


def test_full_update_in_call_order():
    changes = {"default_invite_count": 10, "referral_cut": 5, "membership_price": 200, "invited_initial_balance": 75}
    after = {
        "snapshotBlock": {"number": 103},
        "referralCut": 5,
        "membershipPrice": "200",
        "invitedInitialBalance": "75",
        "defaultInviteCount": 10,
    }
    api, query, fixture = _setup(changes, BEFORE, after)
    result = asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())

    assert [u.name for u in result.updates] == list(SYSTEM_PARAMS)
    inner_calls = [call["params"]["call"] for call, _ in api.sent]
    assert [c["function"] for c in inner_calls] == [p.call for p in SYSTEM_PARAMS.values()]
    assert inner_calls[0]["params"] == {"percent_value": 5}
    assert {account for _, account in api.sent} == {"sudo"}


def test_partial_update_keeps_untouched_values():
    after = dict(BEFORE, snapshotBlock={"number": 100}, membershipPrice="300")
    api, query, fixture = _setup({"membership_price": 300}, BEFORE, after)
    asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())
    assert len(api.sent) == 1


def test_partial_update_detects_lost_value():
    after = dict(BEFORE, snapshotBlock={"number": 100}, membershipPrice="300", defaultInviteCount=0)
    api, query, fixture = _setup({"membership_price": 300}, BEFORE, after)
    with pytest.raises(ProjectionMismatchError, match="defaultInviteCount"):
        asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())


def test_first_snapshot_only_checks_changed_values():
    after = {"snapshotBlock": {"number": 100}, "referralCut": 7}
    api, query, fixture = _setup({"referral_cut": 7}, None, after)
    asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())


def test_snapshot_block_must_be_last_update():
    after = dict(BEFORE, snapshotBlock={"number": 100}, referralCut=1, membershipPrice="2")
    api, query, fixture = _setup({"referral_cut": 1, "membership_price": 2}, BEFORE, after)
    with pytest.raises(ProjectionMismatchError, match="snapshotBlock"):
        asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())


def test_event_value_mismatch_times_out():
    api, query, fixture = _setup(
        {"membership_price": 300}, BEFORE, BEFORE, event_values={"membership_price": "299"}
    )
    query.timeout_ms = 50
    with pytest.raises(ProjectionMismatchError, match="MembershipPriceUpdated newPrice"):
        asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())


@pytest.mark.parametrize("changes", [{}, {"max_invites": 3}])
def test_invalid_changes_rejected(changes):
    with pytest.raises(ValueError):
        SudoUpdateMembershipSystemFixture(FakeChainApi(), FakeQueryNode(), changes)


# ────────────────────────────────────────────────────────────────────────────
# Membership purchase
# ────────────────────────────────────────────────────────────────────────────
def _q_member(member_id, account, handle, block):
    return {
        "id": str(member_id),
        "handle": handle,
        "rootAccount": account,
        "controllerAccount": account,
        "registeredAtBlock": {"number": block},
        "isVerified": False,
    }


def _q_bought(member_id, account, handle, block, tx_hash):
    return q_event(
        "MembershipBought",
        block,
        tx_hash,
        newMember={"id": str(member_id)},
        rootAccount=account,
        controllerAccount=account,
        handle=handle,
    )


def test_buy_memberships():
    api, query = FakeChainApi(), FakeQueryNode()
    accounts = ["5GrwvaEF", "5FHneW46"]
    fixture = BuyMembershipFixture(api, query, accounts, handle_prefix="buyer")
    assert fixture.handles == ["buyer_5grwvaef", "buyer_5fhnew46"]
    for i, (account, handle) in enumerate(zip(accounts, fixture.handles)):
        member_id, block = 20 + i, 100 + i
        api.script("Members", "MembershipBought", [member_id])
        query.respond("get_member_by_id", (member_id,), None, _q_member(member_id, account, handle, block))
        query.respond(
            "get_membership_bought_events",
            (member_id,),
            [_q_bought(member_id, account, handle, block, f"0xtx{i + 1}")],
        )

    result = asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())

    assert [(m.account, m.member_id) for m in result.members] == [("5GrwvaEF", 20), ("5FHneW46", 21)]
    assert [account for _, account in api.sent] == accounts
    assert query.count("get_member_by_id") == 4


def test_bought_member_with_wrong_handle_fails():
    api, query = FakeChainApi(), FakeQueryNode(timeout_ms=50)
    fixture = BuyMembershipFixture(api, query, ["5GrwvaEF"])
    api.script("Members", "MembershipBought", [20])
    query.respond("get_member_by_id", (20,), _q_member(20, "5GrwvaEF", "someone_else", 100))
    with pytest.raises(ProjectionMismatchError, match="Member 20 handle"):
        asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())


def test_membership_bought_event_is_required():
    api, query = FakeChainApi(), FakeQueryNode()
    fixture = BuyMembershipFixture(api, query, ["5GrwvaEF"])
    api.script("Members", "MembershipBought", [20])
    query.respond("get_member_by_id", (20,), _q_member(20, "5GrwvaEF", fixture.handles[0], 100))
    query.respond("get_membership_bought_events", (20,), [])
    with pytest.raises(ProjectionMismatchError, match="MembershipBought events of member 20"):
        asyncio.run(FixtureRunner(fixture).run_with_query_node_checks())


def test_buy_membership_needs_accounts():
    with pytest.raises(ValueError):
        BuyMembershipFixture(FakeChainApi(), FakeQueryNode(), [])
