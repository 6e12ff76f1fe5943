"""Membership flows."""

from __future__ import annotations

from query_node_harness.fixtures.base import FixtureRunner
from query_node_harness.fixtures.membership import BuyMembershipFixture, SudoUpdateMembershipSystemFixture
from query_node_harness.flows import FlowProps, flow_logger

MEMBERS_TO_BUY = 3

SYSTEM_PARAM_UPDATES = [
    {
        "referral_cut": 5,
        "membership_price": 100_000,
        "invited_initial_balance": 500,
        "default_invite_count": 5,
    },
    # Partial update: the other parameters carry over from the previous snapshot
    {"membership_price": 150_000, "default_invite_count": 10},
]


async def buy_memberships(props: FlowProps) -> None:
    log = flow_logger("buy-memberships")
    log.info("Started")
    accounts = props.api.create_keys(MEMBERS_TO_BUY, prefix="buyer")
    fixture = BuyMembershipFixture(props.api, props.query, accounts, handle_prefix="buyer")
    await FixtureRunner(fixture).run_with_query_node_checks()
    log.info("Done")


async def system_params(props: FlowProps) -> None:
    log = flow_logger("membership-system-params")
    log.info("Started")
    for changes in SYSTEM_PARAM_UPDATES:
        fixture = SudoUpdateMembershipSystemFixture(props.api, props.query, changes)
        await FixtureRunner(fixture).run_with_query_node_checks()
    log.info("Done")
