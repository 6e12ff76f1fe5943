"""
working_groups.py
-----------------
Working-group flows.  Each runs independently per group, all groups at once.
"""

from __future__ import annotations
import asyncio
import re
from typing import List, Tuple

from query_node_harness.chain.events import MemberContext
from query_node_harness.chain.groups import WorkingGroup
from query_node_harness.fixtures.base import FixtureRunner
from query_node_harness.fixtures.working_groups import (
    LEADER_OPENING_STAKE,
    ApplyOnOpeningFixture,
    CancelOpeningFixture,
    CreateOpeningFixture,
    CreateUpcomingOpeningFixture,
    FillOpeningFixture,
    RemoveUpcomingOpeningFixture,
    SudoFillLeadOpeningFixture,
    UpdateGroupStatusFixture,
    WithdrawApplicationsFixture,
)
from query_node_harness.flows import FlowProps, flow_logger, for_each_group

APPLICATIONS_PER_OPENING = 3
# Covers the existential deposit on top of the stake
STAKING_ACCOUNT_EXTRA = 10_000


def start_case(name: str) -> str:
    """``"operationsWorkingGroupAlpha"`` -> ``"Operations Working Group Alpha"``"""
    return " ".join(w[:1].upper() + w[1:] for w in re.findall(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])", name))


def group_status_updates(group: WorkingGroup) -> List[dict]:
    title = start_case(group.value)
    return [
        {"description": f"{title} Test Description", "about": f"{title} Test About Text"},
        {"status": "Testing", "status_message": f"{title} is beeing tested"},
        {"description": f"{title} New Test Description"},
        {"status": "Testing continues", "status_message": f"{title} testing continues"},
        {"about": f"{title} New Test About"},
        {},
        {
            "status": "Testing finished",
            "status_message": "",
            "description": f"{title} Test Description",
            "about": f"{title} Test About Text",
        },
    ]


async def _apply(
    props: FlowProps, group: WorkingGroup, opening: CreateOpeningFixture, opening_id: int, count: int
) -> List[Tuple[MemberContext, int]]:
    """Create ``count`` members with funded staking accounts and apply with each."""
    api, query = props.api, props.query
    members = await api.create_members(count, prefix=f"{group.value}_applicant")
    staking_accounts = api.create_keys(count, prefix=f"{group.value}_staking")
    stake = opening.params.stake
    await asyncio.gather(
        *(
            api.add_staking_account(m.member_id, m.account, s, stake + STAKING_ACCOUNT_EXTRA)
            for m, s in zip(members, staking_accounts)
        )
    )
    results = await asyncio.gather(
        *(
            FixtureRunner(
                ApplyOnOpeningFixture(api, query, group, m, s, opening_id, opening.params.metadata)
            ).run_with_query_node_checks()
            for m, s in zip(members, staking_accounts)
        )
    )
    return [(m, r.application_id) for m, r in zip(members, results)]


async def group_status(props: FlowProps) -> None:
    async def run(group: WorkingGroup) -> None:
        log = flow_logger("group-status", group)
        log.info("Started")
        props.api.enable_debug_tx_logs()
        # Snapshot checks compare with the previous update, so updates must not overlap
        for update in group_status_updates(group):
            fixture = UpdateGroupStatusFixture(props.api, props.query, group, update)
            await FixtureRunner(fixture).run_with_query_node_checks()
        log.info("Done")

    await for_each_group(props, run)


async def lead_opening(props: FlowProps) -> None:
    async def run(group: WorkingGroup) -> None:
        log = flow_logger("lead-opening", group)
        log.info("Started")
        create = CreateOpeningFixture(props.api, props.query, group, {"stake": LEADER_OPENING_STAKE}, as_sudo=True)
        opening = await FixtureRunner(create).run_with_query_node_checks()
        [(_, application_id)] = await _apply(props, group, create, opening.opening_id, 1)
        fill = SudoFillLeadOpeningFixture(props.api, props.query, group, opening.opening_id, [application_id])
        await FixtureRunner(fill).run_with_query_node_checks()
        log.info("Done")

    await for_each_group(props, run)


async def openings_and_applications(props: FlowProps) -> None:
    async def run(group: WorkingGroup) -> None:
        log = flow_logger("openings-and-applications", group)
        log.info("Started")
        api, query = props.api, props.query

        # Fill: first applicant hired, the others rejected by the same event
        create = CreateOpeningFixture(api, query, group)
        opening = await FixtureRunner(create).run_with_query_node_checks()
        applications = await _apply(props, group, create, opening.opening_id, APPLICATIONS_PER_OPENING)
        fill = FillOpeningFixture(api, query, group, opening.opening_id, [applications[0][1]])
        await FixtureRunner(fill).run_with_query_node_checks()

        # Withdraw some applications, then cancel the opening
        create = CreateOpeningFixture(api, query, group)
        opening = await FixtureRunner(create).run_with_query_node_checks()
        applications = await _apply(props, group, create, opening.opening_id, APPLICATIONS_PER_OPENING)
        withdrawn = applications[: APPLICATIONS_PER_OPENING - 1]
        withdraw = WithdrawApplicationsFixture(
            api, query, group, [m.account for m, _ in withdrawn], [app_id for _, app_id in withdrawn]
        )
        await FixtureRunner(withdraw).run_with_query_node_checks()
        cancel = CancelOpeningFixture(api, query, group, opening.opening_id)
        await FixtureRunner(cancel).run_with_query_node_checks()
        log.info("Done")

    await for_each_group(props, run)


async def upcoming_openings(props: FlowProps) -> None:
    async def run(group: WorkingGroup) -> None:
        log = flow_logger("upcoming-openings", group)
        log.info("Started")
        create = CreateUpcomingOpeningFixture(props.api, props.query, group)
        created = await FixtureRunner(create).run_with_query_node_checks()
        remove = RemoveUpcomingOpeningFixture(props.api, props.query, group, created.upcoming_opening_id)
        await FixtureRunner(remove).run_with_query_node_checks()
        log.info("Done")

    await for_each_group(props, run)
