import asyncio
from types import SimpleNamespace

import pytest

import query_node_harness.flows.membership as membership_flows
import query_node_harness.flows.working_groups as wg_flows
from fakes import FakeChainApi, FakeQueryNode
from query_node_harness.chain.groups import WORKING_GROUPS, WorkingGroup
from query_node_harness.errors import ProjectionMismatchError
from query_node_harness.fixtures import working_groups as wg
from query_node_harness.flows import FlowProps, groups_from_env


class RecordingRunner:
    """Stands in for ``FixtureRunner``; records fixtures and fakes their results."""

    def __init__(self, ran, fail_on=None):
        self.ran = ran
        self.fail_on = fail_on

    def __call__(self, fixture):
        self.fixture = fixture
        return self

    async def run_with_query_node_checks(self):
        fixture = self.fixture
        self.ran.append(fixture)
        if self.fail_on is not None and isinstance(fixture, self.fail_on):
            raise ProjectionMismatchError("boom")
        if isinstance(fixture, wg.CreateOpeningFixture):
            return SimpleNamespace(opening_id=len(self.ran))
        if isinstance(fixture, wg.ApplyOnOpeningFixture):
            return SimpleNamespace(application_id=100 + len(self.ran))
        if isinstance(fixture, wg.CreateUpcomingOpeningFixture):
            return SimpleNamespace(upcoming_opening_id="up-1")
        return None


def _props(env=None):
    return FlowProps(api=FakeChainApi(), query=FakeQueryNode(), env=env or {"WORKING_GROUPS": "forumWorkingGroup"})


def _install(monkeypatch, module, fail_on=None):
    ran = []
    monkeypatch.setattr(module, "FixtureRunner", RecordingRunner(ran, fail_on))
    return ran


@pytest.mark.parametrize(
    "name,expected",
    [
        ("storageWorkingGroup", "Storage Working Group"),
        ("operationsWorkingGroupAlpha", "Operations Working Group Alpha"),
    ],
)
def test_start_case(name, expected):
    assert wg_flows.start_case(name) == expected


def test_groups_from_env():
    assert groups_from_env({}) == WORKING_GROUPS
    assert groups_from_env({"WORKING_GROUPS": " forumWorkingGroup, storageWorkingGroup "}) == [
        WorkingGroup.FORUM,
        WorkingGroup.STORAGE,
    ]
    with pytest.raises(ValueError):
        groups_from_env({"WORKING_GROUPS": "councilWorkingGroup"})


def test_group_status_updates_end_with_full_reset():
    updates = wg_flows.group_status_updates(WorkingGroup.FORUM)
    assert len(updates) == 7
    assert {} in updates
    assert updates[1]["status_message"] == "Forum Working Group is beeing tested"
    assert updates[-1]["status_message"] == ""


def test_group_status_flow_runs_updates_in_order(monkeypatch):
    ran = _install(monkeypatch, wg_flows)
    props = _props()
    asyncio.run(wg_flows.group_status(props))
    assert [f.metadata for f in ran] == wg_flows.group_status_updates(WorkingGroup.FORUM)
    assert props.api.debug_tx_logs


def test_lead_opening_flow(monkeypatch):
    ran = _install(monkeypatch, wg_flows)
    asyncio.run(wg_flows.lead_opening(_props()))
    create, apply, fill = ran
    assert create.as_sudo and create.params.stake == wg.LEADER_OPENING_STAKE
    assert apply.opening_id == 1
    assert isinstance(fill, wg.SudoFillLeadOpeningFixture)
    assert fill.accepted_application_ids == [102]


def test_openings_and_applications_flow(monkeypatch):
    ran = _install(monkeypatch, wg_flows)
    props = _props()
    asyncio.run(wg_flows.openings_and_applications(props))
    kinds = [type(f).__name__ for f in ran]
    assert kinds == [
        "CreateOpeningFixture",
        *["ApplyOnOpeningFixture"] * 3,
        "FillOpeningFixture",
        "CreateOpeningFixture",
        *["ApplyOnOpeningFixture"] * 3,
        "WithdrawApplicationsFixture",
        "CancelOpeningFixture",
    ]
    fill, withdraw, cancel = ran[4], ran[9], ran[10]
    assert fill.accepted_application_ids == [102]
    assert len(withdraw.application_ids) == 2
    assert cancel.opening_id == 6
    # staking accounts are funded with the stake plus the existential margin
    assert ("forumWorkingGroup_staking-0", 2000 + wg_flows.STAKING_ACCOUNT_EXTRA) in props.api.transfers


def test_upcoming_openings_flow_removes_what_it_created(monkeypatch):
    ran = _install(monkeypatch, wg_flows)
    asyncio.run(wg_flows.upcoming_openings(_props()))
    assert ran[1].upcoming_opening_id == "up-1"


def test_flow_runs_every_selected_group(monkeypatch):
    ran = _install(monkeypatch, wg_flows)
    asyncio.run(wg_flows.upcoming_openings(_props({"WORKING_GROUPS": "forumWorkingGroup,storageWorkingGroup"})))
    assert sorted({f.group.value for f in ran}) == ["forumWorkingGroup", "storageWorkingGroup"]


def test_flow_stops_at_first_fixture_error(monkeypatch):
    ran = _install(monkeypatch, wg_flows, fail_on=wg.CreateUpcomingOpeningFixture)
    with pytest.raises(ProjectionMismatchError):
        asyncio.run(wg_flows.upcoming_openings(_props()))
    assert len(ran) == 1


def test_membership_flow(monkeypatch):
    ran = _install(monkeypatch, membership_flows)
    asyncio.run(membership_flows.system_params(_props()))
    assert [f.changes for f in ran] == membership_flows.SYSTEM_PARAM_UPDATES


def test_buy_memberships_flow(monkeypatch):
    ran = _install(monkeypatch, membership_flows)
    asyncio.run(membership_flows.buy_memberships(_props()))
    [fixture] = ran
    assert fixture.accounts == ["buyer-0", "buyer-1", "buyer-2"]
    assert fixture.handles[0] == "buyer_buyer-0"
