"""Scenario definitions selectable from the command line."""

from __future__ import annotations
from typing import Callable, Dict

from query_node_harness.flows import membership, working_groups
from query_node_harness.scenarios.scenario import Scenario


def working_groups_scenario(scenario: Scenario) -> Scenario:
    lead = scenario.job("sudo lead opening", working_groups.lead_opening)
    scenario.job("group status", working_groups.group_status).requires(lead)
    scenario.job("upcoming openings", working_groups.upcoming_openings).requires(lead)
    scenario.job("openings and applications", working_groups.openings_and_applications).requires(lead)
    return scenario


def full() -> Scenario:
    scenario = working_groups_scenario(Scenario("full"))
    scenario.job("buy memberships", membership.buy_memberships)
    # Membership price changes must not race the members bought by other jobs
    earlier_jobs = list(scenario.jobs)
    scenario.job("membership system params", membership.system_params).requires(*earlier_jobs)
    return scenario


def working_groups_only() -> Scenario:
    return working_groups_scenario(Scenario("working-groups"))


def membership_only() -> Scenario:
    scenario = Scenario("membership")
    buy = scenario.job("buy memberships", membership.buy_memberships)
    scenario.job("membership system params", membership.system_params).requires(buy)
    return scenario


SCENARIOS: Dict[str, Callable[[], Scenario]] = {
    "full": full,
    "working-groups": working_groups_only,
    "membership": membership_only,
}
