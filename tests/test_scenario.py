import asyncio

import pytest

from query_node_harness.flows import FlowProps
from query_node_harness.scenarios.full import SCENARIOS, full
from query_node_harness.scenarios.scenario import (
    FAILED,
    PASSED,
    SKIPPED,
    Scenario,
    run_scenario,
    scenario_passed,
)


def _props():
    return FlowProps(api=None, query=None)


def _recorder(log, name, delay=0.0, error=None):
    async def flow(props):
        log.append(f"{name}:start")
        await asyncio.sleep(delay)
        if error is not None:
            raise error
        log.append(f"{name}:end")

    return flow


def test_dependencies_run_first_and_results_keep_registration_order(capsys):
    log = []
    scenario = Scenario("demo")
    lead = scenario.job("lead", _recorder(log, "lead", 0.01))
    scenario.job("a", [_recorder(log, "a1"), _recorder(log, "a2")]).requires(lead)
    scenario.job("b", _recorder(log, "b")).requires(lead)

    results = asyncio.run(run_scenario(scenario, _props()))

    assert [r.label for r in results] == ["lead", "a", "b"]
    assert [r.status for r in results] == [PASSED] * 3
    assert log.index("lead:end") < log.index("a1:start")
    assert log.index("lead:end") < log.index("b:start")
    assert scenario_passed(results)
    assert "Table: Scenario 'demo' Jobs" in capsys.readouterr().out


def test_failure_skips_dependents_and_pending_jobs():
    log = []
    scenario = Scenario("demo")
    broken = scenario.job("broken", _recorder(log, "broken", error=RuntimeError("chain down")))
    dependent = scenario.job("dependent", _recorder(log, "dependent")).requires(broken)
    scenario.job("later", _recorder(log, "later")).requires(dependent)

    results = asyncio.run(run_scenario(scenario, _props(), report=False))

    assert [r.status for r in results] == [FAILED, SKIPPED, SKIPPED]
    assert str(results[0].error) == "chain down"
    assert results[0].duration_s is not None
    assert "dependent:start" not in log
    assert not scenario_passed(results)


def test_running_jobs_finish_after_abort():
    log = []
    scenario = Scenario("demo")
    scenario.job("slow", _recorder(log, "slow", 0.05))
    scenario.job("broken", _recorder(log, "broken", error=ValueError("bad")))

    results = asyncio.run(run_scenario(scenario, _props(), report=False))

    assert [r.status for r in results] == [PASSED, FAILED]
    assert "slow:end" in log


def test_flows_of_a_job_run_concurrently():
    log = []
    scenario = Scenario("demo")
    scenario.job("pair", [_recorder(log, "x", 0.01), _recorder(log, "y", 0.01)])
    asyncio.run(run_scenario(scenario, _props(), report=False))
    assert log[:2] == ["x:start", "y:start"]


def test_duplicate_label_rejected():
    scenario = Scenario("demo")
    scenario.job("a", _recorder([], "a"))
    with pytest.raises(ValueError, match="Duplicate"):
        scenario.job("a", _recorder([], "a"))


def test_unknown_dependency_rejected():
    other = Scenario("other").job("elsewhere", _recorder([], "x"))
    scenario = Scenario("demo")
    scenario.job("a", _recorder([], "a")).requires(other)
    with pytest.raises(ValueError, match="not part of 'demo'"):
        scenario.validate()


def test_circular_dependency_rejected():
    scenario = Scenario("demo")
    a = scenario.job("a", _recorder([], "a"))
    b = scenario.job("b", _recorder([], "b")).requires(a)
    a.requires(b)
    with pytest.raises(ValueError, match="Circular"):
        asyncio.run(run_scenario(scenario, _props(), report=False))


def test_registered_scenarios_are_valid():
    for build in SCENARIOS.values():
        build().validate()


def test_membership_params_wait_for_every_other_job():
    scenario = full()
    membership = next(j for j in scenario.jobs if j.label == "membership system params")
    assert {d.label for d in membership.dependencies} == {
        j.label for j in scenario.jobs if j is not membership
    }
