import pytest

from query_node_harness import config, main as main_mod
from query_node_harness.scenarios.scenario import FAILED, PASSED, JobResult


def test_parse_args_defaults():
    args = main_mod.parse_args([])
    assert args.scenario == "full"
    assert args.node_url == config.NODE_URL
    assert args.query_node_url == config.QUERY_NODE_URL


def test_parse_args_overrides():
    args = main_mod.parse_args(["membership", "--node-url", "ws://n:9944", "--query-node-url", "http://q/graphql"])
    assert (args.scenario, args.node_url, args.query_node_url) == ("membership", "ws://n:9944", "http://q/graphql")


def test_parse_args_rejects_unknown_scenario():
    with pytest.raises(SystemExit):
        main_mod.parse_args(["nope"])


@pytest.mark.parametrize("status,code", [(PASSED, 0), (FAILED, 1)])
def test_main_exit_code(monkeypatch, capsys, status, code):
    seen = {}

    async def fake_run(name, node_url, qn_url):
        seen["args"] = (name, node_url, qn_url)
        return [JobResult("job", status)]

    monkeypatch.setattr(main_mod, "run", fake_run)
    assert main_mod.main(["working-groups", "--node-url", "ws://n"]) == code
    assert seen["args"] == ("working-groups", "ws://n", config.QUERY_NODE_URL)
    assert "working-groups" in capsys.readouterr().out
