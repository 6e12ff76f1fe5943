"""
main.py
-------
Entry point: connect to the chain and the query node, then run a scenario.

Run:
$ python -m query_node_harness [scenario]
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from query_node_harness import config
from query_node_harness.chain.api import ChainApi
from query_node_harness.flows import FlowProps
from query_node_harness.query.api import QueryNodeApi
from query_node_harness.query.client import QueryNodeClient
from query_node_harness.scenarios.full import SCENARIOS
from query_node_harness.scenarios.scenario import JobResult, run_scenario, scenario_passed


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="query-node-harness",
        description="Submit chain transactions and check the query node projects them.",
    )
    parser.add_argument("scenario", nargs="?", default="full", choices=sorted(SCENARIOS))
    parser.add_argument("--node-url", default=config.NODE_URL)
    parser.add_argument("--query-node-url", default=config.QUERY_NODE_URL)
    return parser.parse_args(argv)


async def run(scenario_name: str, node_url: str, query_node_url: str) -> List[JobResult]:
    api = await asyncio.to_thread(
        ChainApi.connect, node_url, config.TREASURY_ACCOUNT_URI, config.SUDO_ACCOUNT_URI
    )
    client = QueryNodeClient(query_node_url)
    try:
        props = FlowProps(api=api, query=QueryNodeApi(client), env=dict(os.environ))
        return await run_scenario(SCENARIOS[scenario_name](), props)
    finally:
        client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(f"🔄 Running scenario '{args.scenario}' against {args.node_url} / {args.query_node_url} …")
    results = asyncio.run(run(args.scenario, args.node_url, args.query_node_url))
    if scenario_passed(results):
        print(f"✅ Scenario '{args.scenario}' passed")
        return 0
    print(f"⚠️ Scenario '{args.scenario}' failed")
    return 1


if __name__ == "__main__":
    sys.exit(main())
