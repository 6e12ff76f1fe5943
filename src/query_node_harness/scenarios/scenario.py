"""
scenario.py
-----------
Scenario runner: named jobs of flows ordered by dependencies.

A job runs all of its flows concurrently and starts as soon as every job it
requires has passed.  The first failing job aborts the scenario: jobs that
have not started yet are skipped, jobs already running are allowed to finish.
"""

from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Union

from query_node_harness.flows import FlowProps
from query_node_harness.reporting.summary_tables import print_job_results_table

logger = logging.getLogger(__name__)

Flow = Callable[[FlowProps], Awaitable[None]]

PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class Job:
    label: str
    flows: List[Flow]
    dependencies: List["Job"] = field(default_factory=list)

    def requires(self, *jobs: "Job") -> "Job":
        self.dependencies.extend(jobs)
        return self


@dataclass(frozen=True)
class JobResult:
    label: str
    status: str
    duration_s: Optional[float] = None
    error: Optional[BaseException] = None


class Scenario:
    def __init__(self, name: str) -> None:
        self.name = name
        self.jobs: List[Job] = []

    def job(self, label: str, flows: Union[Flow, Sequence[Flow]]) -> Job:
        if any(j.label == label for j in self.jobs):
            raise ValueError(f"Duplicate job label: {label}")
        flows = [flows] if callable(flows) else list(flows)
        job = Job(label, flows)
        self.jobs.append(job)
        return job

    def validate(self) -> None:
        """Raise ``ValueError`` on unknown or circular dependencies."""
        known = {id(j) for j in self.jobs}
        for job in self.jobs:
            for dep in job.dependencies:
                if id(dep) not in known:
                    raise ValueError(f"Job '{job.label}' requires '{dep.label}' which is not part of '{self.name}'")

        visiting, visited = set(), set()

        def visit(job: Job) -> None:
            if id(job) in visited:
                return
            if id(job) in visiting:
                raise ValueError(f"Circular dependency involving job '{job.label}'")
            visiting.add(id(job))
            for dep in job.dependencies:
                visit(dep)
            visiting.discard(id(job))
            visited.add(id(job))

        for job in self.jobs:
            visit(job)


async def run_scenario(scenario: Scenario, props: FlowProps, *, report: bool = True) -> List[JobResult]:
    """Run every job of ``scenario`` and return their results in registration order."""
    scenario.validate()
    results: Dict[str, JobResult] = {}
    finished = {job.label: asyncio.Event() for job in scenario.jobs}
    aborted = False

    async def run_job(job: Job) -> None:
        nonlocal aborted
        try:
            for dep in job.dependencies:
                await finished[dep.label].wait()
            if aborted or any(results[d.label].status != PASSED for d in job.dependencies):
                logger.info("Job '%s' skipped", job.label)
                results[job.label] = JobResult(job.label, SKIPPED)
                return
            logger.info("Job '%s' started", job.label)
            start = time.perf_counter()
            try:
                await asyncio.gather(*(flow(props) for flow in job.flows))
            except Exception as exc:
                aborted = True
                logger.error("Job '%s' failed: %s", job.label, exc)
                results[job.label] = JobResult(job.label, FAILED, time.perf_counter() - start, exc)
            else:
                logger.info("Job '%s' passed", job.label)
                results[job.label] = JobResult(job.label, PASSED, time.perf_counter() - start)
        finally:
            finished[job.label].set()

    await asyncio.gather(*(run_job(job) for job in scenario.jobs))
    ordered = [results[job.label] for job in scenario.jobs]
    if report:
        print_job_results_table(scenario.name, ordered)
    return ordered


def scenario_passed(results: Sequence[JobResult]) -> bool:
    return all(r.status == PASSED for r in results)
