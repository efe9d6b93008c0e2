"""
Workload Harness
================

Runs one QueryRunner per non-empty bucket concurrently and prints every
runner's report in runner order.
"""

import asyncio
import logging
import sys
from typing import Dict, List, Optional

from valkey_workload.datastore import ClusterDataStore
from valkey_workload.queries import QueryListCollector
from valkey_workload.runner import QueryRunner, RunnerReport

logger = logging.getLogger(__name__)


class HarnessResult:
    """
    Outcome of one workload pass.

    Attributes:
        test_name (str): Name of the pass
        runner_count (int): Number of runners created
        reports (Dict[int, RunnerReport]): Reports of completed runners
        errors (Dict[int, str]): Runner index -> reason it has no report
    """

    def __init__(self, test_name: str, runner_count: int):
        self.test_name = test_name
        self.runner_count = runner_count
        self.reports: Dict[int, RunnerReport] = {}
        self.errors: Dict[int, str] = {}

    def report_for(self, runner_id: int) -> Optional[RunnerReport]:
        return self.reports.get(runner_id)

    @property
    def complete(self) -> bool:
        return not self.errors


async def run_workload(test_name: str,
                       collector: QueryListCollector,
                       data_store: ClusterDataStore,
                       worker_count: Optional[int] = None,
                       verbose: bool = True) -> HarnessResult:
    """
    Run one pass of the workload.

    A runner that raises is reported as an error for its index; the other
    runners are unaffected.

    Args:
        test_name (str): Prefix for runner names
        collector (QueryListCollector): Source of the per-runner buckets
        data_store (ClusterDataStore): Store shared by every runner
        worker_count (int, optional): Defaults to the collector's bucket count
        verbose (bool): Print banners and reports to stdout

    Returns:
        HarnessResult: Reports and errors by runner index
    """
    if worker_count is None:
        worker_count = collector.bucket_count

    runners = [QueryRunner(test_name, i, data_store, collector.get_bucket(i))
               for i in range(worker_count)]
    if verbose:
        print('All runners initialized')

    spawned: List[QueryRunner] = []
    for runner in runners:
        if runner.ready_to_run():
            if verbose:
                print(f'  runner: {runner.runner_id}')
            spawned.append(runner)

    if verbose:
        print()
        print('All runners spawned')

    outcomes = await asyncio.gather(*(runner.run() for runner in spawned), return_exceptions=True)
    for runner, outcome in zip(spawned, outcomes):
        if isinstance(outcome, BaseException):
            logger.error('Runner %s failed: %r', runner.name, outcome)

    if verbose:
        print()
        print('All runners complete')
        print()

    result = HarnessResult(test_name, worker_count)
    for runner in runners:
        if runner.run_complete():
            result.reports[runner.runner_id] = runner.get_report()
            if verbose:
                print(runner.get_report().render())
        else:
            reason = 'no queries' if not runner.query_list else 'did not complete'
            result.errors[runner.runner_id] = reason
            if verbose:
                print(f'error: runner report {runner.runner_id} not ready', file=sys.stderr)
                print()

    return result
