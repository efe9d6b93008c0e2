"""
Query Runner
============

A QueryRunner owns one bucket of queries, runs them one after another
through a ClusterDataStore, times each query and produces a RunnerReport.

State machine: IDLE -> RUNNING -> COMPLETE.
"""

import logging
import time
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from glide import GlideError

from valkey_workload.datastore import ClusterDataStore
from valkey_workload.exceptions import InvalidArgument, WorkloadError
from valkey_workload.stats import REPORT_PERCENTILES, find_average, find_percentile

logger = logging.getLogger(__name__)


class RunnerState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETE = 'complete'


class RunnerReport(NamedTuple):
    """
    Final statistics of one runner.

    Latencies are in microseconds, the total runtime in milliseconds.
    """
    name: str
    runner_id: int
    query_count: int
    success_count: int
    total_keys: int
    max_keys_per_query: int
    fetched_object_count: int
    mismatch_count: int
    runtime_ms: int
    latencies_us: Tuple[int, ...]
    percentiles_us: Dict[int, int]
    average_us: float

    def render(self) -> str:
        """Format the report as the multi-line block printed by the harness."""
        lines = [
            f'Runner report: {self.runner_id}',
            f'  Input query count: {self.query_count}',
            f'  Query successes count: {self.success_count}',
            f'  Input key count: {self.total_keys}',
            f'  Max key length: {self.max_keys_per_query}',
            f'  Fetched object count: {self.fetched_object_count}',
            f'  Result mismatch count: {self.mismatch_count}',
            f'  Total runtime: {self.runtime_ms} milliseconds',
        ]
        for p, value in self.percentiles_us.items():
            label = f'p{p}'
            lines.append(f'      {self.name} query times elapsed(microseconds)   {label:>4}: {value}')
        lines.append(f'      {self.name} query times elapsed(microseconds)    avg: {self.average_us:.0f}')
        return '\n'.join(lines) + '\n'


class QueryRunner:
    """
    Runs one bucket of queries sequentially against a data store.

    Attributes:
        runner_id (int): Index of the runner within its workload pass
        state (RunnerState): Current lifecycle state
    """

    def __init__(self, name: str, runner_id: int, data_store: ClusterDataStore,
                 query_list: List[List[str]]):
        """
        Initialize the runner.

        Args:
            name (str): Test name, used as the report name prefix
            runner_id (int): Runner index
            data_store (ClusterDataStore): Store shared by all runners
            query_list (List[List[str]]): The queries of this runner's bucket
        """
        self._name = name
        self.runner_id = runner_id
        self.data_store = data_store
        self.query_list = query_list
        self.state = RunnerState.IDLE
        self._report: Optional[RunnerReport] = None

    @property
    def name(self) -> str:
        return f'{self._name}.{self.runner_id}'

    @property
    def query_count(self) -> int:
        return len(self.query_list)

    @property
    def query_list_keys_total(self) -> int:
        return sum(len(keys) for keys in self.query_list)

    @property
    def max_key_length(self) -> int:
        return max((len(keys) for keys in self.query_list), default=0)

    def ready_to_run(self) -> bool:
        return self.state is RunnerState.IDLE and bool(self.query_list)

    def run_complete(self) -> bool:
        return self.state is RunnerState.COMPLETE

    def get_report(self) -> Optional[RunnerReport]:
        """The cached report, or None until the run completes."""
        return self._report

    async def run(self) -> RunnerReport:
        """
        Fetch every query in order and build the report.

        A query whose fetch raises is logged and counted as unsuccessful;
        its elapsed time is still recorded.

        Raises:
            InvalidArgument: If the runner is not IDLE or has no queries
        """
        if not self.ready_to_run():
            raise InvalidArgument(f'runner {self.name} is not ready to run (state: {self.state.value}, '
                                  f'queries: {self.query_count})')

        self.state = RunnerState.RUNNING
        logger.info('%s starting runner %d', self.name, self.runner_id)

        success_count = 0
        fetched_object_count = 0
        mismatch_count = 0
        latencies_us: List[int] = []

        total_start = time.perf_counter()
        for query in self.query_list:
            keys = list(query)
            start = time.perf_counter()
            try:
                results = await self.data_store.fetch_by_keys(keys)
            except (WorkloadError, GlideError) as e:
                logger.error('%s query of %d keys failed: %s', self.name, len(query), e)
            else:
                success_count += 1
                fetched_object_count += len(results)
                mismatch_count += results.mismatches + results.failed_batches
            finally:
                latencies_us.append(int((time.perf_counter() - start) * 1_000_000))
        runtime_ms = int((time.perf_counter() - total_start) * 1000)

        self._report = self.make_report(runtime_ms, success_count, fetched_object_count,
                                        mismatch_count, latencies_us)
        self.state = RunnerState.COMPLETE
        return self._report

    def make_report(self, runtime_ms: int, success_count: int, fetched_object_count: int,
                    mismatch_count: int, latencies_us: List[int]) -> RunnerReport:
        percentiles = {p: find_percentile(p, latencies_us) for p in REPORT_PERCENTILES}
        return RunnerReport(
            name=self.name,
            runner_id=self.runner_id,
            query_count=self.query_count,
            success_count=success_count,
            total_keys=self.query_list_keys_total,
            max_keys_per_query=self.max_key_length,
            fetched_object_count=fetched_object_count,
            mismatch_count=mismatch_count,
            runtime_ms=runtime_ms,
            latencies_us=tuple(latencies_us),
            percentiles_us=percentiles,
            average_us=find_average(latencies_us),
        )
