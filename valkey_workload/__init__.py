"""
Valkey Workload
===============

Cluster-aware batched MGET client and concurrent workload runner for
Valkey/Redis Cluster, built on the Valkey GLIDE client.
"""

from valkey_workload.config import DataStoreParams
from valkey_workload.datastore import ClusterDataStore
from valkey_workload.exceptions import (
    ConfigurationError,
    DataStoreNotReady,
    InvalidArgument,
    TransientClusterError,
    WorkloadError,
)
from valkey_workload.fetch import FetchResult, PendingFetch, collect_results, dispatch_batches
from valkey_workload.harness import HarnessResult, run_workload
from valkey_workload.hashslot import (
    MAX_SLOTS,
    HashSlotGenerator,
    get_hashslot_generator,
    group_keys_by_hashslot,
    hash_tag,
)
from valkey_workload.queries import OperationMode, QueryListCollector, distribute
from valkey_workload.runner import QueryRunner, RunnerReport, RunnerState
from valkey_workload.stats import find_average, find_percentile

__version__ = '0.1.0'
