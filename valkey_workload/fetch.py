"""
Batched MGET Dispatch and Result Collection
===========================================

dispatch_batches() splits one single-slot key group into sub-batches and
starts one asynchronous MGET per sub-batch. collect_results() awaits those
fetches and zips each value list back onto the keys it was issued for.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from glide import GlideError

from valkey_workload.keys import id_for_key

logger = logging.getLogger(__name__)


class FetchResult(dict):
    """
    Mapping of key to value (bytes, or None for a missing key) returned
    by one fetch-by-keys call.

    Attributes:
        requested (int): Number of distinct keys requested
        failed_batches (int): Sub-batches whose MGET raised
        mismatches (int): Data integrity events seen while collecting
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.requested = 0
        self.failed_batches = 0
        self.mismatches = 0


class PendingFetch:
    """
    An in-flight MGET for one sub-batch.

    Attributes:
        keys (Tuple[str, ...]): Keys in the order they were sent
        task (asyncio.Future): Resolves to the list of values for keys
    """

    __slots__ = ('keys', 'task')

    def __init__(self, keys: Sequence[str], task: 'asyncio.Future'):
        self.keys = tuple(keys)
        self.task = task

    def __repr__(self):
        return f'PendingFetch(keys={len(self.keys)}, done={self.task.done()})'


def split_batches(keys: Sequence[str], max_batch_size: int) -> List[List[str]]:
    """
    Split keys into consecutive slices of at most max_batch_size keys.

    A max_batch_size <= 0 disables splitting.
    """
    if max_batch_size <= 0 or len(keys) <= max_batch_size:
        return [list(keys)]
    return [list(keys[i:i + max_batch_size]) for i in range(0, len(keys), max_batch_size)]


async def dispatch_batches(client: Any, keys: Sequence[str], max_batch_size: int) -> List[PendingFetch]:
    """
    Issue one MGET per sub-batch of keys.

    Precondition: all keys hash to a single slot. Each MGET is wrapped in
    a task and the event loop is yielded to once, so every request has
    been handed to the client before this returns. No retries happen here.

    Args:
        client: Cluster client exposing ``async mget(keys)``
        keys (Sequence[str]): Keys that share one hashslot
        max_batch_size (int): Upper bound on keys per MGET

    Returns:
        List[PendingFetch]: One handle per sub-batch, in issue order
    """
    pending = []
    for batch in split_batches(keys, max_batch_size):
        task = asyncio.ensure_future(client.mget(batch))
        pending.append(PendingFetch(batch, task))
    # let each task run up to its first suspension, i.e. send its request
    await asyncio.sleep(0)
    return pending


def zip_result_objects(keys: Sequence[str],
                       values: Sequence[Optional[bytes]],
                       zipped: Dict[str, Optional[bytes]]) -> bool:
    """
    Insert key/value pairs into zipped by position.

    Returns:
        bool: False if the lengths differed; only the overlapping prefix
        is inserted in that case
    """
    if len(values) != len(keys):
        logger.warning('Data store zip requested with values count: %d != keys count: %d',
                       len(values), len(keys))
    for key, value in zip(keys, values):
        zipped[key] = value
    return len(values) == len(keys)


async def collect_results(pending: Iterable[PendingFetch],
                          index_by_raw_key: bool = False,
                          key_prefix: str = '',
                          key_suffix: str = '',
                          result: Optional[FetchResult] = None) -> FetchResult:
    """
    Await every pending fetch and merge the values into one mapping.

    A fetch that fails with a client error is logged and contributes no
    entries. Every fetch is awaited before any value is merged, so an
    unexpected error from one fetch is raised only once its siblings
    have finished and their outcomes have been retrieved.

    Args:
        pending (Iterable[PendingFetch]): Handles from dispatch_batches()
        index_by_raw_key (bool): Index results by the identifier left after
            stripping key_prefix and key_suffix instead of the cluster key
        key_prefix (str): Prefix to strip
        key_suffix (str): Suffix to strip
        result (FetchResult, optional): Mapping to merge into

    Returns:
        FetchResult: Key -> value for every key that came back
    """
    if result is None:
        result = FetchResult()

    pending = list(pending)
    outcomes = await asyncio.gather(*(fetch.task for fetch in pending), return_exceptions=True)

    unexpected: Optional[BaseException] = None
    for fetch, values in zip(pending, outcomes):
        if isinstance(values, GlideError):
            result.failed_batches += 1
            logger.warning('MGET of %d keys failed: %s', len(fetch.keys), values)
            continue
        if isinstance(values, BaseException):
            logger.error('MGET of %d keys raised %r', len(fetch.keys), values)
            if unexpected is None:
                unexpected = values
            continue

        keys: Tuple[str, ...] = fetch.keys
        if index_by_raw_key:
            keys = tuple(id_for_key(key_prefix, key_suffix, key) for key in keys)

        slice_objects: Dict[str, Optional[bytes]] = {}
        if not zip_result_objects(keys, values, slice_objects):
            result.mismatches += 1

        for key, value in slice_objects.items():
            if key in result and result[key] != value:
                result.mismatches += 1
                logger.warning("Conflicting values collected for key '%s', keeping the first", key)
                continue
            result[key] = value

    if unexpected is not None:
        raise unexpected
    return result
