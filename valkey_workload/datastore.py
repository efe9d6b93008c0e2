"""
Cluster Data Store
==================

Read-only facade over a Valkey/Redis cluster built on the Valkey GLIDE
cluster client.

fetch_by_keys() accepts keys spanning any number of hashslots. The keys
are grouped by slot, each group is split into bounded MGET sub-batches,
every sub-batch is issued concurrently and the values are merged into a
single mapping.
"""

import asyncio
import json
import logging
from typing import Any, List, Optional, Sequence

from glide import (
    GlideClusterClient,
    GlideClusterClientConfiguration,
    GlideError,
    NodeAddress,
    ReadFrom,
    ServerCredentials,
    SlotKeyRoute,
    SlotType,
)

from valkey_workload.config import DataStoreParams
from valkey_workload.exceptions import DataStoreNotReady, TransientClusterError
from valkey_workload.fetch import FetchResult, collect_results, dispatch_batches
from valkey_workload.hashslot import HashSlotGenerator, get_hashslot_generator, group_keys_by_hashslot
from valkey_workload.keys import key_for_id, remove_duplicates

logger = logging.getLogger(__name__)

CONNECTION_RETRY_COUNT = 3
CONNECTION_RETRY_DELAY_MS = 10

UNKNOWN_SERVER_VERSION = 'UNKNOWN VERSION'
UNKNOWN_DATASET_VERSION = 'unknown'
DATASET_META_NOT_FOUND = 'DATASET_META_NOT_FOUND'
DEFAULT_HASHTAG = '0'

_REDIS_VERSION_TOKEN = 'redis_version:'


def build_client_configuration(params: DataStoreParams) -> GlideClusterClientConfiguration:
    """Translate DataStoreParams into a GLIDE cluster client configuration."""
    credentials = None
    if params.password:
        credentials = ServerCredentials(password=params.password, username=params.user)

    return GlideClusterClientConfiguration(
        addresses=[NodeAddress(host=params.host, port=params.port)],
        use_tls=params.use_tls,
        credentials=credentials,
        read_from=ReadFrom.PREFER_REPLICA if params.prefer_read_replicas else ReadFrom.PRIMARY,
        request_timeout=params.request_timeout_ms or None,
    )


def _to_text(response: Any) -> str:
    if response is None:
        return ''
    if isinstance(response, dict):
        # multi-node reply, keep the first node's answer
        response = next(iter(response.values()), None)
        return _to_text(response)
    if isinstance(response, bytes):
        return response.decode('utf-8', errors='replace')
    return str(response)


def parse_server_version(info: str) -> str:
    """
    Extract the redis_version field from an INFO reply.

    Returns:
        str: The version, or UNKNOWN_SERVER_VERSION if the field is absent
    """
    start = info.find(_REDIS_VERSION_TOKEN)
    if start == -1:
        return UNKNOWN_SERVER_VERSION

    start += len(_REDIS_VERSION_TOKEN)
    end = info.find('\r\n', start)
    if end == -1:
        end = len(info)
    return info[start:end].strip()


def parse_dataset_version(metadata: str) -> str:
    """
    Find the basemap id of the active data bundle in a dataset metadata document.

    The document has the shape::

        {"data_bundle": [{"name": ..., "version": ...}],
         "data_sources": {"<name> <version>": {"basemap": {"id": ...}}}}

    Returns:
        str: The basemap id, or UNKNOWN_DATASET_VERSION if the document is
        not JSON or lacks any of the fields
    """
    try:
        root = json.loads(metadata)
    except (TypeError, ValueError):
        logger.error('Unable to parse dataset metadata string as JSON')
        return UNKNOWN_DATASET_VERSION

    try:
        bundle = root['data_bundle'][0]
        data_source_key = f"{bundle['name']} {bundle['version']}"
        return str(root['data_sources'][data_source_key]['basemap']['id'])
    except (KeyError, IndexError, TypeError) as e:
        logger.error('Dataset metadata is missing a field: %s', e)
        return UNKNOWN_DATASET_VERSION


class ClusterDataStore:
    """
    Read-only data store backed by a cluster client pool.

    Attributes:
        params (DataStoreParams): Parameters the store was built with
        hashslot_generator (HashSlotGenerator): Engine used to group keys
        dataset_metadata_key (str): Key holding the dataset metadata document
        ready (bool): True once the cluster answered the startup probe
    """

    def __init__(self,
                 params: DataStoreParams,
                 clients: Sequence[Any],
                 hashslot_generator: Optional[HashSlotGenerator] = None):
        """
        Initialize the store around already-connected clients.

        Args:
            params (DataStoreParams): Store parameters
            clients (Sequence): Cluster clients exposing get/mget/custom_command
            hashslot_generator (HashSlotGenerator, optional): Defaults to the
                engine named by params.hashslot_engine
        """
        self.params = params
        self.clients: List[Any] = list(clients)
        self.hashslot_generator = hashslot_generator or get_hashslot_generator(params.hashslot_engine)
        self.dataset_metadata_key = key_for_id(params.key_prefix, params.key_suffix, 'dataset_metadata')
        self.ready = False
        self._next_client_index = 0

    @classmethod
    async def create(cls,
                     params: DataStoreParams,
                     retry_count: int = CONNECTION_RETRY_COUNT,
                     retry_delay_ms: int = CONNECTION_RETRY_DELAY_MS) -> 'ClusterDataStore':
        """
        Validate params, connect the client pool and probe the cluster.

        Connection failures are logged, not raised; check ``ready`` or call
        ensure_ready() on the returned store.

        Raises:
            ConfigurationError: If params are invalid
        """
        params.validate()
        logger.info('Creating ClusterDataStore with connection options: %s', params.describe())

        client_config = build_client_configuration(params)
        clients = []
        try:
            for _ in range(params.pool_size):
                clients.append(await GlideClusterClient.create(client_config))
        except GlideError as e:
            logger.error('Caught exception connecting to cluster: %s', e)
            for client in clients:
                await client.close()
            clients = []

        store = cls(params, clients)
        if clients:
            await store.wait_until_ready(retry_count, retry_delay_ms)
        return store

    @property
    def multikey_batch_size(self) -> int:
        return self.params.max_multikey_batch_size

    def _next_client(self) -> Any:
        if not self.clients:
            raise DataStoreNotReady('data store has no connected clients')
        client = self.clients[self._next_client_index % len(self.clients)]
        self._next_client_index += 1
        return client

    def ensure_ready(self):
        """Raise DataStoreNotReady unless the startup probe succeeded."""
        if not self.ready:
            raise DataStoreNotReady('cluster connection not ready')

    async def wait_until_ready(self,
                               retry_count: int = CONNECTION_RETRY_COUNT,
                               retry_delay_ms: int = CONNECTION_RETRY_DELAY_MS) -> bool:
        """
        Issue CLUSTER INFO until it returns a non-empty reply or retries run out.

        Returns:
            bool: The resulting readiness
        """
        for _ in range(retry_count):
            cluster_info = ''
            try:
                cluster_info = await self.issue_cluster_command(['CLUSTER', 'INFO'])
            except TransientClusterError as e:
                logger.warning('Caught cluster connection exception: %s', e)

            if cluster_info:
                self.ready = True
                logger.info('Cluster Info:\n%s', cluster_info)
                return True

            logger.info('Cluster connection not ready, sleeping for %dms', retry_delay_ms)
            await asyncio.sleep(retry_delay_ms / 1000)

        return False

    async def issue_cluster_command(self, command: List[str]) -> str:
        """Run a command wherever the client routes it and return the reply as text."""
        try:
            return _to_text(await self._next_client().custom_command(command))
        except GlideError as e:
            raise TransientClusterError(f"{' '.join(command)} failed: {e}") from e

    async def issue_command(self, command: List[str], hashtag: str) -> str:
        """Run a command on the node that owns hashtag and return the reply as text."""
        slot_type = SlotType.REPLICA if self.params.prefer_read_replicas else SlotType.PRIMARY
        route = SlotKeyRoute(slot_type, hashtag)
        try:
            return _to_text(await self._next_client().custom_command(command, route))
        except GlideError as e:
            raise TransientClusterError(f"{' '.join(command)} failed: {e}") from e

    async def get(self, key: str) -> str:
        """GET a single key, returning '' when it is missing."""
        try:
            data = await self._next_client().get(key)
        except GlideError as e:
            raise TransientClusterError(f"GET {key} failed: {e}") from e
        return _to_text(data)

    async def fetch_by_keys(self, keys: List[str], index_by_raw_key: bool = False) -> FetchResult:
        """
        Fetch the values of keys that may span many hashslots.

        keys is deduplicated in place. Sub-batches that fail are logged and
        their keys are missing from the result. Each integrity event is
        counted once, in either FetchResult.failed_batches or
        FetchResult.mismatches.

        Args:
            keys (List[str]): Cluster keys
            index_by_raw_key (bool): Index the result by the identifier inside
                the configured prefix/suffix instead of the full key

        Returns:
            FetchResult: Key -> value (None for keys that do not exist)
        """
        remove_duplicates(keys)
        keys_count = len(keys)

        groups = group_keys_by_hashslot(keys, self.hashslot_generator)

        pending = []
        for slot_keys in groups.values():
            pending.extend(await dispatch_batches(self._next_client(), slot_keys, self.multikey_batch_size))

        result = FetchResult()
        result.requested = keys_count
        await collect_results(pending,
                              index_by_raw_key=index_by_raw_key,
                              key_prefix=self.params.key_prefix,
                              key_suffix=self.params.key_suffix,
                              result=result)

        if len(result) != keys_count:
            # a shortfall already explained by a failed or short batch is not counted again
            if not (result.mismatches or result.failed_batches):
                result.mismatches += 1
            logger.warning('Data store result count mismatch. cross-slot mget retrieved %d objects '
                           'for fetch_by_keys request with %d keys', len(result), keys_count)
        return result

    async def server_info(self, hashtag: str = DEFAULT_HASHTAG) -> str:
        """INFO from the node owning hashtag; '' if the call fails."""
        try:
            return await self.issue_command(['INFO'], hashtag)
        except TransientClusterError as e:
            logger.warning('%s', e)
            return ''

    async def server_version(self, hashtag: str = DEFAULT_HASHTAG) -> str:
        return parse_server_version(await self.server_info(hashtag))

    async def dataset_metadata(self) -> str:
        """The dataset metadata document, or DATASET_META_NOT_FOUND."""
        try:
            metadata = await self.get(self.dataset_metadata_key)
        except TransientClusterError as e:
            logger.warning('%s', e)
            metadata = ''
        return metadata or DATASET_META_NOT_FOUND

    async def dataset_version(self) -> str:
        return parse_dataset_version(await self.dataset_metadata())

    async def close(self):
        for client in self.clients:
            await client.close()
        self.clients = []
        self.ready = False
