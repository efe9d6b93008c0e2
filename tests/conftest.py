import asyncio
from typing import Dict, List, Optional, Set

import pytest
from glide import RequestError

from valkey_workload.config import DataStoreParams
from valkey_workload.datastore import ClusterDataStore


class FakeClusterClient:
    """
    In-memory stand-in for GlideClusterClient.

    Like the real client every command is a coroutine function; an MGET
    batch is recorded when its coroutine first runs, i.e. when the request
    would be written to the connection.
    """

    def __init__(self, data: Optional[Dict[str, bytes]] = None):
        self.data = dict(data or {})
        self.mget_calls: List[List[str]] = []
        self.get_calls: List[str] = []
        self.commands: List[tuple] = []
        self.failing_keys: Set[str] = set()
        self.short_reply_keys: Set[str] = set()
        self.fail_commands = False
        self.cluster_info = b'cluster_state:ok\r\ncluster_slots_assigned:16384\r\n'
        self.info = b'# Server\r\nredis_version:7.2.4\r\nredis_mode:cluster\r\n'
        self.closed = False

    async def mget(self, keys):
        keys = list(keys)
        self.mget_calls.append(keys)
        await asyncio.sleep(0)
        if self.failing_keys.intersection(keys):
            raise RequestError("timed out")
        values = [self.data.get(key) for key in keys]
        if self.short_reply_keys.intersection(keys):
            values = values[:-1]
        return values

    async def get(self, key):
        self.get_calls.append(key)
        if self.fail_commands:
            raise RequestError('connection refused')
        return self.data.get(key)

    async def custom_command(self, command, route=None):
        self.commands.append((list(command), route))
        if self.fail_commands:
            raise RequestError('connection refused')
        if list(command) == ['CLUSTER', 'INFO']:
            return self.cluster_info
        if list(command) == ['INFO']:
            return self.info
        return None

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeClusterClient()


@pytest.fixture
def params():
    return DataStoreParams(host='cluster.local',
                           port=6379,
                           user='default',
                           password='secret',
                           key_prefix='test.datastore:v1:{',
                           key_suffix='}',
                           max_multikey_batch_size=3)


@pytest.fixture
def data_store(params, fake_client):
    store = ClusterDataStore(params, [fake_client])
    store.ready = True
    return store


@pytest.fixture
def make_keys(params):
    def _make_keys(ids) -> List[str]:
        return [f'{params.key_prefix}{i}{params.key_suffix}' for i in ids]
    return _make_keys
