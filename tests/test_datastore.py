import asyncio
import json
import logging

import pytest

from valkey_workload.datastore import (
    DATASET_META_NOT_FOUND,
    UNKNOWN_DATASET_VERSION,
    UNKNOWN_SERVER_VERSION,
    ClusterDataStore,
    parse_dataset_version,
    parse_server_version,
)
from valkey_workload.exceptions import ConfigurationError, DataStoreNotReady
from valkey_workload.hashslot import get_hashslot_generator

METADATA = {
    'data_bundle': [{'name': 'roads', 'version': '2024.03'}],
    'data_sources': {'roads 2024.03': {'basemap': {'id': 'bm-7781'}}},
}


def test_fetch_by_keys_round_trip(data_store, fake_client, make_keys):
    keys = make_keys(range(25))
    fake_client.data = {key: f'value-{key}'.encode() for key in keys}

    request = keys + keys[:5]
    result = asyncio.run(data_store.fetch_by_keys(request))

    assert len(result) == 25
    assert result.requested == 25
    assert all(result[key] == f'value-{key}'.encode() for key in keys)
    # the request list is deduplicated in place
    assert sorted(request) == sorted(keys)


def test_fetch_by_keys_missing_keys(data_store, fake_client, make_keys):
    keys = make_keys(range(4))
    fake_client.data = {keys[0]: b'present'}

    result = asyncio.run(data_store.fetch_by_keys(list(keys)))

    assert result[keys[0]] == b'present'
    assert all(result[key] is None for key in keys[1:])


def test_fetch_by_keys_issues_single_slot_bounded_batches(data_store, fake_client):
    keys = [f'order:{{{tag}}}:{i}' for tag in ('a', 'b', 'c') for i in range(7)]
    fake_client.data = {key: b'x' for key in keys}

    result = asyncio.run(data_store.fetch_by_keys(list(keys)))

    assert len(result) == len(keys)
    generator = get_hashslot_generator()
    issued = []
    for batch in fake_client.mget_calls:
        assert len(batch) <= data_store.multikey_batch_size
        assert len({generator.partition_id(key) for key in batch}) == 1
        issued.extend(batch)
    assert sorted(issued) == sorted(keys)
    # 3 slots of 7 keys with batches of 3
    assert len(fake_client.mget_calls) == 9


def test_fetch_by_keys_index_by_raw_key(data_store, fake_client, make_keys):
    keys = make_keys(['10', '20'])
    fake_client.data = {keys[0]: b'ten', keys[1]: b'twenty'}

    result = asyncio.run(data_store.fetch_by_keys(keys, index_by_raw_key=True))

    assert result == {'10': b'ten', '20': b'twenty'}


def test_fetch_by_keys_partial_failure(data_store, fake_client, make_keys, caplog):
    keys = make_keys(range(6))
    fake_client.data = {key: b'v' for key in keys}
    fake_client.failing_keys = {keys[2]}

    result = asyncio.run(data_store.fetch_by_keys(list(keys)))

    assert keys[2] not in result
    assert len(result) < len(keys)
    assert result.failed_batches == 1
    assert result.mismatches == 0
    assert 'result count mismatch' in caplog.text


def test_fetch_by_keys_counts_short_reply_once(data_store, fake_client, caplog):
    keys = [f'q:{{7}}:{i}' for i in range(3)]
    fake_client.data = {key: b'v' for key in keys}
    fake_client.short_reply_keys = {keys[0]}

    result = asyncio.run(data_store.fetch_by_keys(list(keys)))

    assert len(result) == 2
    assert result.mismatches == 1
    assert result.failed_batches == 0
    assert 'result count mismatch' in caplog.text


def test_fetch_by_keys_empty(data_store, fake_client):
    result = asyncio.run(data_store.fetch_by_keys([]))
    assert result == {}
    assert fake_client.mget_calls == []


def test_fetch_round_robins_clients(params):
    from tests.conftest import FakeClusterClient

    clients = [FakeClusterClient(), FakeClusterClient()]
    store = ClusterDataStore(params, clients)
    asyncio.run(store.fetch_by_keys(['a', 'b']))

    assert all(client.mget_calls for client in clients)


def test_fetch_without_clients_raises(params):
    store = ClusterDataStore(params, [])
    with pytest.raises(DataStoreNotReady):
        asyncio.run(store.fetch_by_keys(['a']))


def test_dataset_metadata_key(data_store):
    assert data_store.dataset_metadata_key == 'test.datastore:v1:{dataset_metadata}'


def test_dataset_version(data_store, fake_client):
    fake_client.data[data_store.dataset_metadata_key] = json.dumps(METADATA).encode()

    assert asyncio.run(data_store.dataset_metadata()) == json.dumps(METADATA)
    assert asyncio.run(data_store.dataset_version()) == 'bm-7781'


def test_dataset_metadata_not_found(data_store):
    assert asyncio.run(data_store.dataset_metadata()) == DATASET_META_NOT_FOUND
    assert asyncio.run(data_store.dataset_version()) == UNKNOWN_DATASET_VERSION


def test_dataset_metadata_on_cluster_error(data_store, fake_client):
    fake_client.fail_commands = True
    assert asyncio.run(data_store.dataset_metadata()) == DATASET_META_NOT_FOUND


@pytest.mark.parametrize('document', [
    'not json',
    '{}',
    '{"data_bundle": []}',
    '{"data_bundle": [{"name": "roads", "version": "1"}], "data_sources": {}}',
    '[1, 2]',
])
def test_parse_dataset_version_falls_back(document):
    assert parse_dataset_version(document) == UNKNOWN_DATASET_VERSION


def test_parse_server_version():
    assert parse_server_version('# Server\r\nredis_version:7.2.4\r\nos:Linux\r\n') == '7.2.4'
    assert parse_server_version('redis_version:6.0.0') == '6.0.0'
    assert parse_server_version('# Server\r\nvalkey_mode:cluster\r\n') == UNKNOWN_SERVER_VERSION
    assert parse_server_version('') == UNKNOWN_SERVER_VERSION


def test_server_version_routes_by_hashtag(data_store, fake_client):
    assert asyncio.run(data_store.server_version('{42}')) == '7.2.4'
    command, route = fake_client.commands[-1]
    assert command == ['INFO']
    assert route is not None


def test_server_version_on_cluster_error(data_store, fake_client):
    fake_client.fail_commands = True
    assert asyncio.run(data_store.server_info()) == ''
    assert asyncio.run(data_store.server_version()) == UNKNOWN_SERVER_VERSION


def test_wait_until_ready(params, fake_client, caplog):
    caplog.set_level(logging.INFO)
    store = ClusterDataStore(params, [fake_client])

    assert asyncio.run(store.wait_until_ready())
    assert store.ready
    store.ensure_ready()
    assert 'cluster_state:ok' in caplog.text


def test_wait_until_ready_gives_up(params, fake_client):
    fake_client.fail_commands = True
    store = ClusterDataStore(params, [fake_client])

    assert not asyncio.run(store.wait_until_ready(retry_count=3, retry_delay_ms=1))
    assert not store.ready
    assert len(fake_client.commands) == 3
    with pytest.raises(DataStoreNotReady):
        store.ensure_ready()


def test_wait_until_ready_retries_empty_reply(params, fake_client):
    fake_client.cluster_info = b''
    store = ClusterDataStore(params, [fake_client])

    assert not asyncio.run(store.wait_until_ready(retry_count=2, retry_delay_ms=1))
    assert len(fake_client.commands) == 2


def test_create_validates_params(params):
    params.password = ''
    with pytest.raises(ConfigurationError) as excinfo:
        asyncio.run(ClusterDataStore.create(params))
    assert excinfo.value.field == 'password'


def test_close(data_store, fake_client):
    asyncio.run(data_store.close())
    assert fake_client.closed
    assert not data_store.ready
    assert data_store.clients == []
