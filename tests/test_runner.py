import asyncio

import pytest

from valkey_workload.exceptions import InvalidArgument
from valkey_workload.runner import QueryRunner, RunnerState


def test_runner_end_to_end(data_store, fake_client, make_keys):
    queries = [make_keys([1, 2, 3]), make_keys([4, 5])]
    fake_client.data = {key: b'v' for query in queries for key in query}

    runner = QueryRunner('run1', 0, data_store, queries)
    assert runner.state is RunnerState.IDLE
    assert runner.ready_to_run()
    assert not runner.run_complete()
    assert runner.get_report() is None

    report = asyncio.run(runner.run())

    assert runner.run_complete()
    assert runner.state is RunnerState.COMPLETE
    assert runner.get_report() is report
    assert runner.get_report() is report
    assert report.name == 'run1.0'
    assert report.query_count == 2
    assert report.success_count == 2
    assert report.total_keys == 5
    assert report.max_keys_per_query == 3
    assert report.fetched_object_count == 5
    assert report.mismatch_count == 0
    assert len(report.latencies_us) == 2
    assert sorted(report.percentiles_us) == [50, 90, 95, 99, 100]
    assert report.percentiles_us[100] == max(report.latencies_us)
    assert report.average_us == sum(report.latencies_us) / 2


def test_runner_does_not_mutate_its_queries(data_store, make_keys):
    query = make_keys([3, 1, 3, 2])
    runner = QueryRunner('run1', 0, data_store, [query])

    asyncio.run(runner.run())

    assert query == make_keys([3, 1, 3, 2])
    assert runner.get_report().total_keys == 4


def test_runner_with_empty_bucket_is_not_ready(data_store):
    runner = QueryRunner('run1', 3, data_store, [])
    assert not runner.ready_to_run()
    with pytest.raises(InvalidArgument):
        asyncio.run(runner.run())


def test_runner_runs_once(data_store, make_keys):
    runner = QueryRunner('run1', 0, data_store, [make_keys([1])])
    asyncio.run(runner.run())
    assert not runner.ready_to_run()
    with pytest.raises(InvalidArgument):
        asyncio.run(runner.run())


def test_runner_counts_failed_queries(data_store, make_keys):
    queries = [make_keys([1]), [''], make_keys([2])]
    runner = QueryRunner('run1', 1, data_store, queries)

    report = asyncio.run(runner.run())

    assert report.query_count == 3
    assert report.success_count == 2
    assert len(report.latencies_us) == 3


def test_runner_reports_partial_results(data_store, fake_client, make_keys):
    query = make_keys(range(4))
    fake_client.data = {key: b'v' for key in query}
    fake_client.failing_keys = {query[0]}

    report = asyncio.run(QueryRunner('run1', 0, data_store, [query]).run())

    assert report.success_count == 1
    assert report.fetched_object_count < 4
    assert report.mismatch_count == 1


def test_report_render(data_store, make_keys):
    report = asyncio.run(QueryRunner('run2', 4, data_store, [make_keys([1]), make_keys([2])]).run())
    text = report.render()

    assert text.startswith('Runner report: 4\n')
    assert '  Input query count: 2\n' in text
    assert '  Query successes count: 2\n' in text
    assert '  Input key count: 2\n' in text
    assert 'milliseconds' in text
    assert 'run2.4 query times elapsed(microseconds)    p50: ' in text
    assert 'run2.4 query times elapsed(microseconds)   p100: ' in text
    assert 'run2.4 query times elapsed(microseconds)    avg: ' in text
