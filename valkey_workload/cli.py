"""
Valkey Workload Runner
======================

Runs a CSV file of multi-key fetch queries against a Valkey/Redis cluster
with one concurrent runner per thread and prints latency reports.

Each line of the data file is one query: a comma-separated list of keys
(or, with --ids, identifiers wrapped into keys with the key prefix/suffix).
Connection coordinates come from REDIS_HOST, REDIS_PORT, REDIS_USER and
REDIS_PASS.
"""

import argparse
import asyncio
import logging
import os
import sys
from functools import partial
from typing import List, Optional

from valkey_workload.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_KEY_PREFIX,
    DEFAULT_KEY_SUFFIX,
    DataStoreParams,
)
from valkey_workload.datastore import ClusterDataStore
from valkey_workload.exceptions import ConfigurationError, DataStoreNotReady
from valkey_workload.harness import HarnessResult, run_workload
from valkey_workload.hashslot import HASHSLOT_ENGINES
from valkey_workload.keys import key_for_id
from valkey_workload.queries import OperationMode, QueryListCollector
from valkey_workload.visualizer import write_summary_csv

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        argparse.Namespace: Parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        description='Run a cluster MGET workload using a CSV file of queries. '
                    'By default the queries are divided evenly across threads.',
        add_help=False)

    parser.add_argument('--help', '-h', action='help', default=argparse.SUPPRESS,
                        help='Show this help message and exit')

    basic_group = parser.add_argument_group('Basic options')
    basic_group.add_argument('-t', '--threads', type=int, default=0,
                             help='Number of concurrent runners')
    basic_group.add_argument('-f', '--file', dest='datafile', default='',
                             help='Data file to use (csv format)')
    basic_group.add_argument('-r', '--replicate', action='store_true',
                             help='Replicate the data across threads instead of dividing it')
    basic_group.add_argument('--runs', type=int, default=2,
                             help='Number of workload passes (default: 2)')

    key_group = parser.add_argument_group('Key options')
    key_group.add_argument('--ids', action='store_true',
                           help='Data file holds identifiers to wrap with the key prefix/suffix')
    key_group.add_argument('--key-prefix', default=DEFAULT_KEY_PREFIX,
                           help=f"Key prefix (default: '{DEFAULT_KEY_PREFIX}')")
    key_group.add_argument('--key-suffix', default=DEFAULT_KEY_SUFFIX,
                           help=f"Key suffix (default: '{DEFAULT_KEY_SUFFIX}')")

    fetch_group = parser.add_argument_group('Fetch options')
    fetch_group.add_argument('--batch-size', type=int, default=DEFAULT_BATCH_SIZE,
                             help=f'Maximum keys per MGET, 0 to disable splitting (default: {DEFAULT_BATCH_SIZE})')
    fetch_group.add_argument('--hashslot-engine', default='locked', choices=sorted(HASHSLOT_ENGINES),
                             help='CRC16 engine used to group keys by hashslot (default: locked)')

    conn_group = parser.add_argument_group('Connection options')
    conn_group.add_argument('--pool-size', type=int, default=3,
                            help='Number of cluster clients (default: 3)')
    conn_group.add_argument('--request-timeout', type=int, default=0,
                            help='Request timeout in milliseconds, 0 for the client default')
    conn_group.add_argument('--tls', action='store_true',
                            help='Use TLS connection')
    conn_group.add_argument('--no-replicas', action='store_true',
                            help='Read from primaries only')

    output_group = parser.add_argument_group('Output options')
    output_group.add_argument('--summary-csv',
                              help='Write one row per runner per pass to this CSV file')
    output_group.add_argument('-v', '--verbose', action='store_true',
                              help='Log data store activity')

    return parser.parse_args(argv)


def print_banner(args: argparse.Namespace, mode: OperationMode):
    print()
    print('Running test with:')
    print(f'    datafile: {args.datafile}')
    print(f'    threadCount: {args.threads}')
    print(f'    mode: {mode.value}')
    print()


async def run(args: argparse.Namespace) -> int:
    """
    Execute the workload described by args.

    Returns:
        int: Process exit status
    """
    if args.threads < 1:
        print('error: invalid thread count requested', file=sys.stderr)
        return 1
    if not os.path.isfile(args.datafile):
        print(f'error: data file does not exist at: {args.datafile}', file=sys.stderr)
        return 1

    mode = OperationMode.REPLICATE if args.replicate else OperationMode.DIVIDE
    print_banner(args, mode)

    collector = QueryListCollector(args.threads, mode)
    key_transform = partial(key_for_id, args.key_prefix, args.key_suffix) if args.ids else None
    collector.parse_csv_into_buckets(args.datafile, key_transform)
    print('After parse, bucket sizes:')
    for i, size in enumerate(collector.bucket_sizes()):
        print(f'    bucket: {i}  -- {size}')
    print()

    try:
        params = DataStoreParams.from_env(key_prefix=args.key_prefix,
                                          key_suffix=args.key_suffix,
                                          prefer_read_replicas=not args.no_replicas,
                                          use_tls=args.tls,
                                          pool_size=args.pool_size,
                                          request_timeout_ms=args.request_timeout,
                                          max_multikey_batch_size=args.batch_size,
                                          hashslot_engine=args.hashslot_engine)
        store = await ClusterDataStore.create(params)
    except ConfigurationError as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1

    try:
        store.ensure_ready()
        print(f'ClusterDataStore connected to server version: {await store.server_version()}')
        print(f'ClusterDataStore dataset version: {await store.dataset_version()}')
        print()

        results: List[HarnessResult] = []
        for n in range(1, args.runs + 1):
            results.append(await run_workload(f'run{n}', collector, store))
            print()
    except DataStoreNotReady as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1
    finally:
        await store.close()

    if args.summary_csv:
        write_summary_csv(results, args.summary_csv)
        print(f'Summary written to {args.summary_csv}')

    print('Tests complete')
    return 0


def main(argv: Optional[List[str]] = None):
    """Entry point of valkey-workload."""
    args = parse_arguments(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    sys.exit(asyncio.run(run(args)))


if __name__ == '__main__':
    main()
