"""
Query List Collection
=====================

Reads query key lists (one comma-separated line per query) and distributes
them into one bucket per worker.
"""

import logging
from enum import Enum
from typing import Callable, Iterable, List, Optional

from valkey_workload.exceptions import InvalidArgument

logger = logging.getLogger(__name__)


class OperationMode(Enum):
    """How queries are spread over the worker buckets."""
    DIVIDE = 'divide'
    REPLICATE = 'replicate'


def parse_line(line: str) -> List[str]:
    """Split one CSV line into keys, dropping blank fields."""
    return [field.strip() for field in line.split(',') if field.strip()]


class QueryListCollector:
    """
    Holds one ordered list of queries per bucket.

    In DIVIDE mode the i-th query goes to bucket i % bucket_count; in
    REPLICATE mode every bucket receives every query.

    Attributes:
        bucket_count (int): Number of buckets
        mode (OperationMode): Distribution policy
    """

    def __init__(self, bucket_count: int, mode: OperationMode = OperationMode.DIVIDE):
        if bucket_count < 1:
            raise InvalidArgument(f'bucket count must be positive, got {bucket_count}')
        self.bucket_count = bucket_count
        self.mode = mode
        self._query_count = 0
        self._buckets: List[List[List[str]]] = [[] for _ in range(bucket_count)]

    def add_query(self, keys: List[str]):
        if self.mode is OperationMode.DIVIDE:
            self._buckets[self._query_count % self.bucket_count].append(keys)
        else:
            for bucket in self._buckets:
                bucket.append(keys)
        self._query_count += 1

    def distribute(self, queries: Iterable[List[str]]) -> List[List[List[str]]]:
        """
        Add queries in order and return all buckets.

        Returns:
            List[List[List[str]]]: Bucket index -> queries for that worker
        """
        for keys in queries:
            self.add_query(keys)
        return self.buckets()

    def parse_csv_into_buckets(self, filename: str,
                               key_transform: Optional[Callable[[str], str]] = None) -> List[List[List[str]]]:
        """
        Read one query per CSV line into the buckets. Blank lines are skipped.

        Args:
            filename (str): Path to the CSV file
            key_transform (Callable, optional): Applied to every field, e.g.
                to wrap identifiers into cluster keys

        Raises:
            FileNotFoundError: If filename does not exist
        """
        with open(filename) as csv_file:
            for line in csv_file:
                keys = parse_line(line)
                if not keys:
                    continue
                if key_transform is not None:
                    keys = [key_transform(key) for key in keys]
                self.add_query(keys)

        logger.info('After parse, bucket sizes: %s',
                    ', '.join(f'{i}:{size}' for i, size in enumerate(self.bucket_sizes())))
        return self.buckets()

    def get_bucket(self, bucket_id: int) -> List[List[str]]:
        # copies so a runner cannot mutate the shared query lists
        return [list(keys) for keys in self._buckets[bucket_id]]

    def buckets(self) -> List[List[List[str]]]:
        return [self.get_bucket(i) for i in range(self.bucket_count)]

    def bucket_sizes(self) -> List[int]:
        return [len(bucket) for bucket in self._buckets]


def distribute(queries: Iterable[List[str]], bucket_count: int,
               mode: OperationMode = OperationMode.DIVIDE) -> List[List[List[str]]]:
    """Shorthand for QueryListCollector(bucket_count, mode).distribute(queries)."""
    return QueryListCollector(bucket_count, mode).distribute(queries)
