"""
Latency statistics used by the runner reports.
"""

import logging
from typing import Sequence

from valkey_workload.exceptions import InvalidArgument

logger = logging.getLogger(__name__)

REPORT_PERCENTILES = (50, 90, 95, 99, 100)

# Below this many samples percentiles say little about the distribution
MIN_RELIABLE_SAMPLES = 20


def find_percentile(percentile: int, data: Sequence[float]) -> float:
    """
    Find a percentile with the nearest-rank method.

    The result is always one of the samples: the value at 1-indexed rank
    ceil(n * percentile / 100) of the sorted data. For p95 use
    ``find_percentile(95, data)``.

    Args:
        percentile (int): Percentile in [1, 100]
        data (Sequence[float]): Samples, in any order

    Returns:
        float: The percentile-th sample

    Raises:
        InvalidArgument: If percentile is out of range or data is empty
    """
    if isinstance(percentile, bool) or not isinstance(percentile, int) or not 1 <= percentile <= 100:
        raise InvalidArgument('percentile must be an integer between 1 and 100')

    count = len(data)
    if count == 0:
        raise InvalidArgument('data cannot be empty')

    if count < MIN_RELIABLE_SAMPLES:
        logger.warning('percentile values can be misleading for small datasets (%d samples)', count)

    # integer ceil(count * percentile / 100), minus one for 0-indexing
    index = (count * percentile + 99) // 100 - 1
    return sorted(data)[index]


def find_average(data: Sequence[float]) -> float:
    """
    Arithmetic mean of data.

    Raises:
        InvalidArgument: If data is empty
    """
    if not data:
        raise InvalidArgument('data cannot be empty')
    return sum(data) / len(data)
