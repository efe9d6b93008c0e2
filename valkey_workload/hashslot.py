"""
Hashslot Calculation
====================

Maps keys to Valkey/Redis Cluster hashslots and groups keys by slot.

The slot of a key is CRC16(hashtag) & (MAX_SLOTS - 1), where the CRC is
the CCITT/XMODEM variant used by the cluster (polynomial 0x1021, initial
remainder 0, no reflection, no final XOR) and the hashtag follows the
cluster hashtag rules implemented in hash_tag().

Three interchangeable engines compute the CRC:

- ``locked``: one shared table-driven accumulator, reset and fed under a lock
- ``ephemeral``: a fresh accumulator for every call
- ``binascii``: the C implementation in ``binascii.crc_hqx``

All engines return identical results for every input.
"""

import binascii
import threading
from typing import Dict, List, Optional

from valkey_workload.exceptions import InvalidArgument
from valkey_workload.keys import remove_duplicates

MAX_SLOTS = 16384

CRC16_POLY = 0x1021
CRC16_INITIAL_REMAINDER = 0x0000


def _build_crc16_table() -> List[int]:
    table = []
    for byte in range(256):
        crc = byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ CRC16_POLY
            else:
                crc <<= 1
            crc &= 0xFFFF
        table.append(crc)
    return table


_CRC16_TABLE = _build_crc16_table()


class Crc16Accumulator:
    """
    Table-driven CRC16-CCITT accumulator.

    Not safe for concurrent use: process_bytes() mutates the running
    remainder.
    """

    def __init__(self, initial_remainder: int = CRC16_INITIAL_REMAINDER):
        self.remainder = initial_remainder

    def reset(self, initial_remainder: int = CRC16_INITIAL_REMAINDER):
        self.remainder = initial_remainder

    def process_bytes(self, data: bytes):
        crc = self.remainder
        for byte in data:
            crc = ((crc << 8) & 0xFFFF) ^ _CRC16_TABLE[((crc >> 8) ^ byte) & 0xFF]
        self.remainder = crc

    def checksum(self) -> int:
        return self.remainder


def hash_tag(key: str) -> str:
    """
    Return the string hashed to find the slot of key.

    If key holds a '{' followed later by a '}' with at least one
    character between them, the hashtag is the substring between the
    first '{' and the first '}' after it. Otherwise it is the whole key.

    Args:
        key (str): Cluster key

    Returns:
        str: The hashtag for key

    Raises:
        InvalidArgument: If key is empty
    """
    if not key:
        raise InvalidArgument('key must be a non-empty string')

    open_pos = key.find('{')
    if open_pos == -1:
        return key

    close_pos = key.find('}', open_pos + 1)
    if close_pos == -1 or close_pos == open_pos + 1:
        return key

    return key[open_pos + 1:close_pos]


class HashSlotGenerator:
    """Base class for hashslot engines; subclasses implement crc16()."""

    name = 'base'

    def crc16(self, data: bytes) -> int:
        raise NotImplementedError

    def hash_tag(self, key: str) -> str:
        return hash_tag(key)

    def partition_id(self, key: str) -> int:
        """
        Calculate the hashslot for key.

        Args:
            key (str): Cluster key

        Returns:
            int: Slot in [0, MAX_SLOTS)

        Raises:
            InvalidArgument: If key is empty
        """
        return self.crc16(hash_tag(key).encode('utf-8')) & (MAX_SLOTS - 1)


class LockedHashSlotGenerator(HashSlotGenerator):
    """Reuses a single accumulator; each call is a critical section."""

    name = 'locked'

    def __init__(self):
        self._accumulator = Crc16Accumulator()
        self._lock = threading.Lock()

    def crc16(self, data: bytes) -> int:
        with self._lock:
            self._accumulator.reset()
            self._accumulator.process_bytes(data)
            return self._accumulator.checksum()


class EphemeralHashSlotGenerator(HashSlotGenerator):
    """Allocates a new accumulator for each call."""

    name = 'ephemeral'

    def crc16(self, data: bytes) -> int:
        accumulator = Crc16Accumulator()
        accumulator.process_bytes(data)
        return accumulator.checksum()


class BinasciiHashSlotGenerator(HashSlotGenerator):
    """CRC-CCITT from the binascii C extension."""

    name = 'binascii'

    def crc16(self, data: bytes) -> int:
        return binascii.crc_hqx(data, CRC16_INITIAL_REMAINDER)


HASHSLOT_ENGINES = {
    LockedHashSlotGenerator.name: LockedHashSlotGenerator,
    EphemeralHashSlotGenerator.name: EphemeralHashSlotGenerator,
    BinasciiHashSlotGenerator.name: BinasciiHashSlotGenerator,
}


def get_hashslot_generator(name: str = LockedHashSlotGenerator.name) -> HashSlotGenerator:
    """
    Build the hashslot engine registered under name.

    Raises:
        InvalidArgument: If no engine has that name
    """
    try:
        return HASHSLOT_ENGINES[name]()
    except KeyError:
        raise InvalidArgument(f"unknown hashslot engine '{name}', expected one of: "
                              f"{', '.join(sorted(HASHSLOT_ENGINES))}")


def group_keys_by_hashslot(keys: List[str],
                           generator: Optional[HashSlotGenerator] = None) -> Dict[int, List[str]]:
    """
    Divide keys into groups that each hash to a single slot.

    keys is deduplicated in place first. Within a group, keys keep the
    order they have after deduplication.

    Args:
        keys (List[str]): Cluster keys, possibly spanning many slots
        generator (HashSlotGenerator, optional): Engine to use

    Returns:
        Dict[int, List[str]]: Slot -> keys owned by that slot
    """
    if generator is None:
        generator = get_hashslot_generator()

    remove_duplicates(keys)

    groups: Dict[int, List[str]] = {}
    for key in keys:
        slot = generator.partition_id(key)
        if slot in groups:
            groups[slot].append(key)
        else:
            groups[slot] = [key]
    return groups
