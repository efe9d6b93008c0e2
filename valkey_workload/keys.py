"""
Key helpers: deduplication and the prefix/suffix wrapping that turns a
logical identifier into a cluster key and back.
"""

from typing import List, Union


def remove_duplicates(keys: List[str]) -> List[str]:
    """
    Remove duplicate entries from keys, in place.

    The surviving keys are left sorted; callers must not rely on the
    original ordering afterwards.

    Args:
        keys (List[str]): Keys to deduplicate

    Returns:
        List[str]: The same list object, deduplicated
    """
    keys[:] = sorted(set(keys))
    return keys


def key_for_id(key_prefix: str, key_suffix: str, identifier: Union[str, int]) -> str:
    """Wrap a logical identifier into its cluster key."""
    return f'{key_prefix}{identifier}{key_suffix}'


def id_for_key(key_prefix: str, key_suffix: str, key: str) -> str:
    """
    Strip the configured prefix and suffix from a cluster key.

    Keys that do not carry both the prefix and the suffix are returned
    unchanged.
    """
    if len(key) < len(key_prefix) + len(key_suffix):
        return key
    if not key.startswith(key_prefix) or not key.endswith(key_suffix):
        return key
    return key[len(key_prefix):len(key) - len(key_suffix)]
