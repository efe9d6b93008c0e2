from valkey_workload.keys import id_for_key, key_for_id, remove_duplicates

PREFIX = 'test.datastore:v1:{'
SUFFIX = '}'


def test_remove_duplicates_in_place():
    keys = ['c', 'a', 'c', 'b', 'a']
    result = remove_duplicates(keys)
    assert result is keys
    assert keys == ['a', 'b', 'c']


def test_key_for_id():
    assert key_for_id(PREFIX, SUFFIX, 42) == 'test.datastore:v1:{42}'
    assert key_for_id(PREFIX, SUFFIX, 'abc') == 'test.datastore:v1:{abc}'


def test_id_for_key_strips_prefix_and_suffix():
    assert id_for_key(PREFIX, SUFFIX, 'test.datastore:v1:{42}') == '42'
    assert id_for_key(PREFIX, SUFFIX, key_for_id(PREFIX, SUFFIX, '')) == ''


def test_id_for_key_passes_through_unmatched_keys():
    assert id_for_key(PREFIX, SUFFIX, 'other:{42}') == 'other:{42}'
    assert id_for_key(PREFIX, SUFFIX, 'test.datastore:v1:{42') == 'test.datastore:v1:{42'
    assert id_for_key(PREFIX, SUFFIX, '}') == '}'
