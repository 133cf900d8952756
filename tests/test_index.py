import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from dupegraph.exceptions import SimilarityIndexError
from dupegraph.hashing import hamming_distance
from dupegraph.index import ExactHashMap, SimilarityIndex, band_layout


def flip(value: int, *bits: int) -> int:
    for bit in bits:
        value ^= 1 << bit
    return value


def test_band_layout_covers_every_bit_once():
    layout = band_layout(64, 11)
    assert len(layout) == 11
    covered = 0
    for shift, mask in layout:
        band = mask << shift
        assert covered & band == 0
        covered |= band
    assert covered == (1 << 64) - 1


def test_query_returns_everything_within_radius():
    index = SimilarityIndex(max_radius=10, shards=4)
    base = 0x0123_4567_89AB_CDEF
    index.insert(1, base)
    index.insert(2, flip(base, 0, 17, 33))
    index.insert(3, flip(base, *range(0, 60, 5)))
    assert index.query(base, 3) == {(1, 0), (2, 3)}
    assert index.query(base, 0) == {(1, 0)}
    assert (3, 12) not in index.query(base, 10)


def test_query_matches_brute_force():
    rng = random.Random(1234)
    index = SimilarityIndex(max_radius=8, shards=8)
    base = rng.getrandbits(64)
    stored = {}
    for record_id in range(300):
        value = flip(base, *rng.sample(range(64), rng.randint(0, 14)))
        stored[record_id] = value
        index.insert(record_id, value)
    for radius in (0, 2, 5, 8):
        expected = {
            (record_id, hamming_distance(base, value))
            for record_id, value in stored.items()
            if hamming_distance(base, value) <= radius
        }
        assert index.query(base, radius) == expected


def test_query_wider_than_index_radius_falls_back_to_scan():
    index = SimilarityIndex(max_radius=2, shards=2)
    index.insert(1, 0)
    index.insert(2, (1 << 6) - 1)
    assert index.query(0, 6) == {(1, 0), (2, 6)}


def test_reinsert_is_idempotent_and_conflicts_are_rejected():
    index = SimilarityIndex(max_radius=4)
    assert index.insert(7, 0xFF, exact_hash="sha-a")
    assert not index.insert(7, 0xFF, exact_hash="sha-a")
    assert len(index) == 1
    assert index.query(0xFF, 0) == {(7, 0)}
    with pytest.raises(SimilarityIndexError):
        index.insert(7, 0xFE)


def test_invalid_arguments_are_rejected():
    with pytest.raises(SimilarityIndexError):
        SimilarityIndex(max_radius=64)
    with pytest.raises(SimilarityIndexError):
        SimilarityIndex(shards=0)
    index = SimilarityIndex()
    with pytest.raises(SimilarityIndexError):
        index.insert(1, 1 << 64)
    with pytest.raises(SimilarityIndexError):
        index.query(0, -1)


def test_exact_lookup_groups_byte_identical_records():
    index = SimilarityIndex()
    index.insert(1, 10, exact_hash="same")
    index.insert(2, 11, exact_hash="same")
    index.insert(3, 12, exact_hash="other")
    assert index.lookup_exact("same") == {1, 2}
    assert index.lookup_exact("missing") == set()
    assert index.exact.groups() == [[1, 2]]


def test_concurrent_inserts_and_queries():
    index = SimilarityIndex(max_radius=6, shards=16)
    values = {record_id: (record_id * 0x9E3779B97F4A7C15) % (1 << 64) for record_id in range(500)}

    def insert(record_id):
        index.insert(record_id, values[record_id])
        return index.query(values[record_id], 0)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(insert, range(500)))

    assert len(index) == 500
    for record_id, found in enumerate(results):
        assert (record_id, 0) in found


def test_exact_hash_map_is_independent():
    exact = ExactHashMap()
    exact.add("h", 2)
    exact.add("h", 1)
    assert exact.lookup("h") == {1, 2}
    assert exact.groups() == [[1, 2]]
