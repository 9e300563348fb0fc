import numpy as np

from ethcore import reference
from ethcore.cache_builder import build_cache, cache_seed, validate_cache
from ethcore.constants import CACHE_ROUNDS
from ethcore.keccak import keccak_512
from ethcore.sizing import cache_item_count

from .conftest import SMALL_CACHE_ITEMS


def test_seed_is_keccak512_of_le_epoch():
    assert cache_seed(0) == keccak_512(b"\x00\x00\x00\x00")
    assert cache_seed(258) == keccak_512(b"\x02\x01\x00\x00")


def test_deterministic():
    a = build_cache(0, SMALL_CACHE_ITEMS)
    b = build_cache(0, SMALL_CACHE_ITEMS)
    assert a.shape == (SMALL_CACHE_ITEMS, 16)
    assert a.dtype == np.uint32
    assert a.tobytes() == b.tobytes()


def test_epoch_changes_cache():
    assert build_cache(0, SMALL_CACHE_ITEMS).tobytes() != build_cache(1, SMALL_CACHE_ITEMS).tobytes()


def test_matches_reference_small():
    for epoch in (0, 3):
        expected = np.array(reference.make_cache(epoch, SMALL_CACHE_ITEMS), dtype=np.uint32)
        assert np.array_equal(build_cache(epoch, SMALL_CACHE_ITEMS), expected)


def test_single_item_cache_mixes_to_zero():
    # The only item is its own parent, so the first round clears it
    assert not build_cache(0, 1).any()


def test_progress_reports_every_phase():
    calls = []
    build_cache(0, 11, progress=lambda done, total: calls.append((done, total)))
    total = 11 * (1 + CACHE_ROUNDS)
    assert calls[0] == (11, total)
    assert calls[-1] == (total, total)
    assert len(calls) == 1 + CACHE_ROUNDS


def test_epoch0_matches_reference(epoch0_cache, epoch0_reference_cache):
    assert epoch0_cache.shape == (cache_item_count(0), 16)
    assert validate_cache(epoch0_cache, 0)
    assert np.array_equal(epoch0_cache, np.array(epoch0_reference_cache, dtype=np.uint32))


def test_validate_cache_rejects_wrong_shape():
    assert not validate_cache(build_cache(0, SMALL_CACHE_ITEMS), 0)
