"""Persisted datasets: round trip, stale detection, engine reuse."""

import json

import numpy as np
import pytest

import cpu_core.engine
from ethcore import Engine
from ethcore.dataset_cache import DatasetCache, checksum_items
from ethcore.exceptions import DatasetCacheError

from .conftest import SMALL_CACHE_ITEMS, SMALL_DATASET_ITEMS


@pytest.fixture
def items():
    rng = np.random.default_rng(11)
    return rng.integers(0, 1 << 32, size=(SMALL_DATASET_ITEMS, 16), dtype=np.uint64).astype(np.uint32)


@pytest.fixture
def cache(tmp_path):
    return DatasetCache(str(tmp_path / "dags"))


def test_store_and_load(cache, items):
    checksum = cache.store(3, items, SMALL_CACHE_ITEMS)
    assert checksum == checksum_items(items)

    data_path, meta_path = cache.paths(3, SMALL_DATASET_ITEMS)
    assert data_path.name == f"epoch-3-{SMALL_DATASET_ITEMS}.dag"
    assert data_path.stat().st_size == SMALL_DATASET_ITEMS * 64
    meta = json.loads(meta_path.read_text())
    assert meta["epoch"] == 3
    assert meta["cache_items"] == SMALL_CACHE_ITEMS
    assert meta["checksum"] == checksum

    loaded = cache.load(3, SMALL_DATASET_ITEMS, SMALL_CACHE_ITEMS)
    assert loaded.dtype == np.uint32
    assert (loaded == items).all()


def test_missing_entry(cache):
    assert cache.load(0, SMALL_DATASET_ITEMS, SMALL_CACHE_ITEMS) is None


def test_corrupted_data_discarded(cache, items):
    cache.store(0, items, SMALL_CACHE_ITEMS)
    data_path, meta_path = cache.paths(0, SMALL_DATASET_ITEMS)
    raw = bytearray(data_path.read_bytes())
    raw[100] ^= 0xFF
    data_path.write_bytes(bytes(raw))

    assert cache.load(0, SMALL_DATASET_ITEMS, SMALL_CACHE_ITEMS) is None
    assert not data_path.exists()
    assert not meta_path.exists()


def test_truncated_data_discarded(cache, items):
    cache.store(0, items, SMALL_CACHE_ITEMS)
    data_path, _ = cache.paths(0, SMALL_DATASET_ITEMS)
    data_path.write_bytes(data_path.read_bytes()[:-64])
    assert cache.load(0, SMALL_DATASET_ITEMS, SMALL_CACHE_ITEMS) is None


def test_mismatched_cache_size_is_stale(cache, items):
    cache.store(0, items, SMALL_CACHE_ITEMS)
    assert cache.load(0, SMALL_DATASET_ITEMS, SMALL_CACHE_ITEMS + 2) is None


def test_unreadable_metadata_is_stale(cache, items):
    cache.store(0, items, SMALL_CACHE_ITEMS)
    _, meta_path = cache.paths(0, SMALL_DATASET_ITEMS)
    meta_path.write_text("{not json")
    assert cache.load(0, SMALL_DATASET_ITEMS, SMALL_CACHE_ITEMS) is None


def test_remove(cache, items):
    cache.store(0, items, SMALL_CACHE_ITEMS)
    cache.remove(0, SMALL_DATASET_ITEMS)
    assert cache.load(0, SMALL_DATASET_ITEMS, SMALL_CACHE_ITEMS) is None


def test_engine_reuses_stored_dataset(isolated_config, tmp_path, header, monkeypatch):
    isolated_config.set('dataset_cache.enabled', True)
    isolated_config.set('dataset_cache.directory', str(tmp_path / "dags"))

    with Engine(backend="host") as engine:
        first = engine.build_dataset(0, cache_items=SMALL_CACHE_ITEMS, dataset_items=SMALL_DATASET_ITEMS)
        assert first.checksum is not None
        expected = engine.mine_batch(first, header, range(8))

    def fail(*args, **kwargs):
        raise AssertionError("dataset regenerated")

    monkeypatch.setattr(cpu_core.engine, "dataset_range", fail)
    with Engine(backend="host") as engine:
        second = engine.build_dataset(0, cache_items=SMALL_CACHE_ITEMS, dataset_items=SMALL_DATASET_ITEMS)
        assert engine.mine_batch(second, header, range(8)) == expected


def test_failed_store_keeps_built_dataset(isolated_config, tmp_path, header, monkeypatch):
    isolated_config.set('dataset_cache.enabled', True)
    isolated_config.set('dataset_cache.directory', str(tmp_path / "dags"))

    def disk_full(self, epoch, items, cache_items):
        raise DatasetCacheError(str(tmp_path / "dags"), "no space left on device")

    monkeypatch.setattr(DatasetCache, "store", disk_full)
    with Engine(backend="host") as engine:
        dataset = engine.build_dataset(0, cache_items=SMALL_CACHE_ITEMS, dataset_items=SMALL_DATASET_ITEMS)
        assert dataset.checksum is None
        assert not dataset.destroyed
        assert len(engine.mine_batch(dataset, header, range(4))["hashes"]) == 4
    assert dataset.destroyed


def test_failed_export_releases_storage(isolated_config, tmp_path, monkeypatch):
    isolated_config.set('dataset_cache.enabled', True)
    isolated_config.set('dataset_cache.directory', str(tmp_path / "dags"))
    released = []

    def broken_export(self, handle):
        raise RuntimeError("readback failed")

    monkeypatch.setattr(cpu_core.engine.HostEngine, "export_items", broken_export)
    monkeypatch.setattr(cpu_core.engine.HostEngine, "release", lambda self, storage: released.append(storage))
    with Engine(backend="host") as engine:
        with pytest.raises(RuntimeError):
            engine.build_dataset(0, cache_items=SMALL_CACHE_ITEMS, dataset_items=SMALL_DATASET_ITEMS)
        assert len(released) == 1
        assert engine._datasets == []
