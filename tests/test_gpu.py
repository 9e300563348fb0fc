"""CUDA backend against the host backend. Skipped without a usable device."""

import pytest

import gpu_core
from ethcore import Engine
from ethcore.constants import MAX_THRESHOLD
from ethcore.work import difficulty_to_threshold

from .conftest import SMALL_CACHE_ITEMS, SMALL_DATASET_ITEMS

requires_gpu = pytest.mark.skipif(not gpu_core.GPU_AVAILABLE,
                                  reason=f"CUDA unavailable: {gpu_core.GPU_UNAVAILABLE_REASON}")


def test_kernel_entry_points_declared():
    source = gpu_core.CUDA_SOURCE
    assert 'extern "C"' in source
    for name in ("build_dataset_items", "hashimoto_search", "hashimoto_trace", "difficulty_filter"):
        assert f"__global__ void {name}(" in source


@pytest.fixture
def host_engine():
    with Engine(backend="host") as engine:
        yield engine


@pytest.fixture
def gpu_engine(isolated_config):
    isolated_config.set('gpu.dag_dispatch_items', 24)
    with Engine(backend="cuda") as engine:
        yield engine


def _small(engine):
    return engine.build_dataset(0, cache_items=SMALL_CACHE_ITEMS, dataset_items=SMALL_DATASET_ITEMS)


@requires_gpu
def test_dataset_items_match_host(gpu_engine, host_engine):
    gpu_items = gpu_engine.read_dataset_items(_small(gpu_engine), range(SMALL_DATASET_ITEMS))
    host_items = host_engine.read_dataset_items(_small(host_engine), range(SMALL_DATASET_ITEMS))
    assert (gpu_items == host_items).all()


@requires_gpu
@pytest.mark.parametrize("ceiling", [6400, 3200, 2200])
def test_partitioned_hashes_match_host(isolated_config, host_engine, header, ceiling):
    expected = host_engine.mine_batch(_small(host_engine), header, range(64))
    isolated_config.set('engine.max_allocation_bytes', ceiling)
    with Engine(backend="cuda") as engine:
        dataset = _small(engine)
        assert dataset.layout.partition_count == -(-SMALL_DATASET_ITEMS * 64 // ceiling)
        assert engine.mine_batch(dataset, header, range(64)) == expected


@requires_gpu
def test_filter_matches_host(gpu_engine, host_engine, header):
    threshold = difficulty_to_threshold(4)
    got = gpu_engine.mine_batch(_small(gpu_engine), header, range(512), threshold)
    expected = host_engine.mine_batch(_small(host_engine), header, range(512), threshold)
    assert got["hashes"] == expected["hashes"]
    assert got["winners"]["count"] == expected["winners"]["count"]
    assert sorted(got["winners"]["nonces"]) == sorted(expected["winners"]["nonces"])

    everything = gpu_engine.mine_batch(_small(gpu_engine), header, range(16), MAX_THRESHOLD)
    assert everything["winners"]["count"] == 16


@requires_gpu
def test_trace_matches_host(gpu_engine, host_engine, header):
    nonce = 0xFFFFFFFFFFFFFFFF
    assert gpu_engine.trace_nonce(_small(gpu_engine), header, nonce) == \
        host_engine.trace_nonce(_small(host_engine), header, nonce)


@requires_gpu
def test_failed_build_frees_partitions(isolated_config, monkeypatch):
    import gpu_core.engine

    isolated_config.set('engine.max_allocation_bytes', 2200)
    isolated_config.set('gpu.dag_dispatch_items', 16)
    freed = []
    original_free = gpu_core.engine.DeviceDataset.free

    def counting_free(self):
        freed.append((len(self.partitions), self.table is not None))
        original_free(self)

    def interrupted(done, total):
        raise KeyboardInterrupt

    monkeypatch.setattr(gpu_core.engine.DeviceDataset, "free", counting_free)
    with Engine(backend="cuda") as engine:
        with pytest.raises(KeyboardInterrupt):
            engine.build_dataset(0, cache_items=SMALL_CACHE_ITEMS, dataset_items=SMALL_DATASET_ITEMS,
                                 progress=interrupted)
        assert freed == [(3, True)]
