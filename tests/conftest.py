"""Shared fixtures: isolated config, epoch-0 caches and small synthetic datasets."""

import numpy as np
import pytest

from ethcore import reference
from ethcore.config import config
from ethcore.engine import Engine
from ethcore.keccak import keccak_256

# Synthetic sizes: a prime cache and an even dataset small enough to build in
# milliseconds while still exercising every partition path.
SMALL_CACHE_ITEMS = 257
SMALL_DATASET_ITEMS = 100


@pytest.fixture(autouse=True)
def isolated_config():
    """Every test starts from the defaults, pinned to the host backend."""
    config.reset()
    config.set('engine.backend', 'host')
    config.set('host.workers', 2)
    config.set('host.chunk_items', 32)
    yield config
    config.reset()


@pytest.fixture
def engine(isolated_config):
    eng = Engine(backend="host")
    yield eng
    eng.close()


@pytest.fixture(scope="session")
def header():
    """Keccak-256("test-block-header")."""
    return keccak_256(b"test-block-header")


@pytest.fixture(scope="session")
def epoch0():
    """Light epoch-0 dataset on a host engine shared by the whole session."""
    eng = Engine(backend="host")
    dataset = eng.build_dataset(0, light=True)
    yield eng, dataset
    eng.close()


@pytest.fixture(scope="session")
def epoch0_cache(epoch0):
    return epoch0[1].cache


@pytest.fixture(scope="session")
def epoch0_reference_cache():
    return reference.make_cache(0)


@pytest.fixture(scope="session")
def small_reference_cache():
    return reference.make_cache(0, SMALL_CACHE_ITEMS)


@pytest.fixture(scope="session")
def small_reference_dataset(small_reference_cache):
    """Unpartitioned synthetic dataset from the reference, (100, 16) uint32."""
    items = [reference.calc_dataset_item(small_reference_cache, i) for i in range(SMALL_DATASET_ITEMS)]
    return np.array(items, dtype=np.uint32)
