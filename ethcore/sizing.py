"""
Cache and dataset sizing.

Both follow the canonical Ethash rule: start just under the epoch's byte
budget and step down until the item count (cache) or the 128-byte mix count
(dataset) is prime. The dataset therefore always holds an even number of
64-byte items, which Hashimoto's paired reads require.
"""

from functools import lru_cache

from .constants import (
    CACHE_GROWTH_BYTES,
    CACHE_INIT_BYTES,
    DATASET_GROWTH_BYTES,
    DATASET_INIT_BYTES,
    HASH_BYTES,
    MIX_BYTES,
)


def is_prime(n: int) -> bool:
    if n < 2:
        return False
    if n % 2 == 0:
        return n == 2
    i = 3
    while i * i <= n:
        if n % i == 0:
            return False
        i += 2
    return True


def _check_epoch(epoch: int) -> None:
    if not isinstance(epoch, int) or isinstance(epoch, bool) or epoch < 0:
        raise ValueError(f"Epoch must be a non-negative integer, got {epoch!r}")


@lru_cache(maxsize=64)
def cache_item_count(epoch: int) -> int:
    """Largest prime item count not above the epoch's cache byte budget."""
    _check_epoch(epoch)
    count = (CACHE_INIT_BYTES + CACHE_GROWTH_BYTES * epoch) // HASH_BYTES
    if count % 2 == 0:
        count -= 1
    while not is_prime(count):
        count -= 2
    return count


@lru_cache(maxsize=64)
def dataset_item_count(epoch: int) -> int:
    """Number of 64-byte dataset items for ``epoch`` (always even)."""
    _check_epoch(epoch)
    size = DATASET_INIT_BYTES + DATASET_GROWTH_BYTES * epoch - MIX_BYTES
    while not is_prime(size // MIX_BYTES):
        size -= 2 * MIX_BYTES
    return size // HASH_BYTES


def cache_bytes(epoch: int) -> int:
    return cache_item_count(epoch) * HASH_BYTES


def dataset_bytes(epoch: int) -> int:
    return dataset_item_count(epoch) * HASH_BYTES
