"""
Cache Builder

Derives the epoch cache: a Keccak-512 chain seeded from the epoch number,
then CACHE_ROUNDS in-place mixing rounds. Each mixing step reads items
already rewritten earlier in the same round, so the rounds run sequentially
on the host. Items are handled as 512-bit Python integers while mixing and
converted to an (items, 16) uint32 array at the end.
"""

import logging
import time
from typing import Optional

import numpy as np

from .constants import CACHE_ROUNDS, HASH_BYTES, HASH_WORDS
from .keccak import keccak_512
from .sizing import cache_item_count
from .types import ProgressCallback

_WORD_MASK = 0xFFFFFFFF


def cache_seed(epoch: int) -> bytes:
    """Keccak-512 of the epoch as a 4-byte little-endian integer."""
    return keccak_512(epoch.to_bytes(4, "little"))


def build_cache(epoch: int, item_count: Optional[int] = None,
                progress: Optional[ProgressCallback] = None) -> np.ndarray:
    """
    Build the cache for ``epoch``.

    Args:
        epoch: Epoch number
        item_count: Override the number of items (synthetic small caches)
        progress: Optional (done, total) callback; total counts chain items
            plus one pass per mixing round

    Returns:
        (item_count, 16) uint32 array
    """
    count = item_count if item_count is not None else cache_item_count(epoch)
    if count < 1:
        raise ValueError(f"Cache needs at least one item, got {count}")

    total = count * (1 + CACHE_ROUNDS)
    start = time.time()
    logging.info(f"Generating cache for epoch {epoch}: {count} items ({count * HASH_BYTES / 1024 / 1024:.1f} MB)")

    item = cache_seed(epoch)
    values = []
    for i in range(count):
        item = keccak_512(item)
        values.append(int.from_bytes(item, "little"))
    if progress:
        progress(count, total)

    for rnd in range(CACHE_ROUNDS):
        for i in range(count):
            values[i] ^= values[(values[i] & _WORD_MASK) % count]
        if progress:
            progress(count * (rnd + 2), total)
        logging.debug(f"Cache mixing round {rnd + 1}/{CACHE_ROUNDS} done")

    raw = b"".join(v.to_bytes(HASH_BYTES, "little") for v in values)
    cache = np.frombuffer(raw, dtype="<u4").astype(np.uint32).reshape(count, HASH_WORDS)

    logging.info(f"Cache for epoch {epoch} ready in {time.time() - start:.2f}s")
    return cache


def validate_cache(cache: np.ndarray, epoch: int) -> bool:
    """Cheap shape and content check for a cache loaded from elsewhere."""
    expected = cache_item_count(epoch)
    if cache.shape != (expected, HASH_WORDS):
        logging.error(f"Cache shape mismatch: expected {(expected, HASH_WORDS)}, got {cache.shape}")
        return False
    if not cache[:100].any():
        logging.error("Cache contains only zeros")
        return False
    return True
