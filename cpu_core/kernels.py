"""
Host compute kernels.

The dataset builder, Hashimoto and the difficulty filter written as flat
numpy grids: each row is one independent task (one dataset item, one
nonce, one hash). Rows never share mutable state, so chunks of rows can be
handed to worker threads in any order.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional

import numpy as np

from ethcore.constants import (
    DATASET_PARENTS,
    HASH_WORDS,
    HASHIMOTO_ACCESSES,
    HEADER_BYTES,
    MIX_HASHES,
    MIX_WORDS,
    NONCE_BYTES,
)
from ethcore.fnv import fnv_words, fold_mix
from ethcore.keccak import keccak_256_batch, keccak_512_batch, keccak_512_words
from ethcore.types import ItemLookup
from ethcore.work import threshold_to_words


# ============================================================================
# DAG Builder
# ============================================================================

def dataset_items(cache: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """
    Compute dataset items for arbitrary indices.

    Args:
        cache: (n, 16) uint32 cache
        indices: 1-D array of dataset item indices

    Returns:
        (len(indices), 16) uint32 items
    """
    n = cache.shape[0]
    idx = np.asarray(indices, dtype=np.uint64).ravel()
    i32 = idx.astype(np.uint32)

    mix = cache[(idx % np.uint64(n)).astype(np.intp)].copy()
    mix[:, 0] ^= i32
    mix = keccak_512_words(mix)

    modulus = np.uint32(n)
    for j in range(DATASET_PARENTS):
        parent = fnv_words(i32 ^ np.uint32(j), mix[:, j % HASH_WORDS]) % modulus
        mix = fnv_words(mix, cache[parent])
    return keccak_512_words(mix)


def dataset_range(cache: np.ndarray, first_index: int, count: int) -> np.ndarray:
    """Items ``first_index .. first_index + count - 1``."""
    return dataset_items(cache, np.arange(first_index, first_index + count, dtype=np.uint64))


# ============================================================================
# Hashimoto
# ============================================================================

def hashimoto_batch(header: bytes, nonces: np.ndarray, lookup: ItemLookup,
                    item_count: int) -> Dict[str, np.ndarray]:
    """
    Evaluate Hashimoto for every nonce in the batch.

    Args:
        header: 32-byte header hash
        nonces: 1-D uint64 array
        lookup: maps dataset indices to (k, 16) uint32 items
        item_count: total dataset items (even)

    Returns:
        dict with 'seed' (N, 16), 'mix' (N, 32), 'cmix' (N, 8) uint32 words
        and 'hashes' (N, 32) uint8
    """
    count = nonces.shape[0]
    message = np.empty((count, HEADER_BYTES + NONCE_BYTES), dtype=np.uint8)
    message[:, :HEADER_BYTES] = np.frombuffer(header, dtype=np.uint8)
    # byte-reversed header form == little-endian value
    message[:, HEADER_BYTES:] = nonces.astype('<u8').view(np.uint8).reshape(count, NONCE_BYTES)

    seed = keccak_512_batch(message).view('<u4').astype(np.uint32)
    mix = np.concatenate([seed, seed], axis=1)
    seed0 = seed[:, 0]
    pairs = item_count // MIX_HASHES

    for access in range(HASHIMOTO_ACCESSES):
        p = fnv_words(np.uint32(access) ^ seed0, mix[:, access % MIX_WORDS]).astype(np.int64)
        p = (p % pairs) * MIX_HASHES
        # both items are read before mix changes
        wanted = np.stack([p, p + 1], axis=1).ravel()
        data = lookup(wanted).reshape(count, MIX_WORDS)
        mix = fnv_words(mix, data)

    cmix = fold_mix(mix)
    final = np.ascontiguousarray(np.concatenate([seed, cmix], axis=1), dtype='<u4')
    hashes = keccak_256_batch(final.view(np.uint8))
    return {"seed": seed, "mix": mix, "cmix": cmix, "hashes": hashes}


# ============================================================================
# Difficulty Filter
# ============================================================================

class SlotCounter:
    """Shared output counter; fetch_add is the only mutation."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def fetch_add(self, amount: int = 1) -> int:
        with self._lock:
            old = self._value
            self._value += amount
            return old

    @property
    def value(self) -> int:
        return self._value


def below_threshold_mask(hashes: np.ndarray, threshold_words: np.ndarray) -> np.ndarray:
    """
    Row-wise big-number less-than: each (32,) uint8 hash is eight
    little-endian words, compared from word 7 down to word 0.
    """
    words = np.ascontiguousarray(hashes, dtype=np.uint8).view('<u4')
    less = np.zeros(words.shape[0], dtype=bool)
    equal = np.ones(words.shape[0], dtype=bool)
    for k in range(7, -1, -1):
        less |= equal & (words[:, k] < threshold_words[k])
        equal &= words[:, k] == threshold_words[k]
    return less


def difficulty_filter(hashes: np.ndarray, nonces: np.ndarray, threshold: int,
                      executor: Optional[ThreadPoolExecutor] = None,
                      chunk: int = 1 << 14):
    """
    Compact the nonces whose hash is strictly below ``threshold``.

    Chunks are filtered concurrently; each claims its output slots from a
    shared counter, so the winners land in unique slots in whatever order
    chunks finish.

    Returns:
        (winners uint64 array, count)
    """
    thr = threshold_to_words(threshold)
    total = hashes.shape[0]
    out = np.empty(total, dtype=np.uint64)
    counter = SlotCounter()

    def run(start: int) -> None:
        mask = below_threshold_mask(hashes[start:start + chunk], thr)
        found = nonces[start:start + chunk][mask]
        if found.size:
            slot = counter.fetch_add(int(found.size))
            out[slot:slot + found.size] = found

    starts = range(0, total, chunk)
    if executor is None:
        for start in starts:
            run(start)
    else:
        # list() re-raises the first worker exception
        list(executor.map(run, starts))

    count = counter.value
    return out[:count].copy(), count
