"""
Host execution backend.

Runs the dataset builder, Hashimoto and the difficulty filter as numpy grids
on a thread pool. numpy releases the GIL inside its loops, so chunks of
items or nonces make progress on several cores at once. The control thread
sequences chunks and only returns once every chunk of a dispatch is done.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional

import numpy as np
import psutil

from ethcore.constants import (
    DEFAULT_HOST_CHUNK_ITEMS,
    DEFAULT_MAX_ALLOCATION,
    MEMORY_HEADROOM_BYTES,
)
from ethcore.dataset import DatasetHandle
from ethcore.exceptions import InsufficientDeviceMemoryError
from ethcore.partition import PartitionLayout, PartitionedDataset
from ethcore.types import ProgressCallback
from .kernels import dataset_items, dataset_range, difficulty_filter, hashimoto_batch


class HostEngine:
    """Numpy backend. Storage for a full dataset is a PartitionedDataset."""

    name = "host"

    def __init__(self, workers: int = 0, chunk_items: int = DEFAULT_HOST_CHUNK_ITEMS,
                 max_allocation_bytes: Optional[int] = None):
        self.workers = workers or os.cpu_count() or 1
        self.chunk_items = chunk_items
        self._max_allocation = max_allocation_bytes or DEFAULT_MAX_ALLOCATION
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="host-engine")
        logging.info(f"Host engine ready ({self.workers} threads, {self.chunk_items} items per chunk)")

    def max_allocation_bytes(self) -> int:
        return self._max_allocation

    def available_memory(self) -> int:
        return psutil.virtual_memory().available

    def check_memory(self, required: int) -> None:
        available = self.available_memory()
        if required + MEMORY_HEADROOM_BYTES > available:
            logging.error(f"Not enough host memory for dataset: need {required / 1024 / 1024:.1f}MB")
            raise InsufficientDeviceMemoryError(required, available)

    # ------------------------------------------------------------------
    # Dataset lifecycle
    # ------------------------------------------------------------------

    def build_dataset(self, cache: np.ndarray, layout: PartitionLayout,
                      progress: Optional[ProgressCallback] = None,
                      items: Optional[np.ndarray] = None) -> PartitionedDataset:
        """
        Allocate the partitions and fill them, either by generating every
        item from the cache or by copying preloaded ``items``.
        """
        self.check_memory(layout.total_bytes)
        try:
            storage = PartitionedDataset(layout)
        except MemoryError as e:
            raise InsufficientDeviceMemoryError(layout.total_bytes, self.available_memory()) from e

        if items is not None:
            storage.write(0, items)
            if progress:
                progress(layout.total_items, layout.total_items)
            return storage

        total = layout.total_items
        start_time = time.time()
        done = 0

        def run(start: int) -> int:
            count = min(self.chunk_items, total - start)
            storage.write(start, dataset_range(cache, start, count))
            return count

        for count in self._executor.map(run, range(0, total, self.chunk_items)):
            done += count
            if progress:
                progress(done, total)
            logging.debug(f"Dataset items {done}/{total}")

        elapsed = time.time() - start_time
        logging.info(f"Generated {total} dataset items in {elapsed:.2f}s "
                     f"across {layout.partition_count} partition(s)")
        return storage

    def release(self, storage) -> None:
        # Host arrays are freed with their last reference
        return None

    def export_items(self, handle: DatasetHandle) -> np.ndarray:
        return handle.storage.to_array()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _lookup(self, handle: DatasetHandle):
        if handle.light:
            cache = handle.cache
            return lambda indices: dataset_items(cache, indices)
        return handle.storage.gather

    def read_items(self, handle: DatasetHandle, indices: np.ndarray) -> np.ndarray:
        return self._lookup(handle)(np.asarray(indices, dtype=np.int64))

    # ------------------------------------------------------------------
    # Mining
    # ------------------------------------------------------------------

    def hashimoto(self, handle: DatasetHandle, header: bytes, nonces: np.ndarray) -> Dict[str, np.ndarray]:
        """Full Hashimoto intermediates for a (small) batch, on the calling thread."""
        return hashimoto_batch(header, nonces, self._lookup(handle), handle.item_count)

    def mine(self, handle: DatasetHandle, header: bytes, nonces: np.ndarray,
             threshold: Optional[int] = None):
        """
        Hash a batch and, when a threshold is given, filter it.

        Returns:
            (hashes (N, 32) uint8, (winners, count) or None)
        """
        lookup = self._lookup(handle)
        total = nonces.shape[0]
        hashes = np.empty((total, 32), dtype=np.uint8)

        def run(start: int) -> None:
            stop = min(start + self.chunk_items, total)
            result = hashimoto_batch(header, nonces[start:stop], lookup, handle.item_count)
            hashes[start:stop] = result["hashes"]

        list(self._executor.map(run, range(0, total, self.chunk_items)))

        if threshold is None:
            return hashes, None
        return hashes, difficulty_filter(hashes, nonces, threshold, self._executor, self.chunk_items)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
