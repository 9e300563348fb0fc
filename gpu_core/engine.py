"""
CUDA execution backend.

Owns one device context. Dataset partitions are separate device
allocations; kernels receive a device-side table of partition base pointers
plus items_per_partition and route every dataset access themselves. All
launches are sequenced from the calling thread and synchronised before any
result is read back.
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, List, Optional

import numpy as np
import pycuda.driver as cuda
from pycuda.compiler import SourceModule

from ethcore.constants import (
    DEFAULT_DAG_DISPATCH_ITEMS,
    DEFAULT_MAX_ALLOCATION,
    DEFAULT_THREADS_PER_BLOCK,
    HASH_BYTES,
    HASH_WORDS,
    MEMORY_HEADROOM_BYTES,
    MIX_WORDS,
    RESULT_BYTES,
)
from ethcore.dataset import DatasetHandle
from ethcore.exceptions import (
    DeviceLostError,
    GPUInitializationError,
    GPUKernelCompilationError,
    InsufficientDeviceMemoryError,
)
from ethcore.partition import PartitionLayout
from ethcore.types import ProgressCallback
from ethcore.work import threshold_to_words
from .kernels import CUDA_SOURCE, TRACE_WORDS


class DeviceDataset:
    """Device allocations backing one dataset."""

    def __init__(self, layout: PartitionLayout, partitions: List, table):
        self.layout = layout
        self.partitions = partitions
        self.table = table

    def free(self) -> None:
        for buf in self.partitions:
            buf.free()
        if self.table is not None:
            self.table.free()
        self.partitions = []
        self.table = None


class GPUEngine:
    """pycuda backend for one device."""

    name = "cuda"

    def __init__(self, device_id: int = 0, threads_per_block: int = DEFAULT_THREADS_PER_BLOCK,
                 dag_dispatch_items: int = DEFAULT_DAG_DISPATCH_ITEMS,
                 max_allocation_bytes: Optional[int] = None):
        self.device_id = device_id
        self.threads_per_block = threads_per_block
        self.dag_dispatch_items = dag_dispatch_items

        try:
            cuda.init()
            self.device = cuda.Device(device_id)
            self.context = self.device.make_context()
        except cuda.Error as e:
            raise GPUInitializationError(device_id, str(e)) from e

        try:
            self.module = SourceModule(CUDA_SOURCE, no_extern_c=True, options=["-O3"])
            self._build_items = self.module.get_function("build_dataset_items")
            self._search = self.module.get_function("hashimoto_search")
            self._trace = self.module.get_function("hashimoto_trace")
            self._filter = self.module.get_function("difficulty_filter")
        except cuda.Error as e:
            cuda.Context.pop()
            self.context.detach()
            raise GPUKernelCompilationError(device_id, str(e)) from e
        # Context is pushed again around every operation
        cuda.Context.pop()

        total = self.device.total_memory()
        self._max_allocation = max_allocation_bytes or min(DEFAULT_MAX_ALLOCATION, total)
        logging.info(f"GPU {device_id}: {self.device.name()} ({total / 1024 / 1024:.0f}MB), "
                     f"allocation ceiling {self._max_allocation / 1024 / 1024:.0f}MB")

    @contextmanager
    def _active(self):
        self.context.push()
        try:
            yield
        finally:
            cuda.Context.pop()

    def _grid(self, count: int):
        return ((count + self.threads_per_block - 1) // self.threads_per_block, 1)

    def max_allocation_bytes(self) -> int:
        return self._max_allocation

    def available_memory(self) -> int:
        with self._active():
            free, _ = cuda.mem_get_info()
        return free

    # ------------------------------------------------------------------
    # Dataset lifecycle
    # ------------------------------------------------------------------

    def build_dataset(self, cache: np.ndarray, layout: PartitionLayout,
                      progress: Optional[ProgressCallback] = None,
                      items: Optional[np.ndarray] = None) -> DeviceDataset:
        """
        Allocate one buffer per partition and fill it, either with the DAG
        builder kernel or by uploading preloaded ``items``. Any failure frees
        what was allocated so no partial dataset survives.
        """
        with self._active():
            free, _ = cuda.mem_get_info()
            required = layout.total_bytes + cache.nbytes
            if required + MEMORY_HEADROOM_BYTES > free:
                logging.error(f"GPU {self.device_id}: not enough memory for dataset")
                raise InsufficientDeviceMemoryError(required, free)

            partitions = []
            cache_gpu = None
            table = None
            built = False
            try:
                for _, count in layout.ranges():
                    partitions.append(cuda.mem_alloc(count * HASH_BYTES))
                table = cuda.to_device(np.array([int(p) for p in partitions], dtype=np.uint64))

                if items is not None:
                    for (start, count), buf in zip(layout.ranges(), partitions):
                        cuda.memcpy_htod(buf, np.ascontiguousarray(items[start:start + count]))
                    if progress:
                        progress(layout.total_items, layout.total_items)
                else:
                    cache_gpu = cuda.to_device(np.ascontiguousarray(cache, dtype=np.uint32))
                    self._generate(cache_gpu, cache.shape[0], layout, partitions, progress)
                cuda.Context.synchronize()
                built = True
            except cuda.MemoryError as e:
                raise InsufficientDeviceMemoryError(required, free) from e
            except cuda.Error as e:
                logging.error(f"GPU {self.device_id}: dataset build failed: {e}")
                raise DeviceLostError(f"GPU {self.device_id}: {e}") from e
            finally:
                if cache_gpu is not None:
                    cache_gpu.free()
                if not built:
                    # Nothing partial survives a failed build
                    DeviceDataset(layout, partitions, table).free()

        return DeviceDataset(layout, partitions, table)

    def _generate(self, cache_gpu, cache_items: int, layout: PartitionLayout,
                  partitions: List, progress: Optional[ProgressCallback]) -> None:
        total = layout.total_items
        done = 0
        start_time = time.time()
        for (start, count), buf in zip(layout.ranges(), partitions):
            for local in range(0, count, self.dag_dispatch_items):
                n = min(self.dag_dispatch_items, count - local)
                self._build_items(
                    cache_gpu, np.uint32(cache_items),
                    np.uintp(int(buf) + local * HASH_BYTES),
                    np.uint32(start + local), np.uint32(n),
                    block=(self.threads_per_block, 1, 1), grid=self._grid(n),
                )
                # Launches are asynchronous; wait so progress is real
                cuda.Context.synchronize()
                done += n
                if progress:
                    progress(done, total)
                logging.debug(f"GPU {self.device_id}: dataset items {done}/{total}")
        logging.info(f"GPU {self.device_id}: generated {total} dataset items in "
                     f"{time.time() - start_time:.2f}s across {layout.partition_count} partition(s)")

    def release(self, storage: DeviceDataset) -> None:
        with self._active():
            storage.free()

    def export_items(self, handle: DatasetHandle) -> np.ndarray:
        storage = handle.storage
        out = np.empty((storage.layout.total_items, HASH_WORDS), dtype=np.uint32)
        with self._active():
            for (start, count), buf in zip(storage.layout.ranges(), storage.partitions):
                cuda.memcpy_dtoh(out[start:start + count], buf)
        return out

    def read_items(self, handle: DatasetHandle, indices: np.ndarray) -> np.ndarray:
        storage = handle.storage
        indices = np.asarray(indices, dtype=np.int64).ravel()
        out = np.empty((indices.size, HASH_WORDS), dtype=np.uint32)
        with self._active():
            for row, index in enumerate(indices):
                part, local = storage.layout.locate(int(index))
                cuda.memcpy_dtoh(out[row], int(storage.partitions[part]) + local * HASH_BYTES)
        return out

    # ------------------------------------------------------------------
    # Mining
    # ------------------------------------------------------------------

    def _header_words(self, header: bytes) -> np.ndarray:
        return np.frombuffer(header, dtype='<u4').astype(np.uint32)

    def mine(self, handle: DatasetHandle, header: bytes, nonces: np.ndarray,
             threshold: Optional[int] = None):
        """
        Hash a batch and, when a threshold is given, compact the winners on
        the device.

        Returns:
            (hashes (N, 32) uint8, (winners, count) or None)

        Raises:
            DeviceLostError: If any launch or copy fails; the batch is lost
        """
        storage = handle.storage
        layout = storage.layout
        count = nonces.shape[0]
        hashes = np.empty((count, RESULT_BYTES), dtype=np.uint8)
        buffers = []
        winners = None

        with self._active():
            try:
                header_gpu = cuda.to_device(self._header_words(header))
                buffers.append(header_gpu)
                nonces_gpu = cuda.to_device(np.ascontiguousarray(nonces, dtype=np.uint64))
                buffers.append(nonces_gpu)
                hashes_gpu = cuda.mem_alloc(hashes.nbytes)
                buffers.append(hashes_gpu)

                self._search(
                    storage.table, np.uint32(layout.items_per_partition), np.uint32(handle.item_count),
                    header_gpu, nonces_gpu, np.uint32(count), hashes_gpu,
                    block=(self.threads_per_block, 1, 1), grid=self._grid(count),
                )

                if threshold is not None:
                    threshold_gpu = cuda.to_device(threshold_to_words(threshold))
                    buffers.append(threshold_gpu)
                    winners_gpu = cuda.mem_alloc(max(count, 1) * 8)
                    buffers.append(winners_gpu)
                    counter = np.zeros(1, dtype=np.uint32)
                    counter_gpu = cuda.to_device(counter)
                    buffers.append(counter_gpu)

                    self._filter(
                        hashes_gpu, nonces_gpu, np.uint32(count), threshold_gpu,
                        winners_gpu, counter_gpu,
                        block=(self.threads_per_block, 1, 1), grid=self._grid(count),
                    )
                    cuda.Context.synchronize()
                    cuda.memcpy_dtoh(counter, counter_gpu)
                    found = np.empty(int(counter[0]), dtype=np.uint64)
                    if found.size:
                        cuda.memcpy_dtoh(found, winners_gpu)
                    winners = (found, int(counter[0]))

                cuda.Context.synchronize()
                cuda.memcpy_dtoh(hashes, hashes_gpu)
            except cuda.Error as e:
                logging.error(f"GPU {self.device_id}: batch of {count} nonces failed: {e}")
                raise DeviceLostError(f"GPU {self.device_id}: {e}") from e
            finally:
                for buf in buffers:
                    try:
                        buf.free()
                    except cuda.Error:
                        logging.debug(f"GPU {self.device_id}: free after failure ignored")

        return hashes, winners

    def hashimoto(self, handle: DatasetHandle, header: bytes, nonces: np.ndarray) -> Dict[str, np.ndarray]:
        """Every intermediate for a small batch (debug trace)."""
        storage = handle.storage
        layout = storage.layout
        count = nonces.shape[0]
        trace = np.empty((count, TRACE_WORDS), dtype=np.uint32)

        with self._active():
            try:
                header_gpu = cuda.to_device(self._header_words(header))
                nonces_gpu = cuda.to_device(np.ascontiguousarray(nonces, dtype=np.uint64))
                trace_gpu = cuda.mem_alloc(trace.nbytes)
                try:
                    self._trace(
                        storage.table, np.uint32(layout.items_per_partition), np.uint32(handle.item_count),
                        header_gpu, nonces_gpu, np.uint32(count), trace_gpu,
                        block=(self.threads_per_block, 1, 1), grid=self._grid(count),
                    )
                    cuda.Context.synchronize()
                    cuda.memcpy_dtoh(trace, trace_gpu)
                finally:
                    header_gpu.free()
                    nonces_gpu.free()
                    trace_gpu.free()
            except cuda.Error as e:
                raise DeviceLostError(f"GPU {self.device_id}: {e}") from e

        mix_end = HASH_WORDS + MIX_WORDS
        return {
            "seed": trace[:, :HASH_WORDS],
            "mix": trace[:, HASH_WORDS:mix_end],
            "cmix": trace[:, mix_end:mix_end + 8],
            "hashes": np.ascontiguousarray(trace[:, mix_end + 8:]).astype('<u4').view(np.uint8),
        }

    def close(self) -> None:
        if self.context is not None:
            self.context.detach()
            self.context = None
            logging.info(f"GPU {self.device_id}: context released")
