"""
Engine facade.

The boundary used by collaborators: build a dataset for an epoch, hash
batches of nonces against it (optionally filtering by a threshold), and
release it. The backend is chosen from ``engine.backend``:

* ``cuda``: gpu_core.GPUEngine, fails if no device is usable
* ``host``: cpu_core.HostEngine (numpy, thread pool)
* ``auto``: CUDA when available, host otherwise

A failed build never returns a partial dataset, and a failed batch is
reported as a whole; neither touches datasets built earlier.
"""

import logging
from typing import Iterable, List, Optional, Union

import numpy as np

from .cache_builder import build_cache
from .config import config
from .dataset import DatasetHandle
from .dataset_cache import DatasetCache
from .exceptions import ConfigurationError, DatasetCacheError, GPUNotAvailableError, InvalidWorkError
from .fnv import to_bytes
from .partition import plan_partitions
from .sizing import cache_item_count, dataset_item_count
from .types import BatchResult, NonceTrace, ProgressCallback
from .work import check_threshold, normalize_header, normalize_nonces


def create_backend(backend: Optional[str] = None):
    """Instantiate the configured execution backend."""
    backend = backend or config.get('engine.backend')
    max_allocation = config.get('engine.max_allocation_bytes')

    if backend not in ("auto", "cuda", "host"):
        raise ConfigurationError('engine.backend', f"unsupported backend {backend!r}")

    if backend in ("auto", "cuda"):
        import gpu_core
        if gpu_core.GPU_AVAILABLE:
            return gpu_core.GPUEngine(
                device_id=config.get('gpu.device_id'),
                threads_per_block=config.get('gpu.threads_per_block'),
                dag_dispatch_items=config.get('gpu.dag_dispatch_items'),
                max_allocation_bytes=max_allocation,
            )
        if backend == "cuda":
            raise GPUNotAvailableError(f"CUDA backend requested but unavailable: {gpu_core.GPU_UNAVAILABLE_REASON}")
        logging.info(f"CUDA unavailable ({gpu_core.GPU_UNAVAILABLE_REASON}), using host backend")

    from cpu_core import HostEngine
    return HostEngine(
        workers=config.get('host.workers'),
        chunk_items=config.get('host.chunk_items'),
        max_allocation_bytes=max_allocation,
    )


class Engine:
    """
    Ethash compute engine.

    Example:
        >>> engine = Engine(backend="host")
        >>> dataset = engine.build_dataset(0)
        >>> result = engine.mine_batch(dataset, header_hash, range(1024), threshold)
        >>> engine.destroy_dataset(dataset)
    """

    def __init__(self, backend: Optional[str] = None):
        self.backend = create_backend(backend)
        self.max_partitions = config.get('engine.max_partitions')
        self.dataset_cache = None
        if config.get('dataset_cache.enabled'):
            self.dataset_cache = DatasetCache(config.get('dataset_cache.directory'))
        self._datasets: List[DatasetHandle] = []

    def __enter__(self) -> 'Engine':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def backend_name(self) -> str:
        return self.backend.name

    # ------------------------------------------------------------------
    # Dataset lifecycle
    # ------------------------------------------------------------------

    def build_dataset(self, epoch: int, *, cache_items: Optional[int] = None,
                      dataset_items: Optional[int] = None, light: bool = False,
                      progress: Optional[ProgressCallback] = None) -> DatasetHandle:
        """
        Build the cache and dataset for ``epoch``.

        Args:
            epoch: Epoch number
            cache_items: Override the cache size (synthetic datasets)
            dataset_items: Override the dataset size; must be even
            light: Keep only the cache and derive items on demand (host only)
            progress: Optional (done, total) callback per dispatch chunk

        Raises:
            ConfigurationError: Bad sizes, or light mode on the CUDA backend
            InsufficientDeviceMemoryError: The dataset does not fit
            PartitionError: The dataset cannot be split within the limits
        """
        if not isinstance(epoch, int) or isinstance(epoch, bool) or epoch < 0:
            raise ConfigurationError('epoch', f"must be a non-negative integer, got {epoch!r}")
        n_cache = cache_items if cache_items is not None else cache_item_count(epoch)
        n_items = dataset_items if dataset_items is not None else dataset_item_count(epoch)
        if n_cache < 1:
            raise ConfigurationError('cache_items', f"must be positive, got {n_cache}")
        if n_items < 2 or n_items % 2:
            raise ConfigurationError('dataset_items', f"must be a positive even number, got {n_items}")
        if light and self.backend.name != "host":
            raise ConfigurationError('light', "light datasets are only supported by the host backend")

        logging.info(f"Building {'light ' if light else ''}dataset for epoch {epoch} "
                     f"({n_items} items, {n_items * 64 / 1024 / 1024:.1f}MB) on {self.backend.name}")

        cache = build_cache(epoch, n_cache)
        if light:
            handle = DatasetHandle(epoch, cache, n_items, None, self.backend.name, light=True)
            self._datasets.append(handle)
            return handle

        layout = plan_partitions(n_items, self.backend.max_allocation_bytes(),
                                 max_partitions=self.max_partitions)

        preloaded = None
        if self.dataset_cache is not None:
            preloaded = self.dataset_cache.load(epoch, n_items, n_cache)

        storage = self.backend.build_dataset(cache, layout, progress, items=preloaded)
        handle = DatasetHandle(epoch, cache, n_items, layout, self.backend.name, storage=storage)

        if self.dataset_cache is not None and preloaded is None:
            try:
                handle.checksum = self.dataset_cache.store(epoch, self.backend.export_items(handle), n_cache)
            except DatasetCacheError as e:
                # The dataset itself is fine; only persistence failed
                logging.warning(f"Dataset for epoch {epoch} not persisted: {e}")
            except BaseException:
                self.backend.release(storage)
                raise

        self._datasets.append(handle)
        logging.info(f"Dataset for epoch {epoch} ready ({layout.partition_count} partition(s))")
        return handle

    def destroy_dataset(self, dataset: DatasetHandle) -> None:
        """Release every allocation held by ``dataset``. Safe to call twice."""
        if dataset.destroyed:
            return
        if dataset.storage is not None:
            self.backend.release(dataset.storage)
        dataset.mark_destroyed()
        if dataset in self._datasets:
            self._datasets.remove(dataset)
        logging.info(f"Destroyed dataset for epoch {dataset.epoch}")

    # ------------------------------------------------------------------
    # Mining
    # ------------------------------------------------------------------

    def _check_dataset(self, dataset: DatasetHandle) -> None:
        dataset.ensure_alive()
        if dataset.backend != self.backend.name:
            raise ConfigurationError('dataset', f"built by {dataset.backend!r}, engine uses {self.backend.name!r}")

    def mine_batch(self, dataset: DatasetHandle, header_hash: Union[bytes, str],
                   nonces: Union[np.ndarray, Iterable], threshold: Optional[int] = None) -> BatchResult:
        """
        Hash every nonce in the batch.

        Returns:
            {'hashes': [32-byte result per nonce, in input order]} plus
            'winners': {'nonces': [...], 'count': n} when a threshold is given.
            Winner order follows slot assignment and is not significant.
        """
        self._check_dataset(dataset)
        header = normalize_header(header_hash)
        batch = normalize_nonces(nonces)
        if threshold is not None:
            threshold = check_threshold(threshold)

        if batch.size == 0:
            result: BatchResult = {"hashes": []}
            if threshold is not None:
                result["winners"] = {"nonces": [], "count": 0}
            return result

        hashes, winners = self.backend.mine(dataset, header, batch, threshold)
        logging.debug(f"Hashed {batch.size} nonces for epoch {dataset.epoch}")

        result = {"hashes": [row.tobytes() for row in hashes]}
        if threshold is not None:
            found, count = winners
            result["winners"] = {"nonces": [int(n) for n in found], "count": count}
        return result

    def trace_nonce(self, dataset: DatasetHandle, header_hash: Union[bytes, str], nonce) -> NonceTrace:
        """Every Hashimoto intermediate for one nonce, for chasing mismatches."""
        self._check_dataset(dataset)
        header = normalize_header(header_hash)
        batch = normalize_nonces([nonce])
        out = self.backend.hashimoto(dataset, header, batch)
        return {
            "header": header,
            "nonce": int(batch[0]),
            "seed": to_bytes(out["seed"][0]),
            "mix": to_bytes(out["mix"][0]),
            "cmix": to_bytes(out["cmix"][0]),
            "result": np.ascontiguousarray(out["hashes"][0]).tobytes(),
        }

    def read_dataset_items(self, dataset: DatasetHandle, indices) -> np.ndarray:
        """(k, 16) uint32 items read through the partition routing."""
        self._check_dataset(dataset)
        indices = np.asarray(indices, dtype=np.int64).ravel()
        if indices.size and (indices.min() < 0 or indices.max() >= dataset.item_count):
            raise InvalidWorkError('indices', f"out of range [0, {dataset.item_count})")
        return self.backend.read_items(dataset, indices)

    def close(self) -> None:
        """Destroy remaining datasets and release the backend."""
        for dataset in list(self._datasets):
            self.destroy_dataset(dataset)
        self.backend.close()
