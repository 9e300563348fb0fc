"""
Dataset handle.

A DatasetHandle owns everything built for one epoch: the cache, the
partition layout and the backend's storage (host arrays or device
allocations). It is created by Engine.build_dataset and released by
Engine.destroy_dataset; after that every use raises DatasetDestroyedError.
"""

from typing import Any, Optional

import numpy as np

from .constants import HASH_BYTES
from .exceptions import DatasetDestroyedError
from .partition import PartitionLayout
from .types import DatasetInfo


class DatasetHandle:
    def __init__(self, epoch: int, cache: np.ndarray, item_count: int,
                 layout: Optional[PartitionLayout], backend: str,
                 storage: Any = None, light: bool = False,
                 checksum: Optional[str] = None):
        self.epoch = epoch
        self.cache = cache
        self.item_count = item_count
        self.layout = layout
        self.backend = backend
        self.storage = storage
        self.light = light
        self.checksum = checksum
        self._destroyed = False

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else ("light" if self.light else "full")
        return (f"DatasetHandle(epoch={self.epoch}, items={self.item_count}, "
                f"backend={self.backend!r}, {state})")

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def cache_items(self) -> int:
        return self.cache.shape[0] if self.cache is not None else 0

    @property
    def dataset_bytes(self) -> int:
        return self.item_count * HASH_BYTES

    def ensure_alive(self) -> None:
        if self._destroyed:
            raise DatasetDestroyedError(self.epoch)

    def mark_destroyed(self) -> None:
        self.storage = None
        self.cache = None
        self._destroyed = True

    def info(self) -> DatasetInfo:
        return {
            "epoch": self.epoch,
            "cache_items": self.cache_items,
            "dataset_items": self.item_count,
            "dataset_bytes": self.dataset_bytes,
            "partitions": self.layout.partition_count if self.layout else 0,
            "items_per_partition": self.layout.items_per_partition if self.layout else 0,
            "backend": self.backend,
            "light": self.light,
        }
