"""
Buffer Partitioner

Splits a dataset that exceeds the single-allocation ceiling into N
contiguous partitions of ``items_per_partition`` items (the last may be
shorter). Item ``p`` lives in partition ``p // items_per_partition`` at local
item offset ``p % items_per_partition``. The same arithmetic is used by the
CUDA kernels, which receive a table of partition base pointers.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from .constants import HASH_BYTES, HASH_WORDS
from .exceptions import PartitionError


class PartitionLayout:
    """Partition plan for one dataset. Immutable once created."""

    def __init__(self, total_items: int, items_per_partition: int, item_bytes: int = HASH_BYTES):
        if total_items < 1 or items_per_partition < 1:
            raise PartitionError(f"invalid layout: {total_items} items, {items_per_partition} per partition")
        self.total_items = total_items
        self.items_per_partition = items_per_partition
        self.item_bytes = item_bytes
        self.partition_count = -(-total_items // items_per_partition)

    def __repr__(self) -> str:
        return (f"PartitionLayout(total_items={self.total_items}, "
                f"partitions={self.partition_count}, "
                f"items_per_partition={self.items_per_partition})")

    def __eq__(self, other) -> bool:
        if not isinstance(other, PartitionLayout):
            return NotImplemented
        return (self.total_items, self.items_per_partition, self.item_bytes) == \
               (other.total_items, other.items_per_partition, other.item_bytes)

    @property
    def total_bytes(self) -> int:
        return self.total_items * self.item_bytes

    def locate(self, index: int) -> Tuple[int, int]:
        """(partition, local item offset) for a dataset item index."""
        if not 0 <= index < self.total_items:
            raise IndexError(f"Dataset index {index} out of range [0, {self.total_items})")
        return divmod(index, self.items_per_partition)

    def route(self, indices: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorised locate: (partition array, local offset array)."""
        indices = np.asarray(indices, dtype=np.int64)
        return indices // self.items_per_partition, indices % self.items_per_partition

    def ranges(self) -> List[Tuple[int, int]]:
        """[start, start + count) item range for each partition, in order."""
        out = []
        for part in range(self.partition_count):
            start = part * self.items_per_partition
            out.append((start, min(self.items_per_partition, self.total_items - start)))
        return out

    def partition_bytes(self, part: int) -> int:
        return self.ranges()[part][1] * self.item_bytes


def plan_partitions(total_items: int, max_allocation_bytes: int,
                    item_bytes: int = HASH_BYTES, max_partitions: int = 8) -> PartitionLayout:
    """
    Decide how many allocations a dataset needs.

    N = ceil(total_bytes / max_allocation_bytes) and
    items_per_partition = ceil(total_items / N). When rounding leaves the
    tail empty, the layout simply has fewer partitions.

    Raises:
        PartitionError: If one item does not fit an allocation, a partition
            would exceed the ceiling, or N exceeds ``max_partitions``
    """
    if total_items < 1:
        raise PartitionError(f"dataset must hold at least one item, got {total_items}")
    if item_bytes > max_allocation_bytes:
        raise PartitionError(
            f"a {item_bytes}-byte item does not fit in a {max_allocation_bytes}-byte allocation"
        )

    total_bytes = total_items * item_bytes
    count = -(-total_bytes // max_allocation_bytes)
    per_partition = -(-total_items // count)

    if per_partition * item_bytes > max_allocation_bytes:
        # Ceiling is not a multiple of the item size; take one more partition
        per_partition = max_allocation_bytes // item_bytes

    layout = PartitionLayout(total_items, per_partition, item_bytes)
    if layout.partition_count > max_partitions:
        raise PartitionError(
            f"{layout.partition_count} partitions needed for {total_bytes / 1024 / 1024:.1f}MB "
            f"but at most {max_partitions} can be bound"
        )

    logging.debug(f"Planned {layout!r} (ceiling {max_allocation_bytes / 1024 / 1024:.1f}MB)")
    return layout


class PartitionedDataset:
    """
    Host-memory partitions of a dataset, read through the partition routing.

    Each partition is an (n, 16) uint32 array.
    """

    def __init__(self, layout: PartitionLayout, partitions: Sequence[np.ndarray] = None):
        self.layout = layout
        if partitions is None:
            partitions = [np.empty((count, HASH_WORDS), dtype=np.uint32) for _, count in layout.ranges()]
        if len(partitions) != layout.partition_count:
            raise PartitionError(f"expected {layout.partition_count} partitions, got {len(partitions)}")
        self.partitions = list(partitions)

    @classmethod
    def from_items(cls, items: np.ndarray, layout: PartitionLayout) -> 'PartitionedDataset':
        """Split an unpartitioned (n, 16) item array according to ``layout``."""
        if items.shape[0] != layout.total_items:
            raise PartitionError(f"layout covers {layout.total_items} items, got {items.shape[0]}")
        return cls(layout, [items[start:start + count].copy() for start, count in layout.ranges()])

    def write(self, first_index: int, items: np.ndarray) -> None:
        """Store consecutive items starting at ``first_index``, crossing partitions as needed."""
        done = 0
        while done < items.shape[0]:
            part, local = self.layout.locate(first_index + done)
            target = self.partitions[part]
            take = min(target.shape[0] - local, items.shape[0] - done)
            target[local:local + take] = items[done:done + take]
            done += take

    def gather(self, indices: np.ndarray) -> np.ndarray:
        """(len(indices), 16) uint32 items for arbitrary dataset indices."""
        indices = np.asarray(indices, dtype=np.int64).ravel()
        if indices.size and (indices.min() < 0 or indices.max() >= self.layout.total_items):
            raise IndexError(f"Dataset index out of range [0, {self.layout.total_items})")
        if self.layout.partition_count == 1:
            return self.partitions[0][indices]

        part, local = self.layout.route(indices)
        out = np.empty((indices.size, HASH_WORDS), dtype=np.uint32)
        for p in range(self.layout.partition_count):
            mask = part == p
            if mask.any():
                out[mask] = self.partitions[p][local[mask]]
        return out

    def to_array(self) -> np.ndarray:
        """Concatenate all partitions back into one (n, 16) array."""
        return np.concatenate(self.partitions, axis=0)

    @property
    def nbytes(self) -> int:
        return sum(p.nbytes for p in self.partitions)
