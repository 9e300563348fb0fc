"""
Type Definitions Module

Typed records exchanged across the engine boundary and the YAML config
sections. Uses TypedDict so results stay plain dictionaries for callers.
"""

from typing import Callable, List, Optional, TypedDict

import numpy as np


# ============================================================================
# Batch Results
# ============================================================================

class Winners(TypedDict):
    """Nonces whose result hash fell strictly below the threshold."""
    nonces: List[int]
    count: int


class BatchResult(TypedDict, total=False):
    """Output of one mine_batch call. 'winners' is present only with a threshold."""
    hashes: List[bytes]
    winners: Winners


class NonceTrace(TypedDict):
    """Every intermediate of one Hashimoto evaluation, for mismatch hunting."""
    header: bytes
    nonce: int
    seed: bytes       # s, 64 bytes
    mix: bytes        # final 128-byte mix before folding
    cmix: bytes       # folded 32-byte mix
    result: bytes     # 32-byte result hash


# ============================================================================
# Dataset Metadata
# ============================================================================

class DatasetInfo(TypedDict):
    """Summary of a built dataset, used by the CLI and the dataset cache."""
    epoch: int
    cache_items: int
    dataset_items: int
    dataset_bytes: int
    partitions: int
    items_per_partition: int
    backend: str
    light: bool


class DatasetCacheMeta(TypedDict):
    """JSON sidecar stored next to a persisted dataset."""
    epoch: int
    dataset_items: int
    cache_items: int
    checksum: str
    created_at: float


# ============================================================================
# Configuration Sections
# ============================================================================

class EngineConfig(TypedDict, total=False):
    """engine: section."""
    backend: str
    max_allocation_bytes: Optional[int]
    max_partitions: int


class GPUConfig(TypedDict, total=False):
    """gpu: section."""
    device_id: int
    threads_per_block: int
    dag_dispatch_items: int


class HostConfig(TypedDict, total=False):
    """host: section."""
    workers: int
    chunk_items: int


class DatasetCacheConfig(TypedDict, total=False):
    """dataset_cache: section."""
    enabled: bool
    directory: str


class LoggingConfig(TypedDict, total=False):
    """logging: section."""
    file: str
    level: str
    console_level: str


# ============================================================================
# Callables
# ============================================================================

# (items_done, items_total) reported once per dispatch chunk
ProgressCallback = Callable[[int, int], None]

# Maps an array of dataset indices to an (n, 16) uint32 array of items
ItemLookup = Callable[[np.ndarray], np.ndarray]
