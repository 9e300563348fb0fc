"""
Ethash compute engine.

Public entry points:

    Engine            build_dataset / mine_batch / destroy_dataset / trace_nonce
    build_cache       epoch cache on the host
    plan_partitions   split a dataset across allocations
"""

from .cache_builder import build_cache
from .dataset import DatasetHandle
from .engine import Engine, create_backend
from .epoch import epoch_from_block, epoch_from_seed, seed_hash
from .exceptions import EngineError
from .partition import PartitionLayout, plan_partitions
from .sizing import cache_item_count, dataset_item_count
from .work import difficulty_to_threshold, nonce_range

__version__ = "0.1.0"

__all__ = [
    "Engine",
    "EngineError",
    "DatasetHandle",
    "PartitionLayout",
    "build_cache",
    "cache_item_count",
    "create_backend",
    "dataset_item_count",
    "difficulty_to_threshold",
    "epoch_from_block",
    "epoch_from_seed",
    "nonce_range",
    "plan_partitions",
    "seed_hash",
]
