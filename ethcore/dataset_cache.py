"""
Dataset Cache Module

Persists built datasets so an epoch can be reloaded instead of regenerated.
Each dataset is stored as raw little-endian item bytes
(``epoch-<n>-<items>.dag``) next to a JSON sidecar holding the epoch, item
counts, creation time and a Keccak-256 checksum of the item bytes. A sidecar
that disagrees with the request or the file contents marks the entry stale;
stale entries are logged and removed.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Optional

import numpy as np
from filelock import FileLock, Timeout

from .constants import DATASET_CACHE_LOCK_TIMEOUT, HASH_BYTES, HASH_WORDS
from .exceptions import DatasetCacheError
from .keccak import new_keccak_256
from .types import DatasetCacheMeta

# Bytes hashed per update when checksumming
_CHUNK_BYTES = 16 * 1024 * 1024


def checksum_items(items: np.ndarray) -> str:
    """Keccak-256 hex digest of the little-endian item bytes."""
    raw = np.ascontiguousarray(items, dtype='<u4').view(np.uint8).ravel()
    hasher = new_keccak_256()
    for start in range(0, raw.size, _CHUNK_BYTES):
        hasher.update(raw[start:start + _CHUNK_BYTES].tobytes())
    return hasher.hexdigest()


class DatasetCache:
    """
    Directory of persisted datasets guarded by a file lock.

    Several processes may share one directory; the lock serialises loads and
    stores so a reader never sees a half-written file.
    """

    def __init__(self, directory: str = "dag_cache") -> None:
        self.directory = Path(directory)
        self.lock_file = self.directory / "dataset_cache.lock"
        self._file_lock = None

    def _lock(self) -> FileLock:
        if self._file_lock is None:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._file_lock = FileLock(str(self.lock_file), timeout=DATASET_CACHE_LOCK_TIMEOUT)
        return self._file_lock

    def paths(self, epoch: int, item_count: int):
        stem = f"epoch-{epoch}-{item_count}"
        return self.directory / f"{stem}.dag", self.directory / f"{stem}.json"

    def load(self, epoch: int, item_count: int, cache_items: int) -> Optional[np.ndarray]:
        """
        Return the stored (item_count, 16) items, or None when missing or stale.

        Raises:
            DatasetCacheError: If the lock cannot be taken
        """
        data_path, meta_path = self.paths(epoch, item_count)
        if not data_path.exists() or not meta_path.exists():
            return None

        try:
            with self._lock():
                meta = self._load_meta(meta_path)
                reason = self._check_meta(meta, epoch, item_count, cache_items)
                if reason is None and data_path.stat().st_size != item_count * HASH_BYTES:
                    reason = f"file size {data_path.stat().st_size} != {item_count * HASH_BYTES}"

                items = None
                if reason is None:
                    items = np.fromfile(str(data_path), dtype='<u4').astype(np.uint32, copy=False)
                    items = items.reshape(item_count, HASH_WORDS)
                    if checksum_items(items) != meta["checksum"]:
                        reason = "checksum mismatch"

                if reason is not None:
                    logging.warning(f"Discarding stale dataset for epoch {epoch}: {reason}")
                    self._remove(data_path, meta_path)
                    return None
        except Timeout as e:
            raise DatasetCacheError(str(self.lock_file), f"lock not acquired in {DATASET_CACHE_LOCK_TIMEOUT}s") from e

        logging.info(f"Loaded dataset for epoch {epoch} from {data_path}")
        return items

    def store(self, epoch: int, items: np.ndarray, cache_items: int) -> str:
        """
        Write ``items`` for ``epoch`` atomically and return its checksum.

        Raises:
            DatasetCacheError: If the files cannot be written
        """
        item_count = items.shape[0]
        data_path, meta_path = self.paths(epoch, item_count)
        checksum = checksum_items(items)
        meta: DatasetCacheMeta = {
            "epoch": epoch,
            "dataset_items": item_count,
            "cache_items": cache_items,
            "checksum": checksum,
            "created_at": time.time(),
        }

        try:
            with self._lock():
                tmp_data = data_path.with_suffix(".dag.tmp")
                tmp_meta = meta_path.with_suffix(".json.tmp")
                np.ascontiguousarray(items, dtype='<u4').tofile(str(tmp_data))
                with open(tmp_meta, 'w', encoding='utf-8') as f:
                    json.dump(meta, f, indent=2)
                os.replace(tmp_data, data_path)
                os.replace(tmp_meta, meta_path)
        except Timeout as e:
            raise DatasetCacheError(str(self.lock_file), f"lock not acquired in {DATASET_CACHE_LOCK_TIMEOUT}s") from e
        except OSError as e:
            raise DatasetCacheError(str(data_path), f"failed to store dataset: {e}") from e

        logging.info(f"Stored dataset for epoch {epoch} ({item_count * HASH_BYTES / 1024 / 1024:.1f}MB) in {data_path}")
        return checksum

    def remove(self, epoch: int, item_count: int) -> None:
        with self._lock():
            self._remove(*self.paths(epoch, item_count))

    def _load_meta(self, meta_path: Path) -> Optional[dict]:
        try:
            with open(meta_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logging.error(f"Error loading dataset metadata {meta_path}: {e}")
            return None

    @staticmethod
    def _check_meta(meta: Optional[dict], epoch: int, item_count: int, cache_items: int) -> Optional[str]:
        if not isinstance(meta, dict):
            return "unreadable metadata"
        expected = {"epoch": epoch, "dataset_items": item_count, "cache_items": cache_items}
        for key, value in expected.items():
            if meta.get(key) != value:
                return f"{key} is {meta.get(key)!r}, expected {value!r}"
        if not isinstance(meta.get("checksum"), str):
            return "missing checksum"
        return None

    @staticmethod
    def _remove(*paths: Path) -> None:
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
