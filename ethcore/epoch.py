"""
Epoch and seed-hash resolution.

The seed for epoch 0 is 32 zero bytes; every later seed is Keccak-256 of the
previous one. Both directions are memoised since walking the chain is linear
in the epoch.
"""

import logging
from typing import Dict, List, Union

from .constants import EPOCH_LENGTH, MAX_EPOCH
from .exceptions import EpochResolutionError, InvalidWorkError
from .keccak import keccak_256

# seeds[i] is the seed hash of epoch i, extended lazily
_seeds: List[bytes] = [b"\x00" * 32]
_epochs: Dict[bytes, int] = {_seeds[0]: 0}


def _extend_to(epoch: int) -> None:
    while len(_seeds) <= epoch:
        seed = keccak_256(_seeds[-1])
        _epochs.setdefault(seed, len(_seeds))
        _seeds.append(seed)


def seed_hash(epoch: int) -> bytes:
    """32-byte seed hash for ``epoch``."""
    if epoch < 0:
        raise ValueError(f"Epoch must be non-negative, got {epoch}")
    _extend_to(epoch)
    return _seeds[epoch]


def _normalize_seed(seed: Union[bytes, str]) -> bytes:
    if isinstance(seed, str):
        text = seed[2:] if seed.lower().startswith("0x") else seed
        try:
            seed = bytes.fromhex(text)
        except ValueError as e:
            raise InvalidWorkError("seed", f"not a hex string: {e}") from e
    return bytes(seed)


def epoch_from_seed(seed: Union[bytes, str], max_epoch: int = MAX_EPOCH) -> int:
    """
    Resolve a seed hash (bytes or hex) to its epoch.

    Raises:
        EpochResolutionError: If no epoch up to ``max_epoch`` has this seed
    """
    raw = _normalize_seed(seed)
    if raw in _epochs and _epochs[raw] <= max_epoch:
        return _epochs[raw]

    # Only the part of the chain not walked yet needs hashing
    _extend_to(max_epoch)
    epoch = _epochs.get(raw)
    if epoch is None or epoch > max_epoch:
        logging.warning(f"Could not find epoch for seed 0x{raw.hex()} (searched up to epoch {max_epoch})")
        raise EpochResolutionError("0x" + raw.hex(), max_epoch)
    return epoch


def epoch_from_block(block_number: int, epoch_length: int = EPOCH_LENGTH) -> int:
    if block_number < 0:
        raise ValueError(f"Block number must be non-negative, got {block_number}")
    return block_number // epoch_length


def validate_epoch(epoch: int, block_number: int, epoch_length: int = EPOCH_LENGTH) -> bool:
    """Sanity check that a work package's epoch agrees with its block number."""
    return epoch == epoch_from_block(block_number, epoch_length)
