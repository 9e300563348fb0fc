"""
FNV mixing (Ethash variant) and word/byte helpers.

fnv(a, b) = ((a * 0x01000193) mod 2^32) xor b. A full 32-bit multiply of
both operands, not byte-oriented FNV-1a.
"""

import numpy as np

from .constants import FNV_PRIME, WORD_BYTES

_PRIME = np.uint32(FNV_PRIME)
_MASK32 = 0xFFFFFFFF


def fnv(a: int, b: int) -> int:
    return ((a * FNV_PRIME) & _MASK32) ^ b


def fnv_words(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Element-wise fnv over uint32 arrays (wraps mod 2^32)."""
    return (a.astype(np.uint32, copy=False) * _PRIME) ^ b.astype(np.uint32, copy=False)


def fold_mix(mix: np.ndarray) -> np.ndarray:
    """
    Compress (N, 32) mix words to (N, 8): each output word is the cascaded
    fnv of four consecutive input words.
    """
    groups = mix.reshape(mix.shape[0], -1, 4)
    out = fnv_words(groups[:, :, 0], groups[:, :, 1])
    out = fnv_words(out, groups[:, :, 2])
    return fnv_words(out, groups[:, :, 3])


def to_words(data: bytes) -> np.ndarray:
    """Little-endian bytes -> uint32 words."""
    if len(data) % WORD_BYTES:
        raise ValueError(f"Length {len(data)} is not a multiple of {WORD_BYTES}")
    return np.frombuffer(bytes(data), dtype='<u4').astype(np.uint32)


def to_bytes(words: np.ndarray) -> bytes:
    """uint32 words -> little-endian bytes."""
    return np.ascontiguousarray(words, dtype='<u4').tobytes()
