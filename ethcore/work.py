"""
Work-input normalisation.

Header hashes, nonces and thresholds arrive from collaborators as bytes, hex
strings or integers. Everything is checked and converted here so the
backends only ever see a 32-byte header, a uint64 nonce array and an integer
threshold.

Nonce byte order: the 8-byte form of a nonce is the big-endian value found
in block headers. Hashimoto appends the byte-reversed form, i.e. the
nonce's little-endian encoding, so backends pack nonces as little-endian
uint64 lanes.
"""

from typing import Iterable, Union

import numpy as np

from .constants import HEADER_BYTES, MAX_THRESHOLD, NONCE_BYTES, RESULT_BYTES
from .exceptions import InvalidWorkError

BytesLike = Union[bytes, bytearray, memoryview, str]

_MAX_NONCE = (1 << 64) - 1


def _from_hex(value: str, field: str) -> bytes:
    text = value[2:] if value.lower().startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise InvalidWorkError(field, f"not a hex string: {e}") from e


def _parse_hex_int(value: str, field: str) -> int:
    """Hex digits (any count, optional 0x) as an unsigned integer."""
    text = value[2:] if value.lower().startswith("0x") else value
    if not text or text[0] in "+-" or "_" in text:
        raise InvalidWorkError(field, f"not a hex string: {value!r}")
    try:
        return int(text, 16)
    except ValueError as e:
        raise InvalidWorkError(field, f"not a hex string: {value!r}") from e


def normalize_header(header: BytesLike) -> bytes:
    """32-byte header hash from bytes or 0x-hex."""
    raw = _from_hex(header, "header hash") if isinstance(header, str) else bytes(header)
    if len(raw) != HEADER_BYTES:
        raise InvalidWorkError("header hash", f"expected {HEADER_BYTES} bytes, got {len(raw)}")
    return raw


def _nonce_value(nonce) -> int:
    if isinstance(nonce, (bytes, bytearray, memoryview)):
        if len(nonce) != NONCE_BYTES:
            raise InvalidWorkError("nonce", f"expected {NONCE_BYTES} bytes, got {len(nonce)}")
        return int.from_bytes(bytes(nonce), "big")
    if isinstance(nonce, str):
        return _nonce_value(_parse_hex_int(nonce, "nonce"))
    if isinstance(nonce, bool):
        raise InvalidWorkError("nonce", "booleans are not nonces")
    value = int(nonce)
    if not 0 <= value <= _MAX_NONCE:
        raise InvalidWorkError("nonce", f"{value} does not fit in 64 bits")
    return value


def normalize_nonces(nonces: Union[np.ndarray, Iterable]) -> np.ndarray:
    """
    Convert a batch of nonces to a 1-D uint64 array.

    Accepts a numpy integer array, or an iterable of ints, 8-byte big-endian
    byte strings, or hex strings.
    """
    if isinstance(nonces, np.ndarray):
        if nonces.dtype.kind not in "iu":
            raise InvalidWorkError("nonces", f"integer array expected, got dtype {nonces.dtype}")
        if nonces.dtype.kind == "i" and nonces.size and nonces.min() < 0:
            raise InvalidWorkError("nonces", "negative values are not nonces")
        return np.ascontiguousarray(nonces.ravel(), dtype=np.uint64)
    if isinstance(nonces, (bytes, bytearray, str)):
        raise InvalidWorkError("nonces", "expected a sequence of nonces, got a single value")
    return np.array([_nonce_value(n) for n in nonces], dtype=np.uint64)


def nonce_to_bytes(nonce: int) -> bytes:
    """Header form of a nonce (8 bytes, big-endian)."""
    return int(nonce).to_bytes(NONCE_BYTES, "big")


def nonce_range(start: int, count: int) -> np.ndarray:
    """``count`` consecutive nonces from ``start``, wrapping at 2^64."""
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    start = _nonce_value(start)
    return np.arange(count, dtype=np.uint64) + np.uint64(start)


def difficulty_to_threshold(difficulty: int) -> int:
    """floor(2^256 / difficulty), clamped to the largest 256-bit value."""
    difficulty = int(difficulty)
    if difficulty < 1:
        raise InvalidWorkError("difficulty", f"must be at least 1, got {difficulty}")
    return min((1 << 256) // difficulty, MAX_THRESHOLD)


def threshold_from_target(target: Union[int, BytesLike]) -> int:
    """Parse a big-endian 256-bit target (int, 32 bytes, or hex) to an int."""
    if isinstance(target, str):
        return check_threshold(_parse_hex_int(target, "target"))
    if isinstance(target, (bytes, bytearray, memoryview)):
        if len(target) > 32:
            raise InvalidWorkError("target", f"more than 32 bytes ({len(target)})")
        return int.from_bytes(bytes(target), "big")
    return check_threshold(target)


def check_threshold(threshold: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, (int, np.integer)):
        raise InvalidWorkError("threshold", f"expected an integer, got {type(threshold).__name__}")
    threshold = int(threshold)
    if not 0 <= threshold <= MAX_THRESHOLD:
        raise InvalidWorkError("threshold", "must lie in [0, 2^256 - 1]")
    return threshold


def threshold_to_words(threshold: int) -> np.ndarray:
    """Eight uint32 words of the threshold, least significant first."""
    raw = check_threshold(threshold).to_bytes(RESULT_BYTES, "little")
    return np.frombuffer(raw, dtype="<u4").astype(np.uint32)


def hash_to_int(result: bytes) -> int:
    """A result hash read as a little-endian 256-bit integer."""
    return int.from_bytes(bytes(result), "little")
