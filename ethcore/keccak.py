"""
Keccak Primitive

Keccak-f[1600] with the original multi-rate padding (0x01 ... 0x80), in two
configurations: 256-bit output (136-byte rate) and 512-bit output (72-byte
rate). This is pre-standard Keccak, not NIST SHA-3.

Two implementations live here:

* ``keccak_256`` / ``keccak_512`` hash arbitrary byte strings on the host via
  pycryptodome. Used for seeds, the cache chain and checksums.
* ``keccak`` and the ``*_words`` helpers run the permutation over a batch of
  single-block messages with numpy, one row per message. This is what the
  host backend uses for dataset items and Hashimoto, and what the tests hold
  against the pycryptodome digests.

numpy has native 64-bit lanes, so a lane is a single uint64 rather than a pair
of 32-bit halves.
"""

import numpy as np
from Crypto.Hash import keccak as _keccak

from .constants import KECCAK_256_RATE, KECCAK_512_RATE, KECCAK_ROUNDS

# Round constants for the iota step
ROUND_CONSTANTS = np.array([
    0x0000000000000001, 0x0000000000008082, 0x800000000000808A,
    0x8000000080008000, 0x000000000000808B, 0x0000000080000001,
    0x8000000080008081, 0x8000000000008009, 0x000000000000008A,
    0x0000000000000088, 0x0000000080008009, 0x000000008000000A,
    0x000000008000808B, 0x800000000000008B, 0x8000000000008089,
    0x8000000000008003, 0x8000000000008002, 0x8000000000000080,
    0x000000000000800A, 0x800000008000000A, 0x8000000080008081,
    0x8000000000008080, 0x0000000080000001, 0x8000000080008008,
], dtype=np.uint64)

# Rho offsets, indexed by lane x + 5*y
ROTATION_OFFSETS = (
    0, 1, 62, 28, 27,
    36, 44, 6, 55, 20,
    3, 10, 43, 25, 39,
    41, 45, 15, 21, 8,
    18, 2, 61, 56, 14,
)


def _pi_tables():
    # Lane x + 5y moves to y + 5*((2x + 3y) % 5). Inverted here so rho/pi is
    # a single gather: dest[:, d] = rotl(src[:, source[d]], shift[d])
    source = np.zeros(25, dtype=np.intp)
    shift = np.zeros(25, dtype=np.uint64)
    for x in range(5):
        for y in range(5):
            d = y + 5 * ((2 * x + 3 * y) % 5)
            source[d] = x + 5 * y
            shift[d] = ROTATION_OFFSETS[x + 5 * y]
    return source, shift


_PI_SOURCE, _PI_SHIFT = _pi_tables()
# (64 - r) & 63 keeps the zero rotation of lane 0 well defined
_PI_BACK = (np.uint64(64) - _PI_SHIFT) & np.uint64(63)

_ONE = np.uint64(1)
_SIXTY_THREE = np.uint64(63)


def keccak_256(data: bytes) -> bytes:
    """Keccak-256 digest (32 bytes) of an arbitrary byte string."""
    return _keccak.new(digest_bits=256, data=bytes(data)).digest()


def keccak_512(data: bytes) -> bytes:
    """Keccak-512 digest (64 bytes) of an arbitrary byte string."""
    return _keccak.new(digest_bits=512, data=bytes(data)).digest()


def keccak_f1600(state: np.ndarray) -> np.ndarray:
    """
    Apply the 24-round permutation to a batch of states in place.

    Args:
        state: (N, 25) uint64 array, lane index x + 5*y

    Returns:
        The same array, permuted
    """
    lanes = state.reshape(-1, 5, 5)  # [n, y, x]
    for rnd in range(KECCAK_ROUNDS):
        # theta
        c = np.bitwise_xor.reduce(lanes, axis=1)
        c_right = np.roll(c, -1, axis=1)
        d = np.roll(c, 1, axis=1) ^ ((c_right << _ONE) | (c_right >> _SIXTY_THREE))
        lanes ^= d[:, None, :]

        # rho + pi
        src = state[:, _PI_SOURCE]
        b = ((src << _PI_SHIFT) | (src >> _PI_BACK)).reshape(-1, 5, 5)

        # chi
        lanes[...] = b ^ (~np.roll(b, -1, axis=2) & np.roll(b, -2, axis=2))

        # iota
        state[:, 0] ^= ROUND_CONSTANTS[rnd]
    return state


def pad_block(messages: np.ndarray, rate: int) -> np.ndarray:
    """
    Keccak multi-rate pad each row of ``messages`` into one rate-sized block.

    Raises:
        ValueError: If a message does not leave room for the pad bytes
    """
    count, length = messages.shape
    if length >= rate:
        raise ValueError(f"Message of {length} bytes does not fit a single {rate}-byte block")
    block = np.zeros((count, rate), dtype=np.uint8)
    block[:, :length] = messages
    block[:, length] ^= 0x01
    block[:, rate - 1] ^= 0x80
    return block


def keccak(messages: np.ndarray, rate: int, out_bytes: int) -> np.ndarray:
    """
    Hash a batch of equal-length single-block messages.

    Args:
        messages: (N, L) uint8 array, L < rate
        rate: 136 for Keccak-256, 72 for Keccak-512
        out_bytes: digest length to squeeze (<= rate)

    Returns:
        (N, out_bytes) uint8 array of digests
    """
    messages = np.asarray(messages, dtype=np.uint8)
    if messages.ndim == 1:
        messages = messages[None, :]
    block = pad_block(messages, rate)

    state = np.zeros((block.shape[0], 25), dtype=np.uint64)
    state[:, :rate // 8] = block.view('<u8')
    keccak_f1600(state)

    out = state.astype('<u8', copy=False).view(np.uint8)
    return np.ascontiguousarray(out[:, :out_bytes])


def keccak_256_batch(messages: np.ndarray) -> np.ndarray:
    return keccak(messages, KECCAK_256_RATE, 32)


def keccak_512_batch(messages: np.ndarray) -> np.ndarray:
    return keccak(messages, KECCAK_512_RATE, 64)


def _as_bytes(words: np.ndarray) -> np.ndarray:
    words = np.ascontiguousarray(words, dtype='<u4')
    return words.view(np.uint8)


def keccak_512_words(words: np.ndarray) -> np.ndarray:
    """(N, k) uint32 little-endian words -> (N, 16) uint32 digest words."""
    digest = keccak_512_batch(_as_bytes(words))
    return digest.view('<u4').astype(np.uint32)


def keccak_256_words(words: np.ndarray) -> np.ndarray:
    """(N, k) uint32 little-endian words -> (N, 8) uint32 digest words."""
    digest = keccak_256_batch(_as_bytes(words))
    return digest.view('<u4').astype(np.uint32)


def new_keccak_256():
    """Incremental Keccak-256 hasher (update()/hexdigest()) for large inputs."""
    return _keccak.new(digest_bits=256)
