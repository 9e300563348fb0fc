"""Keccak-256/512 against published vectors and against pycryptodome."""

import numpy as np
import pytest

from ethcore.constants import KECCAK_256_RATE, KECCAK_512_RATE
from ethcore.keccak import (
    keccak,
    keccak_256,
    keccak_256_batch,
    keccak_512,
    keccak_512_batch,
    keccak_f1600,
    pad_block,
)

LONG = b"abcdbcdecdefdefgefghfghighijhijkijkljklmklmnlmnomnopnopq"

VECTORS_256 = [
    (b"", "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"),
    (b"abc", "4e03657aea45a94fc7d47ba826c8d667c0d1e6e33a64a036ec44f58fa12d6c45"),
    (LONG, "45d3b367a6904e6e8d502ee04999a7c27647f91fa845d456525fd352ae3d7371"),
]

VECTORS_512 = [
    (b"", "0eab42de4c3ceb9235fc91acffe746b29c29a8c366b7c60e4e67c466f36a4304"
          "c00fa9caf9d87976ba469bcbe06713b435f091ef2769fb160cdab33d3670680e"),
    (b"abc", "18587dc2ea106b9a1563e32b3312421ca164c7f1f07bc922a9c83d77cea3a1e5"
             "d0c69910739025372dc14ac9642629379540c17e2a65b19d77aa511a9d00bb96"),
]


def _batch(fn, message: bytes) -> bytes:
    arr = np.frombuffer(message, dtype=np.uint8).reshape(1, len(message))
    return fn(arr)[0].tobytes()


@pytest.mark.parametrize("message,digest", VECTORS_256)
def test_keccak_256_vectors(message, digest):
    assert keccak_256(message).hex() == digest
    assert _batch(keccak_256_batch, message) == bytes.fromhex(digest)


@pytest.mark.parametrize("message,digest", VECTORS_512)
def test_keccak_512_vectors(message, digest):
    assert keccak_512(message).hex() == digest
    assert _batch(keccak_512_batch, message) == bytes.fromhex(digest)


def test_keccak_512_long_vector_matches_host():
    assert _batch(keccak_512_batch, LONG) == keccak_512(LONG)


def test_not_nist_sha3():
    # SHA3-256("") starts with a7ffc6f8; Keccak's original padding differs
    assert not keccak_256(b"").hex().startswith("a7ffc6f8")


@pytest.mark.parametrize("rate,out_bytes,host", [
    (KECCAK_256_RATE, 32, keccak_256),
    (KECCAK_512_RATE, 64, keccak_512),
])
def test_batch_agrees_with_host_at_every_length(rate, out_bytes, host):
    """Each single-block length, including rate - 1 where both pad bytes share one byte."""
    rng = np.random.default_rng(1234)
    for length in range(rate):
        messages = rng.integers(0, 256, size=(3, length), dtype=np.uint8)
        digests = keccak(messages, rate, out_bytes)
        for row, digest in zip(messages, digests):
            assert digest.tobytes() == host(row.tobytes()), f"length {length}"


def test_pad_block_shared_byte():
    block = pad_block(np.zeros((1, KECCAK_512_RATE - 1), dtype=np.uint8), KECCAK_512_RATE)
    assert block[0, -1] == 0x81


def test_pad_block_rejects_full_block():
    with pytest.raises(ValueError):
        pad_block(np.zeros((1, KECCAK_256_RATE), dtype=np.uint8), KECCAK_256_RATE)


def test_permutation_of_zero_state():
    # First lane of Keccak-f[1600] applied to the all-zero state
    state = np.zeros((2, 25), dtype=np.uint64)
    keccak_f1600(state)
    assert int(state[0, 0]) == 0xF1258F7940E1DDE7
    assert np.array_equal(state[0], state[1])
