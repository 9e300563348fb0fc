import numpy as np

from ethcore.constants import FNV_PRIME
from ethcore.fnv import fnv, fnv_words, fold_mix, to_bytes, to_words


def test_fnv_known_value():
    # 0x66 * 0x01000193 = 0x6600a092, xor 0
    assert fnv(0x00000066, 0x00000000) == 0x6600A092


def test_fnv_wraps_to_32_bits():
    assert fnv(0xFFFFFFFF, 0) == (0xFFFFFFFF * FNV_PRIME) & 0xFFFFFFFF
    assert fnv(0xFFFFFFFF, 0) < 1 << 32


def test_fnv_self_cancel():
    for x in (0, 1, 0x66, 0xDEADBEEF, 0xFFFFFFFF, 123456789):
        assert fnv(x, (x * FNV_PRIME) % (1 << 32)) == 0


def test_fnv_words_matches_scalar():
    rng = np.random.default_rng(7)
    a = rng.integers(0, 1 << 32, size=500, dtype=np.uint32)
    b = rng.integers(0, 1 << 32, size=500, dtype=np.uint32)
    out = fnv_words(a, b)
    assert out.dtype == np.uint32
    assert [int(v) for v in out] == [fnv(int(x), int(y)) for x, y in zip(a, b)]


def test_fold_mix_matches_scalar():
    rng = np.random.default_rng(8)
    mix = rng.integers(0, 1 << 32, size=(4, 32), dtype=np.uint32)
    folded = fold_mix(mix)
    assert folded.shape == (4, 8)
    for row, out in zip(mix, folded):
        m = [int(v) for v in row]
        expected = [fnv(fnv(fnv(m[i], m[i + 1]), m[i + 2]), m[i + 3]) for i in range(0, 32, 4)]
        assert [int(v) for v in out] == expected


def test_word_layout_is_little_endian():
    assert list(to_words(b"\x01\x00\x00\x00\x00\x00\x00\x80")) == [1, 0x80000000]
    assert to_bytes(np.array([1, 0x80000000], dtype=np.uint32)) == b"\x01\x00\x00\x00\x00\x00\x00\x80"
