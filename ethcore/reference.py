"""
Trusted CPU reference.

A plain, sequential rendition of the cache, dataset item, Hashimoto and
threshold rules over Python lists of 32-bit words, hashing with
pycryptodome directly. It shares nothing with the numpy permutation or the
batch kernels and exists to cross-check them (tests, ``main.py selftest``).
It is slow on purpose: one Keccak call per step, one nonce at a time.
"""

from typing import Callable, Dict, List, Optional, Union

from Crypto.Hash import keccak

from .constants import (
    CACHE_ROUNDS,
    DATASET_PARENTS,
    HASHIMOTO_ACCESSES,
    MIX_BYTES,
    HASH_BYTES,
    WORD_BYTES,
)
from .sizing import cache_item_count

FNV_PRIME = 0x01000193

Item = List[int]


def serialize_hash(h: Item) -> bytes:
    return b"".join([x.to_bytes(4, byteorder="little") for x in h])


def deserialize_hash(h: bytes) -> Item:
    return [
        int.from_bytes(h[i:i + WORD_BYTES], byteorder="little")
        for i in range(0, len(h), WORD_BYTES)
    ]


def keccak_512(x: bytes) -> bytes:
    return keccak.new(digest_bits=512, data=x).digest()


def keccak_256(x: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=x).digest()


def hash_words(x: Item) -> Item:
    return deserialize_hash(keccak_512(serialize_hash(x)))


def fnv(v1: int, v2: int) -> int:
    return ((v1 * FNV_PRIME) % 2 ** 32) ^ v2


def make_cache(epoch: int, item_count: Optional[int] = None) -> List[Item]:
    n = item_count if item_count is not None else cache_item_count(epoch)

    # Sequentially produce the initial items
    seed = keccak_512(epoch.to_bytes(4, byteorder="little"))
    o = [deserialize_hash(keccak_512(seed))]
    for _ in range(1, n):
        o.append(hash_words(o[-1]))

    # In-place mixing, later items see earlier rewrites
    for _ in range(CACHE_ROUNDS):
        for i in range(n):
            v = o[i][0] % n
            o[i] = [a ^ b for a, b in zip(o[i], o[v])]

    return o


def calc_dataset_item(cache: List[Item], i: int) -> Item:
    n = len(cache)
    r = HASH_BYTES // WORD_BYTES
    # initialize the mix
    mix = list(cache[i % n])
    mix[0] = (mix[0] ^ i) % 2 ** 32
    mix = hash_words(mix)
    # fnv it with a lot of random cache nodes based on i
    for j in range(DATASET_PARENTS):
        cache_index = fnv(i ^ j, mix[j % r])
        mix = list(map(fnv, mix, cache[cache_index % n]))
    return hash_words(mix)


def _nonce_bytes(nonce: Union[int, bytes]) -> bytes:
    if isinstance(nonce, int):
        return nonce.to_bytes(8, byteorder="big")
    return bytes(nonce)


def hashimoto(header: bytes, nonce: Union[int, bytes], item_count: int,
              dataset_lookup: Callable[[int], Item]) -> Dict[str, bytes]:
    """
    Evaluate one nonce.

    ``nonce`` is an int or its 8-byte big-endian header form; the seed
    absorbs the reversed bytes. Returns the seed, final mix, folded mix and
    result hash, all serialised little-endian.
    """
    n = item_count
    w = MIX_BYTES // WORD_BYTES
    mixhashes = MIX_BYTES // HASH_BYTES
    # combine header+nonce into a 64 byte seed
    s = deserialize_hash(keccak_512(bytes(header) + _nonce_bytes(nonce)[::-1]))
    # start the mix with replicated s
    mix = []
    for _ in range(mixhashes):
        mix.extend(s)
    # mix in random dataset nodes
    for i in range(HASHIMOTO_ACCESSES):
        p = fnv(i ^ s[0], mix[i % w]) % (n // mixhashes) * mixhashes
        newdata = []
        for j in range(mixhashes):
            newdata.extend(dataset_lookup(p + j))
        mix = list(map(fnv, mix, newdata))
    # compress mix
    cmix = []
    for i in range(0, len(mix), 4):
        cmix.append(fnv(fnv(fnv(mix[i], mix[i + 1]), mix[i + 2]), mix[i + 3]))
    return {
        "seed": serialize_hash(s),
        "mix": serialize_hash(mix),
        "cmix": serialize_hash(cmix),
        "result": keccak_256(serialize_hash(s) + serialize_hash(cmix)),
    }


# light-way: dataset items are derived from the cache on demand
def hashimoto_light(item_count: int, cache: List[Item], header: bytes,
                    nonce: Union[int, bytes]) -> Dict[str, bytes]:
    return hashimoto(header, nonce, item_count, lambda x: calc_dataset_item(cache, x))


# heavy-way: dataset is already expanded
def hashimoto_full(dataset, header: bytes, nonce: Union[int, bytes]) -> Dict[str, bytes]:
    return hashimoto(header, nonce, len(dataset), lambda x: [int(v) for v in dataset[x]])


def below_threshold(result: bytes, threshold: int) -> bool:
    """Little-endian big-integer comparison, strictly below."""
    return int.from_bytes(result, byteorder="little") < threshold
