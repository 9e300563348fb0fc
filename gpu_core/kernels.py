CUDA_SOURCE = r"""
#include <stdint.h>

#define HASH_WORDS 16
#define MIX_WORDS 32
#define RESULT_WORDS 8
#define DATASET_PARENTS 256
#define ACCESSES 64
#define FNV_PRIME 0x01000193u
#define TRACE_WORDS (HASH_WORDS + MIX_WORDS + RESULT_WORDS + RESULT_WORDS)

// --- KECCAK-F[1600] ---

__constant__ uint64_t keccakf_rndc[24] = {
    0x0000000000000001ULL, 0x0000000000008082ULL, 0x800000000000808aULL,
    0x8000000080008000ULL, 0x000000000000808bULL, 0x0000000080000001ULL,
    0x8000000080008081ULL, 0x8000000000008009ULL, 0x000000000000008aULL,
    0x0000000000000088ULL, 0x0000000080008009ULL, 0x000000008000000aULL,
    0x000000008000808bULL, 0x800000000000008bULL, 0x8000000000008089ULL,
    0x8000000000008003ULL, 0x8000000000008002ULL, 0x8000000000000080ULL,
    0x000000000000800aULL, 0x800000008000000aULL, 0x8000000080008081ULL,
    0x8000000000008080ULL, 0x0000000080000001ULL, 0x8000000080008008ULL
};

__constant__ int keccakf_rotc[24] = {
    1,  3,  6,  10, 15, 21, 28, 36, 45, 55, 2,  14,
    27, 41, 56, 8,  25, 43, 62, 18, 39, 61, 20, 44
};

__constant__ int keccakf_piln[24] = {
    10, 7,  11, 17, 18, 3, 5,  16, 8,  21, 24, 4,
    15, 23, 19, 13, 12, 2, 20, 14, 22, 9,  6,  1
};

__device__ __forceinline__ uint64_t rotl64(const uint64_t x, const int n) {
    return (x << n) | (x >> (64 - n));
}

__device__ void keccakf(uint64_t st[25]) {
    uint64_t t, bc[5];

    for (int r = 0; r < 24; r++) {
        // Theta
        #pragma unroll
        for (int i = 0; i < 5; i++)
            bc[i] = st[i] ^ st[i + 5] ^ st[i + 10] ^ st[i + 15] ^ st[i + 20];

        #pragma unroll
        for (int i = 0; i < 5; i++) {
            t = bc[(i + 4) % 5] ^ rotl64(bc[(i + 1) % 5], 1);
            #pragma unroll
            for (int j = 0; j < 25; j += 5)
                st[j + i] ^= t;
        }

        // Rho Pi
        t = st[1];
        #pragma unroll
        for (int i = 0; i < 24; i++) {
            int j = keccakf_piln[i];
            bc[0] = st[j];
            st[j] = rotl64(t, keccakf_rotc[i]);
            t = bc[0];
        }

        // Chi
        #pragma unroll
        for (int j = 0; j < 25; j += 5) {
            #pragma unroll
            for (int i = 0; i < 5; i++)
                bc[i] = st[j + i];
            #pragma unroll
            for (int i = 0; i < 5; i++)
                st[j + i] ^= (~bc[(i + 1) % 5]) & bc[(i + 2) % 5];
        }

        // Iota
        st[0] ^= keccakf_rndc[r];
    }
}

__device__ __forceinline__ uint64_t lane(const uint32_t* w, int k) {
    return (uint64_t)w[2 * k] | ((uint64_t)w[2 * k + 1] << 32);
}

__device__ __forceinline__ void unlane(uint32_t* w, int k, uint64_t v) {
    w[2 * k] = (uint32_t)v;
    w[2 * k + 1] = (uint32_t)(v >> 32);
}

// Keccak-512 of a 64-byte message, in place. Rate 72: pad 0x01 at byte 64,
// 0x80 at byte 71, both in lane 8.
__device__ void keccak512_64(uint32_t h[HASH_WORDS]) {
    uint64_t st[25];
    #pragma unroll
    for (int i = 0; i < 8; i++) st[i] = lane(h, i);
    st[8] = 0x8000000000000001ULL;
    #pragma unroll
    for (int i = 9; i < 25; i++) st[i] = 0;

    keccakf(st);

    #pragma unroll
    for (int i = 0; i < 8; i++) unlane(h, i, st[i]);
}

// Keccak-512 of header (32 bytes) || nonce (8 bytes, little-endian).
// Pad 0x01 at byte 40 (lane 5), 0x80 at byte 71 (lane 8).
__device__ void keccak512_header_nonce(const uint32_t header[8], uint64_t nonce, uint32_t out[HASH_WORDS]) {
    uint64_t st[25];
    #pragma unroll
    for (int i = 0; i < 4; i++) st[i] = lane(header, i);
    st[4] = nonce;
    st[5] = 0x01ULL;
    st[6] = 0;
    st[7] = 0;
    st[8] = 0x8000000000000000ULL;
    #pragma unroll
    for (int i = 9; i < 25; i++) st[i] = 0;

    keccakf(st);

    #pragma unroll
    for (int i = 0; i < 8; i++) unlane(out, i, st[i]);
}

// Keccak-256 of s (64 bytes) || cmix (32 bytes). Rate 136: pad 0x01 at
// byte 96 (lane 12), 0x80 at byte 135 (lane 16).
__device__ void keccak256_96(const uint32_t s[HASH_WORDS], const uint32_t cmix[RESULT_WORDS], uint32_t out[RESULT_WORDS]) {
    uint64_t st[25];
    #pragma unroll
    for (int i = 0; i < 8; i++) st[i] = lane(s, i);
    #pragma unroll
    for (int i = 0; i < 4; i++) st[8 + i] = lane(cmix, i);
    st[12] = 0x01ULL;
    #pragma unroll
    for (int i = 13; i < 25; i++) st[i] = 0;
    st[16] = 0x8000000000000000ULL;

    keccakf(st);

    #pragma unroll
    for (int i = 0; i < 4; i++) unlane(out, i, st[i]);
}

// --- FNV ---

__device__ __forceinline__ uint32_t fnv(uint32_t a, uint32_t b) {
    return (a * FNV_PRIME) ^ b;
}

// --- PARTITION ROUTING ---

__device__ __forceinline__ const uint32_t* dag_item(
    const uint32_t* const* partitions, uint32_t items_per_partition, uint32_t index) {
    return partitions[index / items_per_partition] + (size_t)(index % items_per_partition) * HASH_WORDS;
}

// --- HASHIMOTO ---

__device__ void hashimoto_eval(
    const uint32_t* const* partitions, uint32_t items_per_partition, uint32_t dataset_items,
    const uint32_t header[8], uint64_t nonce,
    uint32_t s[HASH_WORDS], uint32_t mix[MIX_WORDS], uint32_t cmix[RESULT_WORDS], uint32_t result[RESULT_WORDS])
{
    keccak512_header_nonce(header, nonce, s);

    #pragma unroll
    for (int k = 0; k < HASH_WORDS; k++) {
        mix[k] = s[k];
        mix[k + HASH_WORDS] = s[k];
    }

    const uint32_t pairs = dataset_items / 2;
    uint32_t first[HASH_WORDS];
    uint32_t second[HASH_WORDS];

    for (uint32_t a = 0; a < ACCESSES; a++) {
        uint32_t p = (fnv(a ^ s[0], mix[a % MIX_WORDS]) % pairs) * 2;

        // Load both items before mix is touched
        const uint32_t* d0 = dag_item(partitions, items_per_partition, p);
        const uint32_t* d1 = dag_item(partitions, items_per_partition, p + 1);
        #pragma unroll
        for (int k = 0; k < HASH_WORDS; k++) {
            first[k] = d0[k];
            second[k] = d1[k];
        }

        #pragma unroll
        for (int k = 0; k < HASH_WORDS; k++) {
            mix[k] = fnv(mix[k], first[k]);
            mix[k + HASH_WORDS] = fnv(mix[k + HASH_WORDS], second[k]);
        }
    }

    #pragma unroll
    for (int k = 0; k < RESULT_WORDS; k++)
        cmix[k] = fnv(fnv(fnv(mix[4 * k], mix[4 * k + 1]), mix[4 * k + 2]), mix[4 * k + 3]);

    keccak256_96(s, cmix, result);
}

extern "C" {

// One thread per dataset item. out points at the item's slot inside its
// partition; first_index is the global index of thread 0.
__global__ void build_dataset_items(
    const uint32_t* cache, uint32_t cache_items,
    uint32_t* out, uint32_t first_index, uint32_t count)
{
    uint32_t tid = blockIdx.x * blockDim.x + threadIdx.x;
    if (tid >= count) return;

    uint32_t index = first_index + tid;
    uint32_t mix[HASH_WORDS];

    const uint32_t* src = cache + (size_t)(index % cache_items) * HASH_WORDS;
    #pragma unroll
    for (int k = 0; k < HASH_WORDS; k++) mix[k] = src[k];
    mix[0] ^= index;
    keccak512_64(mix);

    for (uint32_t j = 0; j < DATASET_PARENTS; j++) {
        uint32_t parent = fnv(index ^ j, mix[j % HASH_WORDS]) % cache_items;
        const uint32_t* item = cache + (size_t)parent * HASH_WORDS;
        #pragma unroll
        for (int k = 0; k < HASH_WORDS; k++) mix[k] = fnv(mix[k], item[k]);
    }

    keccak512_64(mix);

    uint32_t* dst = out + (size_t)tid * HASH_WORDS;
    #pragma unroll
    for (int k = 0; k < HASH_WORDS; k++) dst[k] = mix[k];
}

// One thread per nonce. Writes the 8-word result hash.
__global__ void hashimoto_search(
    const uint32_t* const* partitions, uint32_t items_per_partition, uint32_t dataset_items,
    const uint32_t* header, const uint64_t* nonces, uint32_t count, uint32_t* hashes)
{
    uint32_t tid = blockIdx.x * blockDim.x + threadIdx.x;
    if (tid >= count) return;

    uint32_t hdr[8];
    #pragma unroll
    for (int k = 0; k < 8; k++) hdr[k] = header[k];

    uint32_t s[HASH_WORDS], mix[MIX_WORDS], cmix[RESULT_WORDS], result[RESULT_WORDS];
    hashimoto_eval(partitions, items_per_partition, dataset_items, hdr, nonces[tid], s, mix, cmix, result);

    uint32_t* dst = hashes + (size_t)tid * RESULT_WORDS;
    #pragma unroll
    for (int k = 0; k < RESULT_WORDS; k++) dst[k] = result[k];
}

// Same as hashimoto_search, keeping s, the final mix, cmix and the result.
__global__ void hashimoto_trace(
    const uint32_t* const* partitions, uint32_t items_per_partition, uint32_t dataset_items,
    const uint32_t* header, const uint64_t* nonces, uint32_t count, uint32_t* trace)
{
    uint32_t tid = blockIdx.x * blockDim.x + threadIdx.x;
    if (tid >= count) return;

    uint32_t hdr[8];
    #pragma unroll
    for (int k = 0; k < 8; k++) hdr[k] = header[k];

    uint32_t* dst = trace + (size_t)tid * TRACE_WORDS;
    hashimoto_eval(partitions, items_per_partition, dataset_items, hdr, nonces[tid],
                   dst, dst + HASH_WORDS, dst + HASH_WORDS + MIX_WORDS,
                   dst + HASH_WORDS + MIX_WORDS + RESULT_WORDS);
}

// One thread per hash. Hash and threshold are eight little-endian words,
// compared from the most significant word down.
__global__ void difficulty_filter(
    const uint32_t* hashes, const uint64_t* nonces, uint32_t count,
    const uint32_t* threshold, uint64_t* winners, uint32_t* winner_count)
{
    uint32_t tid = blockIdx.x * blockDim.x + threadIdx.x;
    if (tid >= count) return;

    const uint32_t* h = hashes + (size_t)tid * RESULT_WORDS;
    bool less = false;
    for (int k = RESULT_WORDS - 1; k >= 0; k--) {
        if (h[k] != threshold[k]) {
            less = h[k] < threshold[k];
            break;
        }
    }

    if (less) {
        uint32_t slot = atomicAdd(winner_count, 1u);
        winners[slot] = nonces[tid];
    }
}

}
"""

# Words written per nonce by hashimoto_trace: s, mix, cmix, result
TRACE_WORDS = 16 + 32 + 8 + 8
