"""
Constants Module

Centralized location for the Ethash parameters and the engine's tunable
defaults. Algorithm constants must never change; the defaults below are only
starting points and can be overridden through the YAML config.
"""

# ============================================================================
# Ethash Algorithm Parameters
# ============================================================================

# Bytes in one word of cache/dataset/mix state
WORD_BYTES = 4

# Bytes in one cache or dataset item (Keccak-512 output)
HASH_BYTES = 64

# 32-bit words per cache or dataset item
HASH_WORDS = HASH_BYTES // WORD_BYTES

# Width of the Hashimoto mix (two dataset items)
MIX_BYTES = 128

# 32-bit words in the Hashimoto mix
MIX_WORDS = MIX_BYTES // WORD_BYTES

# Dataset items read per Hashimoto access
MIX_HASHES = MIX_BYTES // HASH_BYTES

# Cache size at epoch 0 (bytes) - 16MB
CACHE_INIT_BYTES = 1 << 24

# Cache growth per epoch (bytes) - 128KB
CACHE_GROWTH_BYTES = 1 << 17

# Dataset size at epoch 0 (bytes) - 1GB
DATASET_INIT_BYTES = 1 << 30

# Dataset growth per epoch (bytes) - 8MB
DATASET_GROWTH_BYTES = 1 << 23

# Mixing rounds applied to the cache after the Keccak chain
CACHE_ROUNDS = 3

# Cache parents folded into every dataset item
DATASET_PARENTS = 256

# Dataset accesses per nonce in the Hashimoto loop
HASHIMOTO_ACCESSES = 64

# Ethash FNV prime (word-level variant)
FNV_PRIME = 0x01000193

# Blocks per epoch (pre-ECIP-1099 Ethash)
EPOCH_LENGTH = 30000

# Blocks per epoch on Ethereum Classic after ECIP-1099
ETC_EPOCH_LENGTH = 60000

# Upper bound when searching an epoch for a seed hash
MAX_EPOCH = 2048

# Result hash length (Keccak-256 output)
RESULT_BYTES = 32

# Header hash length
HEADER_BYTES = 32

# Nonce length
NONCE_BYTES = 8

# Largest representable 256-bit threshold
MAX_THRESHOLD = (1 << 256) - 1

# ============================================================================
# Keccak Parameters
# ============================================================================

# Rate in bytes for the 256-bit output variant
KECCAK_256_RATE = 136

# Rate in bytes for the 512-bit output variant
KECCAK_512_RATE = 72

# Rounds of Keccak-f[1600]
KECCAK_ROUNDS = 24

# ============================================================================
# Engine Defaults
# ============================================================================

# Default execution backend ("auto", "cuda" or "host")
DEFAULT_BACKEND = "auto"

# Single-allocation ceiling when engine.max_allocation_bytes is unset (bytes) - 2GB
DEFAULT_MAX_ALLOCATION = 2 * 1024 * 1024 * 1024

# Maximum number of dataset partitions a kernel may bind
DEFAULT_MAX_PARTITIONS = 8

# CUDA threads per block
DEFAULT_THREADS_PER_BLOCK = 128

# Dataset items generated per CUDA launch (keeps launches short)
DEFAULT_DAG_DISPATCH_ITEMS = 1 << 20

# Dataset items per host chunk
DEFAULT_HOST_CHUNK_ITEMS = 1 << 14

# Host worker threads (0 = one per CPU)
DEFAULT_HOST_WORKERS = 0

# Nonces per batch used by the CLI
DEFAULT_BATCH_SIZE = 1 << 16

# Headroom kept free when checking memory before a build (bytes) - 64MB
MEMORY_HEADROOM_BYTES = 64 * 1024 * 1024

# ============================================================================
# Dataset Cache
# ============================================================================

# Default directory for persisted datasets
DEFAULT_DATASET_CACHE_DIR = "dag_cache"

# Seconds to wait for the dataset cache file lock
DATASET_CACHE_LOCK_TIMEOUT = 30

# ============================================================================
# Logging Configuration
# ============================================================================

# Default log file name
DEFAULT_LOG_FILE = "engine.log"

# Maximum log file size for rotation (bytes) - 10MB
LOG_MAX_SIZE = 10 * 1024 * 1024

# Number of backup log files to keep
LOG_BACKUP_COUNT = 5

# Default config file name
DEFAULT_CONFIG_FILE = "engine.yaml"

# Environment variable overriding the config file path
CONFIG_ENV_VAR = "ETHASH_ENGINE_CONFIG"

# ============================================================================
# Display Configuration
# ============================================================================

# Hashrate display threshold for KH/s vs MH/s
HASHRATE_MH_THRESHOLD = 1_000_000
