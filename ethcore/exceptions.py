"""
Custom Exception Classes

Defines the exception hierarchy for the Ethash engine. Every error raised
below the engine boundary derives from EngineError so callers can catch the
whole family at once.
"""


class EngineError(Exception):
    """Base exception class for all engine errors."""
    pass


class ConfigurationError(EngineError):
    """Raised for configuration-related errors."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Configuration error for '{key}': {message}")


class GPUError(EngineError):
    """Base class for GPU-related errors."""
    pass


class GPUNotAvailableError(GPUError):
    """Raised when the CUDA backend is required but not available."""

    def __init__(self, message: str = "GPU not available"):
        super().__init__(message)


class GPUInitializationError(GPUError):
    """Raised when GPU initialization fails."""

    def __init__(self, device_id: int, message: str = "GPU failed to initialize"):
        self.device_id = device_id
        super().__init__(f"GPU {device_id}: {message}")


class GPUKernelCompilationError(GPUError):
    """Raised when GPU kernel compilation fails."""

    def __init__(self, device_id: int, message: str = "Kernel compilation failed"):
        self.device_id = device_id
        super().__init__(f"GPU {device_id}: {message}")


class InsufficientDeviceMemoryError(EngineError):
    """Raised when the device cannot hold the requested dataset."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient device memory: need {required / 1024 / 1024:.1f}MB, "
            f"{available / 1024 / 1024:.1f}MB available"
        )


class PartitionError(EngineError):
    """Raised when the dataset cannot be split across device allocations."""

    def __init__(self, message: str):
        super().__init__(f"Partition error: {message}")


class DeviceLostError(EngineError):
    """Raised when the device fails mid-dispatch. The batch is lost."""

    def __init__(self, message: str = "Device lost during dispatch"):
        super().__init__(message)


class DatasetError(EngineError):
    """Base class for dataset lifecycle errors."""
    pass


class DatasetDestroyedError(DatasetError):
    """Raised when a destroyed dataset handle is used."""

    def __init__(self, epoch: int):
        self.epoch = epoch
        super().__init__(f"Dataset for epoch {epoch} has been destroyed")


class DatasetCacheError(DatasetError):
    """Raised for persisted dataset failures."""

    def __init__(self, filepath: str, message: str):
        self.filepath = filepath
        super().__init__(f"{filepath}: {message}")


class InvalidWorkError(EngineError):
    """Raised when a header hash, nonce or threshold is malformed."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class EpochResolutionError(EngineError):
    """Raised when a seed hash does not match any epoch."""

    def __init__(self, seed: str, max_epoch: int):
        self.seed = seed
        self.max_epoch = max_epoch
        super().__init__(f"Seed {seed[:18]}... not found in epochs 0-{max_epoch}")
