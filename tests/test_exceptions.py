"""Error taxonomy."""

import pytest

from ethcore import exceptions as exc


@pytest.mark.parametrize("error", [
    exc.ConfigurationError("engine.backend", "bad"),
    exc.GPUNotAvailableError(),
    exc.GPUInitializationError(0),
    exc.GPUKernelCompilationError(1, "nvcc failed"),
    exc.InsufficientDeviceMemoryError(2 << 30, 1 << 30),
    exc.PartitionError("too many partitions"),
    exc.DeviceLostError(),
    exc.DatasetDestroyedError(3),
    exc.DatasetCacheError("/tmp/x.dag", "corrupt"),
    exc.InvalidWorkError("nonce", "too long"),
    exc.EpochResolutionError("0x11", 16),
])
def test_all_errors_are_engine_errors(error):
    assert isinstance(error, exc.EngineError)
    assert str(error)


def test_gpu_errors_grouped():
    assert issubclass(exc.GPUNotAvailableError, exc.GPUError)
    assert issubclass(exc.GPUKernelCompilationError, exc.GPUError)
    assert issubclass(exc.DatasetDestroyedError, exc.DatasetError)
    assert issubclass(exc.DatasetCacheError, exc.DatasetError)


def test_error_details_kept():
    error = exc.InsufficientDeviceMemoryError(3 << 20, 1 << 20)
    assert (error.required, error.available) == (3 << 20, 1 << 20)
    assert "3.0MB" in str(error)
    assert exc.GPUInitializationError(2, "busy").device_id == 2
