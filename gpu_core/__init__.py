"""
GPU Core Module Loader

Loads the CUDA backend when pycuda is installed and a device is visible.
Otherwise GPU_AVAILABLE stays False and the engine falls back to the host
backend (or refuses, when the CUDA backend was requested explicitly).
"""
from __future__ import annotations

import importlib
import logging

from .kernels import CUDA_SOURCE

GPU_AVAILABLE = False
GPUEngine = None
GPU_UNAVAILABLE_REASON: str | None = None


def _detect_gpu() -> str | None:
    """None when a CUDA device is usable, otherwise the reason it is not."""
    try:
        cuda = importlib.import_module("pycuda.driver")
    except ImportError as exc:
        return f"pycuda not installed ({exc})"
    try:
        cuda.init()
        if cuda.Device.count() == 0:
            return "no CUDA devices found"
    except cuda.Error as exc:
        return f"CUDA driver error: {exc}"
    return None


GPU_UNAVAILABLE_REASON = _detect_gpu()

if GPU_UNAVAILABLE_REASON is None:
    try:
        engine_module = importlib.import_module(f"{__name__}.engine")
        GPUEngine = getattr(engine_module, "GPUEngine", None)
        GPU_AVAILABLE = GPUEngine is not None
    except ImportError as exc:
        GPU_UNAVAILABLE_REASON = f"GPU engine failed to load: {exc}"

if not GPU_AVAILABLE:
    logging.debug(f"CUDA backend unavailable: {GPU_UNAVAILABLE_REASON}")

__all__ = ["GPUEngine", "CUDA_SOURCE", "GPU_AVAILABLE", "GPU_UNAVAILABLE_REASON"]
