"""Host (numpy) execution backend."""

from .engine import HostEngine

__all__ = ["HostEngine"]
