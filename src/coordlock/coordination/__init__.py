"""Coordination service clients."""

from .base import CoordinationClient, WatchSignal, sort_by_sequence
from .memory import InMemoryCoordinationService, InMemorySession

__all__ = [
    "CoordinationClient",
    "InMemoryCoordinationService",
    "InMemorySession",
    "WatchSignal",
    "sort_by_sequence",
]
