"""Persistence contract and the in-memory backend."""

from .base import SchedulingStore
from .memory import InMemoryStore

__all__ = ["InMemoryStore", "SchedulingStore"]
