"""Canonical device state ownership."""

from .synchronizer import StateSynchronizer

__all__ = ["StateSynchronizer"]
