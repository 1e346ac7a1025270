"""Input registration and routing."""

from .registry import ActionRegistry
from .router import MAPPED_ACTION, InputRouter

__all__ = ["ActionRegistry", "InputRouter", "MAPPED_ACTION"]
