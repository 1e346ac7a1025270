"""Adapter modules for the radio and the display surface."""

from .discovery import DiscoveryService, match_announcement, parse_announcement
from .display import CLIENT_CONNECTED, GET_STATE, DisplayServer
from .radio import ChannelState, CommandChannel

__all__ = [
    "CLIENT_CONNECTED",
    "GET_STATE",
    "ChannelState",
    "CommandChannel",
    "DiscoveryService",
    "DisplayServer",
    "match_announcement",
    "parse_announcement",
]
