"""Constants used across the radio-deck package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "radio-deck"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_LOG_PATH = Path.home() / ".local" / "state" / APP_NAME / f"{APP_NAME}.log"

# SmartSDR-style well-known ports
DEFAULT_COMMAND_PORT = 4992
DEFAULT_DISCOVERY_PORT = 4992
DEFAULT_TELEMETRY_PORT = 4991

DEFAULT_DISCOVERY_MARKER = "model=FLEX"

DEFAULT_DISPLAY_HOST = "0.0.0.0"
DEFAULT_DISPLAY_PORT = 8765

DEFAULT_TELEMETRY_THROTTLE_SECONDS = 3.0
DEFAULT_PUSH_INTERVAL_SECONDS = 1.0
