"""Configuration loader for radio-deck."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from . import constants

DEFAULT_S_METER_ID = 1
DEFAULT_POWER_METER_ID = 2
DEFAULT_SWR_METER_ID = 3


@dataclass(slots=True)
class RadioConfig:
    address: Optional[str] = None
    port: int = constants.DEFAULT_COMMAND_PORT
    connect_timeout_seconds: float = 5.0
    discovery_port: int = constants.DEFAULT_DISCOVERY_PORT
    discovery_timeout_seconds: float = 5.0
    discovery_marker: str = constants.DEFAULT_DISCOVERY_MARKER


@dataclass(slots=True)
class TelemetryConfig:
    port: int = constants.DEFAULT_TELEMETRY_PORT
    bind_host: str = "0.0.0.0"
    throttle_seconds: float = constants.DEFAULT_TELEMETRY_THROTTLE_SECONDS
    s_meter_id: int = DEFAULT_S_METER_ID
    power_meter_id: int = DEFAULT_POWER_METER_ID
    swr_meter_id: int = DEFAULT_SWR_METER_ID


@dataclass(slots=True)
class DisplayConfig:
    host: str = constants.DEFAULT_DISPLAY_HOST
    port: int = constants.DEFAULT_DISPLAY_PORT
    push_interval_seconds: float = constants.DEFAULT_PUSH_INTERVAL_SECONDS


@dataclass(slots=True)
class InputConfig:
    direct_triggers: bool = True
    mapped_actions: bool = True


@dataclass(slots=True)
class KeyConfig:
    """Raw key binding as written by the operator; validated at registration."""

    id: str
    mode: Optional[str] = None
    description: str = ""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False


@dataclass(slots=True)
class ResilienceConfig:
    reconnect_initial_seconds: float = 1.0
    reconnect_max_seconds: float = 30.0
    reconnect_jitter_ratio: float = 0.5
    reconnect_max_attempts: int = 10
    health_enabled: bool = False
    health_host: str = "127.0.0.1"
    health_port: int = 0


@dataclass(slots=True)
class DeckConfig:
    radio: RadioConfig
    telemetry: TelemetryConfig
    display: DisplayConfig
    input: InputConfig
    logging: LoggingConfig
    resilience: ResilienceConfig
    raw: ConfigParser
    path: Path
    keys: List[KeyConfig] = field(default_factory=list)


def _parse_keys(parser: ConfigParser) -> List[KeyConfig]:
    if not parser.has_section("keys"):
        return []

    keys: List[KeyConfig] = []
    for key_id, value in parser.items("keys"):
        mode_part, _, description = value.partition(",")
        mode = mode_part.strip() or None
        keys.append(
            KeyConfig(id=key_id.strip(), mode=mode, description=description.strip())
        )
    return keys


def load_config(path: Optional[Path] = None) -> DeckConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "radio": {
                "port": str(constants.DEFAULT_COMMAND_PORT),
                "connect_timeout_seconds": "5.0",
                "discovery_port": str(constants.DEFAULT_DISCOVERY_PORT),
                "discovery_timeout_seconds": "5.0",
                "discovery_marker": constants.DEFAULT_DISCOVERY_MARKER,
            },
            "telemetry": {
                "port": str(constants.DEFAULT_TELEMETRY_PORT),
                "bind_host": "0.0.0.0",
                "throttle_seconds": str(constants.DEFAULT_TELEMETRY_THROTTLE_SECONDS),
                "s_meter_id": str(DEFAULT_S_METER_ID),
                "power_meter_id": str(DEFAULT_POWER_METER_ID),
                "swr_meter_id": str(DEFAULT_SWR_METER_ID),
            },
            "display": {
                "host": constants.DEFAULT_DISPLAY_HOST,
                "port": str(constants.DEFAULT_DISPLAY_PORT),
                "push_interval_seconds": str(constants.DEFAULT_PUSH_INTERVAL_SECONDS),
            },
            "input": {
                "direct_triggers": "true",
                "mapped_actions": "true",
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_network": "false",
            },
            "resilience": {
                "reconnect_initial_seconds": "1.0",
                "reconnect_max_seconds": "30.0",
                "reconnect_jitter_ratio": "0.5",
                "reconnect_max_attempts": "10",
                "health_enabled": "false",
                "health_host": "127.0.0.1",
                "health_port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    address_value = parser.get("radio", "address", fallback="").strip()
    port_value = parser.getint(
        "radio", "port", fallback=constants.DEFAULT_COMMAND_PORT
    )

    if ":" in address_value:
        host_part, port_part = address_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            address_value = host_part
            port_value = parsed_port
            parser.set("radio", "address", host_part)
            parser.set("radio", "port", str(parsed_port))

    radio = RadioConfig(
        address=address_value or None,
        port=port_value,
        connect_timeout_seconds=max(
            0.1, parser.getfloat("radio", "connect_timeout_seconds", fallback=5.0)
        ),
        discovery_port=parser.getint(
            "radio", "discovery_port", fallback=constants.DEFAULT_DISCOVERY_PORT
        ),
        discovery_timeout_seconds=max(
            0.1, parser.getfloat("radio", "discovery_timeout_seconds", fallback=5.0)
        ),
        discovery_marker=parser.get(
            "radio", "discovery_marker", fallback=constants.DEFAULT_DISCOVERY_MARKER
        ),
    )

    telemetry_defaults = TelemetryConfig()
    try:
        throttle_value = parser.getfloat(
            "telemetry", "throttle_seconds", fallback=telemetry_defaults.throttle_seconds
        )
    except ValueError:
        throttle_value = telemetry_defaults.throttle_seconds

    telemetry = TelemetryConfig(
        port=parser.getint("telemetry", "port", fallback=telemetry_defaults.port),
        bind_host=parser.get(
            "telemetry", "bind_host", fallback=telemetry_defaults.bind_host
        ),
        throttle_seconds=max(0.0, throttle_value),
        s_meter_id=parser.getint(
            "telemetry", "s_meter_id", fallback=telemetry_defaults.s_meter_id
        ),
        power_meter_id=parser.getint(
            "telemetry", "power_meter_id", fallback=telemetry_defaults.power_meter_id
        ),
        swr_meter_id=parser.getint(
            "telemetry", "swr_meter_id", fallback=telemetry_defaults.swr_meter_id
        ),
    )

    display_defaults = DisplayConfig()
    try:
        push_interval = parser.getfloat(
            "display",
            "push_interval_seconds",
            fallback=display_defaults.push_interval_seconds,
        )
    except ValueError:
        push_interval = display_defaults.push_interval_seconds

    display = DisplayConfig(
        host=parser.get("display", "host", fallback=display_defaults.host),
        port=parser.getint("display", "port", fallback=display_defaults.port),
        push_interval_seconds=max(0.05, push_interval),
    )

    input_config = InputConfig(
        direct_triggers=parser.getboolean("input", "direct_triggers", fallback=True),
        mapped_actions=parser.getboolean("input", "mapped_actions", fallback=True),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(
            parser.get("logging", "path", fallback=str(constants.DEFAULT_LOG_PATH))
        ).expanduser(),
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    resilience = ResilienceConfig(
        reconnect_initial_seconds=parser.getfloat(
            "resilience", "reconnect_initial_seconds", fallback=1.0
        ),
        reconnect_max_seconds=parser.getfloat(
            "resilience", "reconnect_max_seconds", fallback=30.0
        ),
        reconnect_jitter_ratio=max(
            0.0,
            min(
                1.0,
                parser.getfloat("resilience", "reconnect_jitter_ratio", fallback=0.5),
            ),
        ),
        reconnect_max_attempts=max(
            1,
            parser.getint("resilience", "reconnect_max_attempts", fallback=10),
        ),
        health_enabled=parser.getboolean(
            "resilience", "health_enabled", fallback=False
        ),
        health_host=parser.get("resilience", "health_host", fallback="127.0.0.1"),
        health_port=parser.getint("resilience", "health_port", fallback=0),
    )

    return DeckConfig(
        radio=radio,
        telemetry=telemetry,
        display=display,
        input=input_config,
        logging=logging_config,
        resilience=resilience,
        raw=parser,
        path=config_path,
        keys=_parse_keys(parser),
    )


def save_config(config: DeckConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
