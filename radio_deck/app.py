"""Main application entry-point for radio-deck."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

from .adapters import (
    CLIENT_CONNECTED,
    GET_STATE,
    CommandChannel,
    DiscoveryService,
    DisplayServer,
)
from .commands import ACTION_DESCRIPTORS, DEFAULT_KEYS, RadioCommander
from .config import DeckConfig, load_config
from .connection import ReconnectReason, ReconnectSupervisor
from .core import (
    DiscoveryTimeout,
    InvalidRegistration,
    KeyDescriptor,
    RadioConnectionError,
    RadioNotDiscovered,
    StateSink,
)
from .health import HealthReporter, HealthServer
from .input import ActionRegistry, InputRouter
from .logging import configure_logging
from .state import StateSynchronizer
from .telemetry import TelemetryConfigurationError, TelemetryStream

LOGGER = logging.getLogger(__name__)

ChannelFactory = Callable[[StateSink], CommandChannel]
TelemetryFactory = Callable[[StateSink], TelemetryStream]

SUBSCRIPTIONS = ("slice all", "tx all")


class BridgeState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class RadioDeckApp:
    """Owns the bridge components and their start/stop lifecycle.

    The display server, action registry and input router are built once and
    live as long as this object. The synchronizer, command channel, commander,
    telemetry stream and reconnect supervisor are created on every ``start()``
    and released on every ``stop()``, so a restart never carries stale sockets,
    timers or handlers over.
    """

    def __init__(
        self,
        config: Optional[DeckConfig] = None,
        *,
        display: Optional[DisplayServer] = None,
        discovery: Optional[DiscoveryService] = None,
        channel_factory: Optional[ChannelFactory] = None,
        telemetry_factory: Optional[TelemetryFactory] = None,
    ) -> None:
        self._config = config or load_config()
        radio = self._config.radio

        self._display = display or DisplayServer(
            self._config.display.host, self._config.display.port
        )
        self._discovery = discovery or DiscoveryService(
            port=radio.discovery_port,
            marker=radio.discovery_marker,
            default_command_port=radio.port,
        )
        self._channel_factory = channel_factory or self._default_channel
        self._telemetry_factory = telemetry_factory or self._default_telemetry

        self._registry = ActionRegistry()
        self._router = InputRouter(self._registry)
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None

        self._state = BridgeState.STOPPED
        self._shutdown_event: Optional[asyncio.Event] = None
        self._lifecycle_lock: Optional[asyncio.Lock] = None

        self._synchronizer: Optional[StateSynchronizer] = None
        self._unsubscribe_display: Optional[Callable[[], None]] = None
        self._channel: Optional[CommandChannel] = None
        self._commander: Optional[RadioCommander] = None
        self._telemetry: Optional[TelemetryStream] = None
        self._supervisor: Optional[ReconnectSupervisor] = None

        # Registered once; these listeners outlive every start/stop cycle.
        self._display.add_listener(GET_STATE, self._handle_state_request)
        self._display.add_listener(CLIENT_CONNECTED, self._handle_state_request)

        self._health.add_probe("telemetry", self._telemetry_health)
        self._health.add_probe("display", self._display_health)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def config(self) -> DeckConfig:
        return self._config

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    @property
    def router(self) -> InputRouter:
        return self._router

    @property
    def display(self) -> DisplayServer:
        return self._display

    @property
    def health(self) -> HealthReporter:
        return self._health

    @property
    def synchronizer(self) -> Optional[StateSynchronizer]:
        return self._synchronizer

    @property
    def channel(self) -> Optional[CommandChannel]:
        return self._channel

    @property
    def telemetry(self) -> Optional[TelemetryStream]:
        return self._telemetry

    @property
    def supervisor(self) -> Optional[ReconnectSupervisor]:
        return self._supervisor

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @classmethod
    def launch(cls, config: Optional[DeckConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("radio-deck received shutdown signal")

    async def run(self) -> None:
        """Start the bridge, wait for a shutdown request, then stop it."""

        self._shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.request_shutdown)

        LOGGER.info("radio-deck starting with config: %s", self._config.path)
        await self.start()
        try:
            LOGGER.info("radio-deck running; awaiting shutdown signal")
            await self._shutdown_event.wait()
        finally:
            await self.stop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def start(self) -> None:
        """Bring the bridge to RUNNING.

        Raises:
            InvalidRegistration: If an action or key descriptor is invalid. The
                bridge is rolled back to STOPPED first.
        """

        async with self._lock():
            if self._state != BridgeState.STOPPED:
                LOGGER.warning("Ignoring start while bridge is %s", self._state.value)
                return

            await self._transition_state(BridgeState.STARTING)
            try:
                self._register_descriptors()
            except InvalidRegistration as exc:
                LOGGER.error("Input registration failed: %s", exc)
                await self._transition_state(BridgeState.STOPPED, detail=str(exc))
                raise

            synchronizer = StateSynchronizer(
                push_interval=self._config.display.push_interval_seconds
            )
            self._synchronizer = synchronizer
            self._unsubscribe_display = synchronizer.subscribe(self._display.publish)

            channel = self._channel_factory(synchronizer)
            channel.add_disconnect_listener(self._on_channel_disconnected)
            self._channel = channel
            self._commander = RadioCommander(channel, synchronizer)

            input_config = self._config.input
            self._router.register(
                triggers=self._display if input_config.direct_triggers else None,
                mapped=self._display if input_config.mapped_actions else None,
            )
            self._router.bind(self._commander)

            await self._start_display()
            synchronizer.start()

            supervisor = ReconnectSupervisor(
                self._connect_radio, self._config.resilience
            )
            supervisor.register_reconnected_callback(self._on_radio_connected)
            supervisor.start()
            self._supervisor = supervisor

            await self._connect_initial()
            await self._start_telemetry()
            await self._start_health_server()

            synchronizer.push_full()
            await self._transition_state(BridgeState.RUNNING)

    async def stop(self) -> None:
        """Release everything acquired by ``start()``. Safe in any state."""

        async with self._lock():
            if self._state == BridgeState.STOPPED:
                return

            await self._transition_state(BridgeState.STOPPING)
            self._router.unbind()

            supervisor, self._supervisor = self._supervisor, None
            if supervisor is not None:
                await self._release("reconnect supervisor", supervisor.stop())

            telemetry, self._telemetry = self._telemetry, None
            if telemetry is not None:
                await self._release("telemetry stream", telemetry.stop())

            channel, self._channel = self._channel, None
            if channel is not None:
                await self._release("command channel", channel.close())
            self._commander = None

            synchronizer, self._synchronizer = self._synchronizer, None
            if synchronizer is not None:
                await self._release("state push tick", synchronizer.stop())
            if self._unsubscribe_display is not None:
                self._unsubscribe_display()
                self._unsubscribe_display = None

            await self._release("display server", self._display.stop())

            health_server, self._health_server = self._health_server, None
            if health_server is not None:
                await self._release("health endpoint", health_server.stop())

            await self._health.update("radio", False, "stopped")
            await self._transition_state(BridgeState.STOPPED)

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    # ------------------------------------------------------------------
    # Start helpers
    # ------------------------------------------------------------------
    def _register_descriptors(self) -> None:
        self._registry.register_actions(ACTION_DESCRIPTORS)

        configured = [
            KeyDescriptor(id=key.id, description=key.description, mode=key.mode)
            for key in self._config.keys
        ]
        self._registry.register_keys([*DEFAULT_KEYS, *configured])
        LOGGER.debug(
            "Registered %d actions and %d keys",
            len(self._registry.actions()),
            len(self._registry.keys()),
        )

    async def _start_display(self) -> None:
        try:
            await self._display.start()
        except OSError as exc:
            LOGGER.error("Failed to start display endpoint: %s", exc)

    async def _start_telemetry(self) -> None:
        synchronizer = self._synchronizer
        if synchronizer is None:
            return
        telemetry = self._telemetry_factory(synchronizer)
        try:
            await telemetry.start()
        except TelemetryConfigurationError as exc:
            LOGGER.error("Telemetry disabled: %s", exc)
            return
        self._telemetry = telemetry

    async def _start_health_server(self) -> None:
        resilience = self._config.resilience
        if not resilience.health_enabled or resilience.health_port <= 0:
            return

        server = HealthServer(self._health, resilience.health_host, resilience.health_port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            await self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            await self._health.update("health-endpoint", True, None)

    async def _connect_initial(self) -> None:
        await self._health.update("radio", False, "connecting")
        try:
            await self._connect_radio()
        except RadioNotDiscovered as exc:
            LOGGER.warning("%s; will keep listening", exc)
            await self._health.update("radio", False, "not discovered")
            self._request_reconnect(ReconnectReason.NOT_DISCOVERED)
            return
        except RadioConnectionError as exc:
            LOGGER.warning("Radio unavailable at startup: %s", exc)
            await self._health.update("radio", False, str(exc))
            self._request_reconnect(ReconnectReason.INITIAL_CONNECT_FAILED)
            return

        await self._on_radio_connected()

    # ------------------------------------------------------------------
    # Radio connection
    # ------------------------------------------------------------------
    async def _resolve_address(self) -> Tuple[str, int]:
        radio = self._config.radio
        if radio.address:
            return radio.address, radio.port

        try:
            result = await self._discovery.discover(radio.discovery_timeout_seconds)
        except OSError as exc:
            raise RadioConnectionError(f"Discovery socket unavailable: {exc}") from exc

        if isinstance(result, DiscoveryTimeout):
            raise RadioNotDiscovered(result.timeout, result.port)
        return result.host, result.port

    async def _connect_radio(self) -> None:
        channel = self._channel
        if channel is None:
            raise RadioConnectionError("Bridge is not running")
        host, port = await self._resolve_address()
        await channel.connect(host, port)

    async def _on_radio_connected(self) -> None:
        channel = self._channel
        synchronizer = self._synchronizer
        if channel is None or synchronizer is None:
            return

        try:
            for subscription in SUBSCRIPTIONS:
                await channel.send("sub", subscription)
            await channel.send("client udpport", str(self._telemetry_port()))
        except RadioConnectionError as exc:
            LOGGER.warning("Failed to seed radio subscriptions: %s", exc)
            return

        address = channel.address
        detail = f"{address[0]}:{address[1]}" if address else None
        await self._health.update("radio", True, detail)
        synchronizer.push_full()

    def _on_channel_disconnected(self, reason: str) -> None:
        if self._state not in (BridgeState.STARTING, BridgeState.RUNNING):
            return
        self._schedule_health_update("radio", False, reason)
        self._request_reconnect(ReconnectReason.CONNECTION_LOST)

    def _request_reconnect(self, reason: ReconnectReason) -> None:
        if self._supervisor is not None:
            self._supervisor.request_reconnect(reason)

    def _telemetry_port(self) -> int:
        telemetry = self._telemetry
        if telemetry is not None and telemetry.local_port:
            return telemetry.local_port
        return self._config.telemetry.port

    # ------------------------------------------------------------------
    # Display and health
    # ------------------------------------------------------------------
    def _handle_state_request(self, payload: Any) -> None:
        synchronizer = self._synchronizer
        if synchronizer is None:
            LOGGER.debug("State requested while bridge is %s", self._state.value)
            return
        synchronizer.push_full()

    def _telemetry_health(self) -> Tuple[bool, Optional[str]]:
        telemetry = self._telemetry
        if telemetry is None or not telemetry.is_listening:
            return self._state != BridgeState.RUNNING, "not listening"
        return True, (
            f"port={telemetry.local_port} accepted={telemetry.accepted_count} "
            f"dropped={telemetry.dropped_count} malformed={telemetry.malformed_count}"
        )

    def _display_health(self) -> Tuple[bool, Optional[str]]:
        if not self._display.running:
            return self._state != BridgeState.RUNNING, "not listening"
        return True, f"clients={self._display.client_count}"

    def _schedule_health_update(
        self, name: str, healthy: bool, detail: Optional[str]
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.create_task(self._health.update(name, healthy, detail))

    async def _transition_state(
        self, state: BridgeState, *, detail: Optional[str] = None
    ) -> None:
        previous = self._state
        self._state = state
        LOGGER.info(
            "Bridge state transition %s -> %s (%s)",
            previous.value,
            state.value,
            detail or state.value,
        )
        await self._health.set_bridge_state(
            state.value,
            healthy=state == BridgeState.RUNNING,
            detail=detail,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _lock(self) -> asyncio.Lock:
        if self._lifecycle_lock is None:
            self._lifecycle_lock = asyncio.Lock()
        return self._lifecycle_lock

    async def _release(self, name: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception:
            LOGGER.warning("Error while stopping %s", name, exc_info=True)

    def _default_channel(self, sink: StateSink) -> CommandChannel:
        return CommandChannel(
            sink, connect_timeout=self._config.radio.connect_timeout_seconds
        )

    def _default_telemetry(self, sink: StateSink) -> TelemetryStream:
        return TelemetryStream(self._config.telemetry, sink)
