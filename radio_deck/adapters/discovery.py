"""Radio discovery from UDP broadcast announcements.

Radios periodically broadcast a datagram on the discovery port containing
space-separated ``key=value`` pairs, possibly behind a binary packet header::

    discovery_protocol_version=3.0.0.2 model=FLEX-6600 serial=1234-5678-9012
    nickname=Shack ip=192.168.1.40 port=4992 version=3.4.35.141 ...

Usage:
    service = DiscoveryService(port=4992, marker="model=FLEX")
    result = await service.discover(timeout=5.0)
    if isinstance(result, DiscoveryTimeout):
        ...  # caller decides: retry, or ask for a manual address
"""

from __future__ import annotations

import asyncio
import logging
import re
import socket
from typing import Dict, Optional, Tuple, Union

from .. import constants
from ..core import DiscoveredRadio, DiscoveryTimeout

LOGGER = logging.getLogger(__name__)

_PAIR_PATTERN = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)=([^\s\x00]*)")


def parse_announcement(data: bytes) -> Dict[str, str]:
    """Extract ``key=value`` pairs from an announcement, ignoring framing bytes."""

    text = data.decode("latin-1")
    return {key: value for key, value in _PAIR_PATTERN.findall(text)}


def parse_marker(marker: str) -> Tuple[str, str]:
    key, sep, value = marker.partition("=")
    if not sep or not key.strip():
        raise ValueError(f"Discovery marker must look like key=value, got {marker!r}")
    return key.strip(), value.strip()


def match_announcement(
    fields: Dict[str, str],
    sender: Tuple[str, int],
    *,
    marker: Tuple[str, str],
    default_port: int = constants.DEFAULT_COMMAND_PORT,
) -> Optional[DiscoveredRadio]:
    """Return the radio described by ``fields`` if it carries the device marker."""

    marker_key, marker_value = marker
    if not fields.get(marker_key, "").startswith(marker_value):
        return None

    host = fields.get("ip") or sender[0]
    try:
        port = int(fields.get("port", default_port))
    except ValueError:
        port = default_port

    return DiscoveredRadio(
        host=host,
        port=port,
        model=fields.get("model", ""),
        serial=fields.get("serial", ""),
        nickname=fields.get("nickname", ""),
        version=fields.get("version", ""),
        fields=dict(fields),
    )


class _DiscoveryProtocol(asyncio.DatagramProtocol):
    def __init__(
        self,
        future: "asyncio.Future[DiscoveredRadio]",
        marker: Tuple[str, str],
        default_port: int,
    ) -> None:
        self._future = future
        self._marker = marker
        self._default_port = default_port

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        if self._future.done():
            return
        fields = parse_announcement(data)
        radio = match_announcement(
            fields, addr, marker=self._marker, default_port=self._default_port
        )
        if radio is None:
            LOGGER.debug("Ignoring announcement from %s without device marker", addr[0])
            return
        self._future.set_result(radio)

    def error_received(self, exc: Exception) -> None:
        LOGGER.debug("Discovery socket error: %s", exc)


class DiscoveryService:
    """Listens for radio announcements and resolves the first match."""

    def __init__(
        self,
        *,
        port: int = constants.DEFAULT_DISCOVERY_PORT,
        marker: str = constants.DEFAULT_DISCOVERY_MARKER,
        bind_host: str = "",
        default_command_port: int = constants.DEFAULT_COMMAND_PORT,
    ) -> None:
        self._port = port
        self._marker = parse_marker(marker)
        self._bind_host = bind_host
        self._default_command_port = default_command_port
        self._transport: Optional[asyncio.DatagramTransport] = None

    @property
    def listening(self) -> bool:
        return self._transport is not None

    async def discover(self, timeout: float) -> Union[DiscoveredRadio, DiscoveryTimeout]:
        """Wait up to ``timeout`` seconds for a matching announcement.

        Raises:
            OSError: If the discovery socket cannot be bound.
        """

        loop = asyncio.get_running_loop()
        future: asyncio.Future[DiscoveredRadio] = loop.create_future()

        sock = self._bind_socket()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _DiscoveryProtocol(
                    future, self._marker, self._default_command_port
                ),
                sock=sock,
            )
        except Exception:
            sock.close()
            raise

        self._transport = transport
        LOGGER.info("Listening for radio announcements on udp port %s", self._port)
        try:
            radio = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.info("No radio announced itself within %.1fs", timeout)
            return DiscoveryTimeout(timeout=timeout, port=self._port)
        finally:
            transport.close()
            self._transport = None

        LOGGER.info(
            "Discovered %s %s at %s:%s",
            radio.model or "radio",
            radio.nickname or radio.serial,
            radio.host,
            radio.port,
        )
        return radio

    def _bind_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    LOGGER.debug("SO_REUSEPORT not supported on this platform")
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
            sock.bind((self._bind_host, self._port))
        except OSError:
            sock.close()
            raise
        return sock
