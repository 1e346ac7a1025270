"""Routes direct triggers and mapped actions into the command layer."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..commands import CommandProcessingError, RadioCommander
from ..core import EventSource, RadioConnectionError
from .registry import ActionRegistry

LOGGER = logging.getLogger(__name__)

MAPPED_ACTION = "mappedAction"


class InputRouter:
    """Single dispatch point shared by both input classes.

    Direct triggers arrive as bare named events (the event type is the action
    id). Mapped actions arrive as ``mappedAction`` envelopes carrying
    ``{"id": ..., "value": ...}``. Both end up in :meth:`dispatch`.

    Listener attachment happens at most once per router. The router outlives
    bridge restarts; only the commander it forwards to is rebound.
    """

    def __init__(self, registry: ActionRegistry) -> None:
        self._registry = registry
        self._commander: Optional[RadioCommander] = None
        self._registered = False

    @property
    def registered(self) -> bool:
        return self._registered

    def bind(self, commander: RadioCommander) -> None:
        self._commander = commander

    def unbind(self) -> None:
        self._commander = None

    def register(
        self,
        triggers: Optional[EventSource] = None,
        mapped: Optional[EventSource] = None,
    ) -> bool:
        """Attach ingress adapters. Returns ``False`` if already registered."""

        if self._registered:
            LOGGER.debug("Input handlers already registered; skipping")
            return False

        self._registered = True

        if triggers is not None:
            for descriptor in self._registry.actions():
                triggers.add_listener(descriptor.id, self._trigger_handler(descriptor.id))
        if mapped is not None:
            mapped.add_listener(MAPPED_ACTION, self._handle_mapped)

        if triggers is None and mapped is None:
            LOGGER.info("No input sources attached; actions can only be dispatched directly")
        else:
            LOGGER.info(
                "Input routing armed (triggers=%s, mapped=%s)",
                triggers is not None,
                mapped is not None,
            )
        return True

    async def dispatch(self, action_id: str, value: Optional[str] = None) -> bool:
        """Run ``action_id`` through the bound commander.

        Returns ``True`` when the action executed. Failures are logged and
        reflected in state by the commander, never raised to the input source.
        """

        descriptor = self._registry.get_action(action_id)
        if descriptor is None:
            LOGGER.warning("Ignoring unknown action %r", action_id)
            return False

        commander = self._commander
        if commander is None:
            LOGGER.info("Dropping action %s: bridge is not running", action_id)
            return False

        if value is None:
            value = descriptor.default_value

        try:
            await commander.execute(action_id, value)
        except RadioConnectionError as exc:
            LOGGER.warning("Action %s not sent: %s", action_id, exc)
            return False
        except CommandProcessingError as exc:
            LOGGER.warning("Action %s rejected (%s): %s", action_id, exc.code, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Ingress adapters
    # ------------------------------------------------------------------
    def _trigger_handler(self, action_id: str):
        async def _handle(payload: Any) -> None:
            value = payload if isinstance(payload, str) else None
            await self.dispatch(action_id, value)

        return _handle

    async def _handle_mapped(self, payload: Any) -> None:
        if not isinstance(payload, Mapping) or not isinstance(payload.get("id"), str):
            LOGGER.warning("Discarding malformed mapped action envelope: %r", payload)
            return

        value = payload.get("value")
        await self.dispatch(payload["id"], None if value is None else str(value))
