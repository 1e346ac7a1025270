"""Registration boundary for action and key descriptors."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

from ..core import ActionDescriptor, InvalidRegistration, KeyDescriptor, KeyMode

LOGGER = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
_KEY_MODES = frozenset(mode.value for mode in KeyMode)


class ActionRegistry:
    """Holds the actions the bridge understands and the physical key bindings.

    Actions are keyed by id; registering the same id again replaces the previous
    descriptor. Keys are validated before they are stored: a declared ``mode``
    must be one of :class:`KeyMode`, and nothing else (``"default"`` included)
    is accepted in its place.
    """

    def __init__(self) -> None:
        self._actions: Dict[str, ActionDescriptor] = {}
        self._keys: Dict[str, KeyDescriptor] = {}

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def register_action(self, descriptor: ActionDescriptor) -> None:
        """Register or replace an action.

        Raises:
            InvalidRegistration: If the id is malformed or the default value is
                not one of the declared value options.
        """

        if not _ID_PATTERN.match(descriptor.id or ""):
            raise InvalidRegistration(
                descriptor.id, "id", descriptor.id, "must be lower snake case"
            )

        options = descriptor.value_options
        if (
            options
            and descriptor.default_value is not None
            and descriptor.default_value not in options
        ):
            raise InvalidRegistration(
                descriptor.id,
                "default_value",
                descriptor.default_value,
                f"is not one of {list(options)}",
            )

        if descriptor.id in self._actions:
            LOGGER.debug("Replacing action descriptor %s", descriptor.id)
        self._actions[descriptor.id] = descriptor

    def register_actions(self, descriptors: Iterable[ActionDescriptor]) -> None:
        for descriptor in descriptors:
            self.register_action(descriptor)

    def actions(self) -> List[ActionDescriptor]:
        return list(self._actions.values())

    def get_action(self, action_id: str) -> Optional[ActionDescriptor]:
        return self._actions.get(action_id)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    def register_key(self, descriptor: KeyDescriptor) -> None:
        """Validate and register a key binding.

        Raises:
            InvalidRegistration: If the id is empty or the declared mode is not a
                :class:`KeyMode` value.
        """

        if not descriptor.id:
            raise InvalidRegistration(descriptor.id, "id", descriptor.id, "must not be empty")

        mode = descriptor.mode
        if mode is not None and mode not in _KEY_MODES:
            raise InvalidRegistration(
                descriptor.id,
                "mode",
                mode,
                f"is not one of {sorted(_KEY_MODES)}",
            )

        self._keys[descriptor.id] = descriptor

    def register_keys(self, descriptors: Iterable[KeyDescriptor]) -> None:
        """Validate every descriptor before registering any of them.

        Raises:
            InvalidRegistration: For the first invalid descriptor found.
        """

        pending = list(descriptors)
        staged = ActionRegistry()
        for descriptor in pending:
            staged.register_key(descriptor)
        self._keys.update(staged._keys)

    def keys(self) -> List[KeyDescriptor]:
        return list(self._keys.values())

    def get_key(self, key_id: str) -> Optional[KeyDescriptor]:
        return self._keys.get(key_id)
