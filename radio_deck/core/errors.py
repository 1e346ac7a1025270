"""Error taxonomy shared by the bridge components."""

from __future__ import annotations

from typing import Optional


class RadioConnectionError(ConnectionError):
    """Raised when the command channel cannot reach or talk to the radio."""


class InvalidRegistration(ValueError):
    """Raised when an action or key descriptor fails validation.

    Carries enough detail (descriptor, field, offending value) for an operator
    to fix the binding before it turns into silently misrouted input.
    """

    def __init__(
        self,
        descriptor_id: str,
        field: str,
        value: Optional[object],
        reason: str,
    ) -> None:
        super().__init__(
            f"Invalid registration for {descriptor_id!r}: field {field!r}={value!r} {reason}"
        )
        self.descriptor_id = descriptor_id
        self.field = field
        self.value = value
        self.reason = reason


class RadioNotDiscovered(RadioConnectionError):
    """Raised by the bridge when discovery ends without a matching radio."""

    def __init__(self, timeout: float, port: int) -> None:
        super().__init__(
            f"No radio announced itself on udp port {port} within {timeout:.1f}s"
        )
        self.timeout = timeout
        self.port = port
