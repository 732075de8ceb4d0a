"""MessagingCapabilities — static descriptor of the operations a queue supports."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from .exceptions import UnsupportedOperationError


class MessagingCapabilities(BaseModel):
    """Immutable set of capability flags.

    Callers branch on the flags (or call :meth:`require`) instead of
    attempting an operation and handling a failure. ``listen`` and
    ``complete`` come with ``can_receive``.
    """

    model_config = ConfigDict(frozen=True)

    can_message_count: bool = False
    can_send: bool = False
    can_receive: bool = False
    can_peek: bool = False
    can_peek_batch: bool = False
    can_renew_lock: bool = False
    can_abandon: bool = False
    can_dead_letter: bool = False
    can_clear: bool = False

    @classmethod
    def all(cls) -> MessagingCapabilities:
        """Capabilities with every flag set."""
        return cls(**dict.fromkeys(cls.model_fields, True))

    def supports(self, capability: str) -> bool:
        """Return True if the flag ``can_<capability>`` is set."""
        key = capability if capability.startswith("can_") else f"can_{capability}"
        if key not in type(self).model_fields:
            raise ValueError(f"Unknown capability: {capability!r}")
        return bool(getattr(self, key))

    def require(self, capability: str, queue_name: str | None = None) -> None:
        """Raise UnsupportedOperationError unless the capability is set."""
        if not self.supports(capability):
            raise UnsupportedOperationError(capability, queue_name)
