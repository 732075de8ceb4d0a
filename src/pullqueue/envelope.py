"""MessageEnvelope — payload wrapper with a per-delivery backend reference."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, PrivateAttr

from .exceptions import InvalidStateError

_PREVIEW_LENGTH = 50


@dataclass(frozen=True)
class MessageReference:
    """Backend handle for one delivery of a message.

    ``receipt_handle`` is the token required to renew, abandon or complete
    this specific delivery.
    """

    receipt_handle: str
    message_id: str | None = None


class MessageEnvelope(BaseModel):
    """Message wrapper carried over the wire.

    Producer side: built without ``message_id`` or ``reference``.
    Consumer side: materialized from a backend receipt, with ``message_id``,
    ``sent_time`` and a ``reference`` that is cleared exactly once when the
    delivery is finalized.
    """

    message_id: str | None = None
    correlation_id: str | None = None
    message_type: str | None = None
    payload: Any = None
    sent_time: datetime | None = None

    _reference: MessageReference | None = PrivateAttr(default=None)

    @property
    def reference(self) -> MessageReference | None:
        """Backend handle of the current delivery, or None once finalized."""
        return self._reference

    def attach_reference(self, reference: MessageReference) -> None:
        """Bind a delivery handle. An envelope owns at most one handle."""
        if self._reference is not None:
            raise InvalidStateError(
                "Envelope already holds a delivery reference",
                code="REFERENCE_IN_USE",
                correlation_id=self.correlation_id,
            )
        self._reference = reference

    def clear_reference(self) -> MessageReference | None:
        """Detach and return the delivery handle; later calls return None."""
        reference, self._reference = self._reference, None
        return reference

    def payload_as_text(self) -> str | None:
        if self.payload is None:
            return None
        if isinstance(self.payload, bytes):
            return self.payload.decode("utf-8")
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload)

    def payload_as_json(self) -> Any:
        """Return the payload as a JSON value, decoding text payloads."""
        if isinstance(self.payload, (bytes, str)):
            return json.loads(self.payload)
        return self.payload

    def _preview(self) -> str:
        if isinstance(self.payload, bytes):
            return self.payload.decode("utf-8", errors="replace")
        if isinstance(self.payload, str):
            return self.payload
        if self.payload is None:
            return ""
        return json.dumps(self.payload, default=str)

    def __str__(self) -> str:
        text = self._preview() or "--"
        if len(text) > _PREVIEW_LENGTH:
            text = text[:_PREVIEW_LENGTH] + "..."
        return f"[{self.message_type or '---'},{self.message_id or '---'},{text}]"
