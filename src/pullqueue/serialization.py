"""EnvelopeSerializer — JSON wire format for MessageEnvelope."""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime
from typing import Any

from .envelope import MessageEnvelope
from .exceptions import MessagingSerializationError

_ENVELOPE_KEYS = frozenset(
    {"message_id", "correlation_id", "message_type", "sent_time", "message"}
)
_BASE64 = "base64"


def _json_serializer(obj: Any) -> Any:
    """Serialize datetime and other non-JSON types."""
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class EnvelopeSerializer:
    """Serialize/deserialize MessageEnvelope to/from a JSON message body.

    The payload travels under ``message``. Binary payloads are base64-encoded
    and flagged with ``message_encoding``.
    """

    def serialize(self, envelope: MessageEnvelope) -> str:
        """Encode envelope to a JSON string."""
        data: dict[str, Any] = {
            "message_id": envelope.message_id,
            "correlation_id": envelope.correlation_id,
            "message_type": envelope.message_type,
            "sent_time": envelope.sent_time,
            "message": envelope.payload,
        }
        if isinstance(envelope.payload, (bytes, bytearray)):
            data["message"] = base64.b64encode(envelope.payload).decode("ascii")
            data["message_encoding"] = _BASE64
        try:
            return json.dumps(data, default=_json_serializer)
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(
                str(e), correlation_id=envelope.correlation_id
            ) from e

    def deserialize(self, body: str | bytes) -> MessageEnvelope:
        """Decode a JSON body to MessageEnvelope.

        Raises MessagingSerializationError when the body is not a JSON object
        in envelope form.
        """
        try:
            text = body.decode("utf-8") if isinstance(body, bytes) else body
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
            raise MessagingSerializationError(str(e)) from e
        if not isinstance(data, dict) or not _ENVELOPE_KEYS.intersection(data):
            raise MessagingSerializationError("Message body is not an envelope")

        payload = data.get("message")
        if data.get("message_encoding") == _BASE64 and isinstance(payload, str):
            try:
                payload = base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as e:
                raise MessagingSerializationError(str(e)) from e

        sent_time = data.get("sent_time")
        try:
            if isinstance(sent_time, str):
                sent_time = datetime.fromisoformat(sent_time.replace("Z", "+00:00"))
            return MessageEnvelope(
                message_id=_optional_str(data.get("message_id")),
                correlation_id=_optional_str(data.get("correlation_id")),
                message_type=_optional_str(data.get("message_type")),
                payload=payload,
                sent_time=sent_time,
            )
        except ValueError as e:
            raise MessagingSerializationError(str(e)) from e


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
