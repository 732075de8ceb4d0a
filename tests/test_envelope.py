"""Tests for MessageEnvelope and MessageReference."""

from __future__ import annotations

import pytest

from pullqueue.envelope import MessageEnvelope, MessageReference
from pullqueue.exceptions import InvalidStateError


def test_envelope_defaults() -> None:
    e = MessageEnvelope(message_type="create", payload={"id": 1})
    assert e.message_type == "create"
    assert e.payload == {"id": 1}
    assert e.message_id is None
    assert e.correlation_id is None
    assert e.sent_time is None
    assert e.reference is None


def test_reference_is_cleared_exactly_once() -> None:
    e = MessageEnvelope(payload="x")
    ref = MessageReference(receipt_handle="rh-1", message_id="m-1")
    e.attach_reference(ref)
    assert e.reference is ref
    assert e.clear_reference() is ref
    assert e.reference is None
    assert e.clear_reference() is None


def test_attach_reference_refuses_second_handle() -> None:
    e = MessageEnvelope(payload="x")
    e.attach_reference(MessageReference(receipt_handle="rh-1"))
    with pytest.raises(InvalidStateError) as exc_info:
        e.attach_reference(MessageReference(receipt_handle="rh-2"))
    assert exc_info.value.code == "REFERENCE_IN_USE"
    assert e.reference is not None
    assert e.reference.receipt_handle == "rh-1"


def test_reference_not_serialized() -> None:
    e = MessageEnvelope(payload="x")
    e.attach_reference(MessageReference(receipt_handle="rh-1"))
    assert "reference" not in e.model_dump()


def test_payload_as_text_and_json() -> None:
    assert MessageEnvelope(payload=b"abc").payload_as_text() == "abc"
    assert MessageEnvelope(payload={"a": 1}).payload_as_text() == '{"a": 1}'
    assert MessageEnvelope(payload='{"a": 1}').payload_as_json() == {"a": 1}
    assert MessageEnvelope().payload_as_text() is None


def test_str_truncates_long_payload() -> None:
    e = MessageEnvelope(message_type="t", message_id="m", payload="x" * 200)
    text = str(e)
    assert text.startswith("[t,m,")
    assert text.endswith("...]")
    assert str(MessageEnvelope()) == "[---,---,--]"


def test_str_tolerates_binary_payload() -> None:
    e = MessageEnvelope(message_type="t", message_id="m", payload=b"\xff\xfeok")
    assert str(e) == "[t,m,\ufffd\ufffdok]"
