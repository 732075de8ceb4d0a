"""SQSMessageQueue — MessageQueue over Amazon SQS with visibility-timeout leases."""

from __future__ import annotations

import contextlib
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..capabilities import MessagingCapabilities
from ..config import AwsConnectionParams, QueueOptions
from ..envelope import MessageEnvelope, MessageReference
from ..exceptions import MessagingSerializationError
from ..queue import MessageQueue
from ..serialization import EnvelopeSerializer
from .connection import (
    PURGE_IN_PROGRESS_CODES,
    SQSConnectionManager,
    error_code,
    wrap_connection_error,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from aiobotocore.session import AioSession

    from ..config import ConnectionParams, CredentialParams
    from ..counters import ICounters
    from ..queue import ListenerHandle, MessageCallback

logger = logging.getLogger(__name__)

SQS_SERVICE = "sqs"
# SQS hard limits for a single ReceiveMessage call.
MAX_RECEIVE_BATCH = 10
MAX_WAIT_SECONDS = 20
# Manual drain used when a purge is already in progress.
DRAIN_BATCH_SIZE = 100
DRAIN_STOP_THRESHOLD = 90


class SQSMessageQueue(MessageQueue):
    """Message queue backed by an SQS standard queue.

    Receiving leases a message by setting its visibility timeout; abandoning
    resets it to zero and completing deletes it by receipt handle. An
    optional dead-letter queue (``dead_queue`` connection option) receives
    envelopes passed to :meth:`move_to_dead_letter`.

    Options (milliseconds): ``interval`` is the listen loop's idle poll
    delay, ``visibility_timeout`` the default lease for received envelopes.
    """

    def __init__(
        self,
        name: str | None = None,
        *,
        options: QueueOptions | Mapping[str, Any] | None = None,
        session: AioSession | None = None,
        counters: ICounters | None = None,
        serializer: EnvelopeSerializer | None = None,
    ) -> None:
        super().__init__(name, MessagingCapabilities.all(), counters=counters)
        if isinstance(options, QueueOptions):
            self._options = options
        else:
            self._options = QueueOptions().merged(options)
        self._session = session
        self._serializer = serializer or EnvelopeSerializer()
        self._connection: SQSConnectionManager | None = None
        self._queue_url: str | None = None
        self._dead_queue_url: str | None = None

    @classmethod
    def from_connection(
        cls,
        name: str,
        connection: SQSConnectionManager,
        queue_url: str,
        dead_queue_url: str | None = None,
        **kwargs: Any,
    ) -> SQSMessageQueue:
        """Build an already-open queue over an existing connection and URL."""
        queue = cls(name, **kwargs)
        queue._connection = connection
        queue._queue_url = queue_url
        queue._dead_queue_url = dead_queue_url
        return queue

    @property
    def options(self) -> QueueOptions:
        return self._options

    @property
    def queue_url(self) -> str | None:
        return self._queue_url

    @property
    def dead_queue_url(self) -> str | None:
        return self._dead_queue_url

    def configure(self, config: Mapping[str, Any]) -> None:
        super().configure(config)
        self._options = self._options.merged(config)

    def is_open(self) -> bool:
        return self._queue_url is not None and self._connection is not None

    # ── Lifecycle ────────────────────────────────────────────────────

    async def open(
        self,
        correlation_id: str | None,
        connection: ConnectionParams | None = None,
        credential: CredentialParams | None = None,
    ) -> None:
        if self.is_open():
            return

        params = AwsConnectionParams.merge(connection, credential)
        params.service = SQS_SERVICE
        queue_name = params.resource or params.get("queue") or self._name
        params.resource = queue_name
        dead_queue_name = params.get("dead_queue")

        params.validate_params(correlation_id)
        if self._name is None:
            self._name = queue_name

        logger.info(
            "Connecting queue %s to %s",
            self,
            params.arn,
            extra={"correlation_id": correlation_id},
        )

        manager = self._create_connection(params)
        try:
            await manager.create_queue(queue_name)
            if dead_queue_name:
                await manager.create_queue(dead_queue_name)
            queue_url = await manager.get_queue_url(queue_name)
            dead_queue_url = (
                await manager.get_queue_url(dead_queue_name)
                if dead_queue_name
                else None
            )
        except Exception as e:
            with contextlib.suppress(Exception):
                await manager.close()
            raise wrap_connection_error(e, correlation_id, queue_name) from e

        self._connection = manager
        self._queue_url = queue_url
        self._dead_queue_url = dead_queue_url

    def _create_connection(self, params: AwsConnectionParams) -> SQSConnectionManager:
        client_kwargs: dict[str, Any] = {
            "aws_access_key_id": params.access_id,
            "aws_secret_access_key": params.access_key,
        }
        if params.endpoint:
            client_kwargs["endpoint_url"] = params.endpoint
        return SQSConnectionManager(
            params.region or "us-east-1",
            session=self._session,
            **client_kwargs,
        )

    async def close(self, correlation_id: str | None) -> None:
        self.end_listen(correlation_id)
        connection, self._connection = self._connection, None
        self._queue_url = None
        self._dead_queue_url = None
        if connection is not None:
            await connection.close()
        logger.debug(
            "Closed queue %s", self, extra={"correlation_id": correlation_id}
        )

    async def _client(self) -> Any:
        if self._connection is None:
            raise wrap_connection_error(
                RuntimeError("connection is closed"), None, self._name
            )
        return await self._connection.get_client()

    # ── Conversion ───────────────────────────────────────────────────

    def _to_envelope(self, message: dict[str, Any]) -> MessageEnvelope:
        body = message.get("Body", "")
        try:
            envelope = self._serializer.deserialize(body)
        except MessagingSerializationError:
            logger.warning("Cannot deserialize message: %s", body)
            envelope = MessageEnvelope(payload=body)

        envelope.sent_time = datetime.now(timezone.utc)
        envelope.message_id = message.get("MessageId")
        envelope.attach_reference(
            MessageReference(
                receipt_handle=message["ReceiptHandle"],
                message_id=envelope.message_id,
            )
        )
        return envelope

    async def _receive_messages(
        self,
        max_count: int,
        wait_seconds: int,
        visibility_seconds: int,
    ) -> list[dict[str, Any]]:
        """Fetch up to *max_count* distinct messages, at most 10 per call.

        Only the first call long-polls. Stops when a call yields nothing new.
        """
        client = await self._client()
        messages: list[dict[str, Any]] = []
        seen: set[str] = set()
        wait = max(0, min(wait_seconds, MAX_WAIT_SECONDS))
        while len(messages) < max_count:
            out = await client.receive_message(
                QueueUrl=self._queue_url,
                MaxNumberOfMessages=min(max_count - len(messages), MAX_RECEIVE_BATCH),
                WaitTimeSeconds=wait,
                VisibilityTimeout=visibility_seconds,
            )
            fresh = [
                m for m in out.get("Messages") or [] if m.get("MessageId") not in seen
            ]
            if not fresh:
                break
            for m in fresh:
                seen.add(m.get("MessageId"))
                messages.append(m)
            wait = 0
        return messages

    def _visibility_seconds(self) -> int:
        return self._options.visibility_timeout // 1000

    async def _send_body(self, queue_url: str, body: str) -> None:
        client = await self._client()
        await client.send_message(QueueUrl=queue_url, MessageBody=body)

    # ── Data operations ──────────────────────────────────────────────

    async def read_message_count(self) -> int | None:
        self._check_open(None)
        client = await self._client()
        out = await self._instrument(
            "message_count",
            None,
            lambda: client.get_queue_attributes(
                QueueUrl=self._queue_url,
                AttributeNames=["ApproximateNumberOfMessages"],
            ),
        )
        value = (out.get("Attributes") or {}).get("ApproximateNumberOfMessages")
        return int(value) if value is not None else None

    async def send(self, correlation_id: str | None, envelope: MessageEnvelope) -> None:
        self._check_open(correlation_id)
        body = self._serializer.serialize(envelope)
        queue_url = self._queue_url
        assert queue_url is not None
        await self._instrument(
            "send", correlation_id, lambda: self._send_body(queue_url, body)
        )
        self._increment("sent_messages")
        logger.debug(
            "Sent message %s via %s",
            envelope,
            self,
            extra={"correlation_id": envelope.correlation_id or correlation_id},
        )

    async def peek(self, correlation_id: str | None) -> MessageEnvelope | None:
        self._check_open(correlation_id)
        messages = await self._instrument(
            "peek", correlation_id, lambda: self._receive_messages(1, 0, 0)
        )
        if not messages:
            return None
        envelope = self._to_envelope(messages[0])
        logger.debug(
            "Peeked message %s on %s",
            envelope,
            self,
            extra={"correlation_id": envelope.correlation_id},
        )
        return envelope

    async def peek_batch(
        self, correlation_id: str | None, message_count: int
    ) -> list[MessageEnvelope]:
        self._check_open(correlation_id)
        messages = await self._instrument(
            "peek_batch",
            correlation_id,
            lambda: self._receive_messages(message_count, 0, 0),
        )
        envelopes = [self._to_envelope(m) for m in messages]
        logger.debug(
            "Peeked %d messages on %s",
            len(envelopes),
            self,
            extra={"correlation_id": correlation_id},
        )
        return envelopes

    async def receive(
        self, correlation_id: str | None, wait_timeout: int
    ) -> MessageEnvelope | None:
        self._check_open(correlation_id)
        messages = await self._instrument(
            "receive",
            correlation_id,
            lambda: self._receive_messages(
                1, wait_timeout // 1000, self._visibility_seconds()
            ),
        )
        if not messages:
            return None
        envelope = self._to_envelope(messages[0])
        self._increment("received_messages")
        logger.debug(
            "Received message %s via %s",
            envelope,
            self,
            extra={"correlation_id": envelope.correlation_id or correlation_id},
        )
        return envelope

    async def renew_lock(self, envelope: MessageEnvelope, lock_timeout: int) -> None:
        self._check_open(envelope.correlation_id)
        reference = envelope.reference
        if reference is None:
            return
        client = await self._client()
        await self._instrument(
            "renew_lock",
            envelope.correlation_id,
            lambda: client.change_message_visibility(
                QueueUrl=self._queue_url,
                ReceiptHandle=reference.receipt_handle,
                VisibilityTimeout=lock_timeout // 1000,
            ),
        )
        logger.debug(
            "Renewed lock for message %s at %s",
            envelope,
            self,
            extra={"correlation_id": envelope.correlation_id},
        )

    async def abandon(self, envelope: MessageEnvelope) -> None:
        self._check_open(envelope.correlation_id)
        reference = envelope.reference
        if reference is None:
            return
        client = await self._client()
        await self._instrument(
            "abandon",
            envelope.correlation_id,
            lambda: client.change_message_visibility(
                QueueUrl=self._queue_url,
                ReceiptHandle=reference.receipt_handle,
                VisibilityTimeout=0,
            ),
        )
        envelope.clear_reference()
        logger.debug(
            "Abandoned message %s at %s",
            envelope,
            self,
            extra={"correlation_id": envelope.correlation_id},
        )

    async def complete(self, envelope: MessageEnvelope) -> None:
        self._check_open(envelope.correlation_id)
        reference = envelope.reference
        if reference is None:
            return
        client = await self._client()
        await self._instrument(
            "complete",
            envelope.correlation_id,
            lambda: client.delete_message(
                QueueUrl=self._queue_url, ReceiptHandle=reference.receipt_handle
            ),
        )
        envelope.clear_reference()
        logger.debug(
            "Completed message %s at %s",
            envelope,
            self,
            extra={"correlation_id": envelope.correlation_id},
        )

    async def move_to_dead_letter(self, envelope: MessageEnvelope) -> None:
        """Resend *envelope* to the dead queue, then delete it from this queue.

        The two calls are independent: if the delete fails after the resend,
        the message stays in this queue and may be dead-lettered twice. With
        no dead queue configured the message is deleted and discarded.
        """
        self._check_open(envelope.correlation_id)
        reference = envelope.reference
        if reference is None:
            return

        dead_queue_url = self._dead_queue_url
        if dead_queue_url is not None:
            body = self._serializer.serialize(envelope)
            await self._instrument(
                "dead_letter",
                envelope.correlation_id,
                lambda: self._send_body(dead_queue_url, body),
            )
        else:
            logger.warning(
                "No dead letter queue is defined for %s. The message is discarded.",
                self,
                extra={"correlation_id": envelope.correlation_id},
            )

        client = await self._client()
        await self._instrument(
            "complete",
            envelope.correlation_id,
            lambda: client.delete_message(
                QueueUrl=self._queue_url, ReceiptHandle=reference.receipt_handle
            ),
        )
        envelope.clear_reference()
        self._increment("dead_messages")
        logger.debug(
            "Moved to dead message %s at %s",
            envelope,
            self,
            extra={"correlation_id": envelope.correlation_id},
        )

    async def clear(self, correlation_id: str | None) -> None:
        self._check_open(correlation_id)
        client = await self._client()
        try:
            await self._instrument(
                "clear",
                correlation_id,
                lambda: client.purge_queue(QueueUrl=self._queue_url),
            )
        except Exception as e:
            if error_code(e) not in PURGE_IN_PROGRESS_CODES:
                raise
            logger.debug(
                "Purge already in progress on %s, draining messages",
                self,
                extra={"correlation_id": correlation_id},
            )
            await self._drain()
        logger.debug("Cleared queue %s", self, extra={"correlation_id": correlation_id})

    async def _drain(self) -> None:
        # Leased batches so each call advances past the messages being deleted.
        while True:
            messages = await self._receive_messages(
                DRAIN_BATCH_SIZE, 0, self._visibility_seconds()
            )
            for message in messages:
                await self.complete(self._to_envelope(message))
            if len(messages) < DRAIN_STOP_THRESHOLD:
                break

    # ── Listening ────────────────────────────────────────────────────

    async def _listen_loop(
        self, handle: ListenerHandle, callback: MessageCallback
    ) -> None:
        interval = self._options.interval / 1000
        while not handle.cancelled:
            try:
                messages = await self._instrument(
                    "listen",
                    handle.correlation_id,
                    lambda: self._receive_messages(1, 0, self._visibility_seconds()),
                )
            except Exception:
                if handle.cancelled:
                    break
                logger.exception(
                    "Failed to receive messages at %s",
                    self,
                    extra={"correlation_id": handle.correlation_id},
                )
                messages = []

            if messages and not handle.cancelled:
                envelope = self._to_envelope(messages[0])
                self._increment("received_messages")
                logger.debug(
                    "Received message %s via %s",
                    envelope,
                    self,
                    extra={"correlation_id": envelope.correlation_id},
                )
                await self._dispatch(envelope, callback, handle.correlation_id)
            elif not messages:
                await handle.wait(interval)
