"""Pytest fixtures: an in-process SQS fake and queue factories."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from pullqueue.config import ConnectionParams, CredentialParams
from pullqueue.counters import InMemoryCounters
from pullqueue.instrumentation import HookRegistry, set_hook_registry
from pullqueue.sqs.queue import SQSMessageQueue

pytest_plugins = ["pytest_asyncio"]

QUEUE_URL_PREFIX = "https://sqs.us-east-1.amazonaws.com/123456789012/"


class FakeClientError(Exception):
    """Mimics botocore ClientError: carries ``response['Error']['Code']``."""

    def __init__(self, code: str, message: str = "") -> None:
        self.response = {"Error": {"Code": code, "Message": message}}
        super().__init__(f"{code}: {message}")


@dataclass
class FakeMessage:
    message_id: str
    body: str
    visible_at: float = 0.0


class FakeSQSClient:
    """Async SQS client double emulating visibility timeouts.

    Time is a manual clock (``advance``) so lease expiry is deterministic.
    """

    def __init__(self) -> None:
        self.queues: dict[str, list[FakeMessage]] = {}
        self.receipts: dict[str, tuple[str, str]] = {}
        self.clock = 0.0
        self.purge_in_progress = False
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def advance(self, seconds: float) -> None:
        self.clock += seconds

    def _name(self, queue_url: str) -> str:
        name = queue_url.rsplit("/", 1)[-1]
        if name not in self.queues:
            raise FakeClientError("AWS.SimpleQueueService.NonExistentQueue", name)
        return name

    def _find(self, receipt_handle: str) -> FakeMessage:
        name, message_id = self.receipts.get(receipt_handle, ("", ""))
        for message in self.queues.get(name, []):
            if message.message_id == message_id:
                return message
        raise FakeClientError("ReceiptHandleIsInvalid", receipt_handle)

    def visible(self, name: str) -> list[FakeMessage]:
        return [m for m in self.queues[name] if m.visible_at <= self.clock]

    def seed(self, name: str, bodies: list[str]) -> None:
        for body in bodies:
            self.queues.setdefault(name, []).append(
                FakeMessage(message_id=str(uuid.uuid4()), body=body)
            )

    async def create_queue(  # noqa: N803
        self, QueueName: str, **_: Any
    ) -> dict[str, Any]:
        self.calls.append(("create_queue", {"QueueName": QueueName}))
        if QueueName in self.queues:
            raise FakeClientError("QueueAlreadyExists", QueueName)
        self.queues[QueueName] = []
        return {"QueueUrl": QUEUE_URL_PREFIX + QueueName}

    async def get_queue_url(self, QueueName: str) -> dict[str, Any]:  # noqa: N803
        self.calls.append(("get_queue_url", {"QueueName": QueueName}))
        if QueueName not in self.queues:
            raise FakeClientError("AWS.SimpleQueueService.NonExistentQueue", QueueName)
        return {"QueueUrl": QUEUE_URL_PREFIX + QueueName}

    async def send_message(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("send_message", kwargs))
        name = self._name(kwargs["QueueUrl"])
        message = FakeMessage(message_id=str(uuid.uuid4()), body=kwargs["MessageBody"])
        self.queues[name].append(message)
        return {"MessageId": message.message_id}

    async def receive_message(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("receive_message", kwargs))
        name = self._name(kwargs["QueueUrl"])
        batch = self.visible(name)[: kwargs.get("MaxNumberOfMessages", 1)]
        if not batch:
            return {}
        out = []
        for message in batch:
            message.visible_at = self.clock + kwargs.get("VisibilityTimeout", 30)
            receipt = str(uuid.uuid4())
            self.receipts[receipt] = (name, message.message_id)
            out.append(
                {
                    "MessageId": message.message_id,
                    "ReceiptHandle": receipt,
                    "Body": message.body,
                }
            )
        return {"Messages": out}

    async def change_message_visibility(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("change_message_visibility", kwargs))
        message = self._find(kwargs["ReceiptHandle"])
        message.visible_at = self.clock + kwargs["VisibilityTimeout"]
        return {}

    async def delete_message(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_message", kwargs))
        name = self._name(kwargs["QueueUrl"])
        _, message_id = self.receipts.get(kwargs["ReceiptHandle"], ("", ""))
        self.queues[name] = [m for m in self.queues[name] if m.message_id != message_id]
        return {}

    async def purge_queue(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("purge_queue", kwargs))
        name = self._name(kwargs["QueueUrl"])
        if self.purge_in_progress:
            raise FakeClientError("AWS.SimpleQueueService.PurgeQueueInProgress", name)
        self.queues[name] = []
        return {}

    async def get_queue_attributes(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_queue_attributes", kwargs))
        name = self._name(kwargs["QueueUrl"])
        count = len(self.visible(name))
        return {"Attributes": {"ApproximateNumberOfMessages": str(count)}}

    async def list_queues(self, **_: Any) -> dict[str, Any]:
        return {"QueueUrls": [QUEUE_URL_PREFIX + n for n in self.queues]}

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture(autouse=True)
def hook_registry() -> HookRegistry:
    """Fresh instrumentation registry per test."""
    registry = HookRegistry()
    set_hook_registry(registry)
    return registry


@pytest.fixture
def sqs_client() -> FakeSQSClient:
    return FakeSQSClient()


@pytest.fixture
def mock_session(sqs_client: FakeSQSClient) -> MagicMock:
    session = MagicMock()
    mock_cm = MagicMock()
    mock_cm.__aenter__ = AsyncMock(return_value=sqs_client)
    mock_cm.__aexit__ = AsyncMock(return_value=None)
    session.create_client = MagicMock(return_value=mock_cm)
    return session


@pytest.fixture
def credential() -> CredentialParams:
    return CredentialParams(access_id="AKIATEST", access_key="secret-key")


@pytest.fixture
def counters() -> InMemoryCounters:
    return InMemoryCounters()


@pytest.fixture
def make_queue(mock_session: MagicMock, counters: InMemoryCounters) -> Any:
    def _make(name: str = "orders", **options: Any) -> SQSMessageQueue:
        options.setdefault("interval", 10)
        return SQSMessageQueue(
            name, options=options, session=mock_session, counters=counters
        )

    return _make


@pytest_asyncio.fixture
async def queue(
    make_queue: Any, credential: CredentialParams
) -> AsyncIterator[SQSMessageQueue]:
    q = make_queue("orders")
    await q.open(
        "test",
        ConnectionParams(region="us-east-1", dead_queue="orders-dlq"),
        credential,
    )
    yield q
    await q.close("test")


@pytest_asyncio.fixture
async def queue_without_dlq(
    make_queue: Any, credential: CredentialParams
) -> AsyncIterator[SQSMessageQueue]:
    q = make_queue("jobs")
    await q.open("test", ConnectionParams(region="us-east-1"), credential)
    yield q
    await q.close("test")
