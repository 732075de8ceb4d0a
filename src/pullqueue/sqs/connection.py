"""SQS client management, queue provisioning and URL resolution."""

from __future__ import annotations

import logging
from typing import Any

from aiobotocore.session import AioSession

from ..exceptions import QueueConnectionError

logger = logging.getLogger(__name__)

QUEUE_EXISTS_CODES = frozenset(
    {"QueueAlreadyExists", "AWS.SimpleQueueService.QueueNameExists"}
)
PURGE_IN_PROGRESS_CODES = frozenset(
    {"PurgeQueueInProgress", "AWS.SimpleQueueService.PurgeQueueInProgress"}
)


def error_code(error: BaseException) -> str | None:
    """Extract the AWS error code from a botocore ClientError-like exception."""
    response = getattr(error, "response", None) or {}
    code = response.get("Error", {}).get("Code")
    return str(code) if code is not None else None


class SQSConnectionManager:
    """Manages the aiobotocore SQS client bound to one region."""

    def __init__(
        self,
        region_name: str = "us-east-1",
        *,
        session: AioSession | None = None,
        **client_kwargs: Any,
    ) -> None:
        """Configure region and optional session/client kwargs.

        ``client_kwargs`` are passed to ``create_client`` (credentials,
        ``endpoint_url`` for LocalStack, …).
        """
        self._region = region_name
        self._session = session or AioSession()
        self._client_kwargs = client_kwargs
        self._client: Any = None
        self._client_cm: Any = None

    @property
    def region(self) -> str:
        return self._region

    async def get_client(self) -> Any:
        """Return shared SQS client; create if needed."""
        if self._client is None:
            self._client_cm = self._session.create_client(
                "sqs",
                region_name=self._region,
                **self._client_kwargs,
            )
            self._client = await self._client_cm.__aenter__()
        return self._client

    async def create_queue(self, queue_name: str) -> None:
        """Create the queue; an existing queue with that name is not an error."""
        client = await self.get_client()
        try:
            await client.create_queue(QueueName=queue_name)
        except Exception as e:
            if error_code(e) not in QUEUE_EXISTS_CODES:
                raise
            logger.debug("Queue %s already exists", queue_name)

    async def get_queue_url(self, queue_name: str) -> str:
        """Resolve queue name to queue URL."""
        client = await self.get_client()
        out = await client.get_queue_url(QueueName=queue_name)
        return str(out["QueueUrl"])

    async def close(self) -> None:
        """Close the client if open."""
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
            self._client_cm = None
            self._client = None

    async def health_check(self) -> bool:
        """Return True if we can list queues (lightweight check)."""
        try:
            client = await self.get_client()
            await client.list_queues(MaxResults=1)
            return True
        except Exception:  # noqa: BLE001
            return False


def wrap_connection_error(
    error: BaseException, correlation_id: str | None, queue: str | None
) -> QueueConnectionError:
    """Wrap a backend failure as QueueConnectionError with the queue attached."""
    wrapped = QueueConnectionError(
        f"Failed to access SQS queue: {error}",
        code="CANNOT_ACCESS_QUEUE",
        correlation_id=correlation_id,
    )
    wrapped.with_details("queue", queue)
    return wrapped
