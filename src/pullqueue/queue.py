"""MessageQueue — the operation contract every backend queue implements."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

from .capabilities import MessagingCapabilities
from .correlation import correlation_scope
from .counters import ICounters, NullCounters
from .envelope import MessageEnvelope
from .exceptions import InvalidStateError
from .instrumentation import get_hook_registry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from .config import ConnectionParams, CredentialParams

    MessageCallback = Callable[[MessageEnvelope, "MessageQueue"], Awaitable[None]]

logger = logging.getLogger(__name__)


class ListenerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class ListenerHandle:
    """Single-use cancellation token owned by one listen loop."""

    def __init__(self, correlation_id: str | None = None) -> None:
        self.correlation_id = correlation_id
        self.state = ListenerState.IDLE
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; return True early if cancelled."""
        if timeout <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class MessageQueue(ABC):
    """Abstract pull-based message queue.

    Instances are constructed closed. ``open`` binds the backend; every data
    operation raises :class:`InvalidStateError` until then. Backend calls run
    through the instrumentation hook registry as ``queue.<operation>``.
    """

    def __init__(
        self,
        name: str | None = None,
        capabilities: MessagingCapabilities | None = None,
        *,
        counters: ICounters | None = None,
    ) -> None:
        self._name = name
        self._capabilities = capabilities or MessagingCapabilities()
        self._counters: ICounters = counters or NullCounters()
        self._listener: ListenerHandle | None = None

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def capabilities(self) -> MessagingCapabilities:
        return self._capabilities

    @property
    def listener(self) -> ListenerHandle | None:
        """Handle of the running listen loop, if any."""
        return self._listener

    def is_listening(self) -> bool:
        return self._listener is not None and not self._listener.cancelled

    def configure(self, config: Mapping[str, Any]) -> None:  # noqa: B027
        """Apply backend-independent options. Subclasses extend this."""

    # ── Lifecycle ────────────────────────────────────────────────────

    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def open(
        self,
        correlation_id: str | None,
        connection: ConnectionParams | None = None,
        credential: CredentialParams | None = None,
    ) -> None: ...

    @abstractmethod
    async def close(self, correlation_id: str | None) -> None: ...

    def _check_open(self, correlation_id: str | None) -> None:
        if not self.is_open():
            raise InvalidStateError(
                "The queue is not opened",
                code="NOT_OPENED",
                correlation_id=correlation_id,
            )

    # ── Data operations ──────────────────────────────────────────────

    @abstractmethod
    async def read_message_count(self) -> int | None:
        """Approximate number of available envelopes."""

    @abstractmethod
    async def send(self, correlation_id: str | None, envelope: MessageEnvelope) -> None:
        ...

    async def send_as_object(
        self,
        correlation_id: str | None,
        message_type: str | None,
        payload: Any,
    ) -> None:
        """Wrap *payload* in an envelope and send it."""
        envelope = MessageEnvelope(
            correlation_id=correlation_id,
            message_type=message_type,
            payload=payload,
        )
        await self.send(correlation_id, envelope)

    @abstractmethod
    async def peek(self, correlation_id: str | None) -> MessageEnvelope | None: ...

    @abstractmethod
    async def peek_batch(
        self, correlation_id: str | None, message_count: int
    ) -> list[MessageEnvelope]: ...

    @abstractmethod
    async def receive(
        self, correlation_id: str | None, wait_timeout: int
    ) -> MessageEnvelope | None:
        """Receive one envelope, waiting up to *wait_timeout* milliseconds."""

    @abstractmethod
    async def renew_lock(self, envelope: MessageEnvelope, lock_timeout: int) -> None:
        ...

    @abstractmethod
    async def abandon(self, envelope: MessageEnvelope) -> None: ...

    @abstractmethod
    async def complete(self, envelope: MessageEnvelope) -> None: ...

    @abstractmethod
    async def move_to_dead_letter(self, envelope: MessageEnvelope) -> None: ...

    @abstractmethod
    async def clear(self, correlation_id: str | None) -> None: ...

    # ── Listening ────────────────────────────────────────────────────

    async def listen(
        self, correlation_id: str | None, callback: MessageCallback
    ) -> None:
        """Poll and dispatch envelopes to *callback* until :meth:`end_listen`.

        Raises InvalidStateError if another loop is already running on this
        queue instance.
        """
        handle = self._start_listener(correlation_id)
        await self._run_listener(handle, callback)

    def begin_listen(
        self, correlation_id: str | None, callback: MessageCallback
    ) -> asyncio.Task[None]:
        """Start :meth:`listen` in a background task and return the task."""
        handle = self._start_listener(correlation_id)
        return asyncio.create_task(self._run_listener(handle, callback))

    def end_listen(self, correlation_id: str | None = None) -> None:  # noqa: ARG002
        """Signal the running listen loop to stop after its current iteration."""
        if self._listener is not None:
            self._listener.cancel()

    def _start_listener(self, correlation_id: str | None) -> ListenerHandle:
        self._check_open(correlation_id)
        if self.is_listening():
            raise InvalidStateError(
                f"Queue {self} is already listening",
                code="ALREADY_LISTENING",
                correlation_id=correlation_id,
            )
        handle = ListenerHandle(correlation_id)
        self._listener = handle
        return handle

    async def _run_listener(
        self, handle: ListenerHandle, callback: MessageCallback
    ) -> None:
        handle.state = ListenerState.RUNNING
        logger.debug(
            "Started listening messages at %s",
            self,
            extra={"correlation_id": handle.correlation_id},
        )
        try:
            await self._listen_loop(handle, callback)
        finally:
            handle.state = ListenerState.STOPPED
            if self._listener is handle:
                self._listener = None
            logger.debug(
                "Stopped listening messages at %s",
                self,
                extra={"correlation_id": handle.correlation_id},
            )

    @abstractmethod
    async def _listen_loop(
        self, handle: ListenerHandle, callback: MessageCallback
    ) -> None:
        """Backend-specific polling loop; returns once *handle* is cancelled."""

    async def _dispatch(
        self,
        envelope: MessageEnvelope,
        callback: MessageCallback,
        correlation_id: str | None,
    ) -> None:
        """Invoke *callback*; failures are logged and never propagate."""
        with correlation_scope(envelope.correlation_id or correlation_id):
            try:
                await callback(envelope, self)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Failed to process the message %s at %s",
                    envelope,
                    self,
                    extra={"correlation_id": correlation_id},
                )

    # ── Cross-cutting helpers ────────────────────────────────────────

    async def _instrument(
        self,
        operation: str,
        correlation_id: str | None,
        fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        attributes = {"queue.name": self._name, "correlation_id": correlation_id}
        return await get_hook_registry().execute_all(
            f"queue.{operation}", attributes, fn
        )

    def _increment(self, counter: str) -> None:
        self._counters.increment(f"queue.{self._name}.{counter}")

    def __str__(self) -> str:
        return self._name or "undefined"
