"""
Server-to-client progress channel.

A channel binds a connection id to an output sink for the lifetime of one
streaming response: UNOPENED -> OPEN -> CLOSED. While open it sends a
heartbeat at a fixed interval and closes itself with an ``error`` event once
the overall timeout elapses.
"""
import asyncio
import inspect
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from core.errors import ConnectionAlreadyExistsError, ConnectionNotFoundError
from utils.logger import get_logger
from .events import KEEP_ALIVE_COMMENT, SSE_HEADERS, error_payload, format_event

logger = get_logger(__name__)


class QueueSink:
    """Output sink drained by the HTTP response body iterator."""

    def __init__(self):
        self.headers: Dict[str, str] = {}
        self.closed = False
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()

    def start(self, headers: Dict[str, str]) -> None:
        self.headers = dict(headers)

    async def write(self, chunk: str) -> None:
        if not self.closed:
            await self._queue.put(chunk)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            await self._queue.put(None)

    async def stream(self) -> AsyncIterator[str]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk


class ConnectionState(Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class _Connection:
    connection_id: str
    sink: Any
    state: ConnectionState = ConnectionState.OPEN
    tasks: List[asyncio.Task] = field(default_factory=list)
    disconnect_callbacks: List[Callable[[], Any]] = field(default_factory=list)
    timeout_callbacks: List[Callable[[], Any]] = field(default_factory=list)
    disconnect_notified: bool = False


class ProgressChannel:
    """Registry of open event-stream connections keyed by connection id."""

    def __init__(self, heartbeat_interval: float = 15, timeout_seconds: Optional[float] = 300,
                 closed_history: int = 1000):
        self.heartbeat_interval = heartbeat_interval
        self.timeout_seconds = timeout_seconds
        self.closed_history = closed_history
        self._connections: Dict[str, _Connection] = {}
        self._closed: "OrderedDict[str, None]" = OrderedDict()
        self._callback_tasks: set = set()

    def is_open(self, connection_id: str) -> bool:
        return connection_id in self._connections

    @property
    def open_connections(self) -> int:
        return len(self._connections)

    async def open(self, connection_id: str, sink: Any) -> None:
        if connection_id in self._connections or connection_id in self._closed:
            raise ConnectionAlreadyExistsError(connection_id)

        connection = _Connection(connection_id=connection_id, sink=sink)
        self._connections[connection_id] = connection

        sink.start(SSE_HEADERS)
        await sink.write(KEEP_ALIVE_COMMENT)

        if self.heartbeat_interval and self.heartbeat_interval > 0:
            connection.tasks.append(asyncio.create_task(self._heartbeat(connection_id)))
        if self.timeout_seconds and self.timeout_seconds > 0:
            connection.tasks.append(asyncio.create_task(self._expire(connection_id)))

        logger.info("SSE connection opened", extra={"connection_id": connection_id})

    async def emit(self, connection_id: str, event: str, payload: Any) -> None:
        """Send one event; a no-op once the connection is closed."""
        connection = self._connections.get(connection_id)
        if connection is None:
            if connection_id in self._closed:
                return
            raise ConnectionNotFoundError(connection_id)

        frame = format_event(event, payload)
        await connection.sink.write(frame)
        logger.debug(f"Sent {event} event", extra={"connection_id": connection_id, "bytes": len(frame)})

    async def close(self, connection_id: str) -> None:
        """Close the connection; safe to call more than once."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return

        connection.state = ConnectionState.CLOSED
        self._remember_closed(connection_id)

        current = asyncio.current_task()
        for task in connection.tasks:
            if task is not current and not task.done():
                task.cancel()

        await connection.sink.close()
        logger.info("SSE connection closed", extra={"connection_id": connection_id})

    def on_client_disconnect(self, connection_id: str, callback: Callable[[], Any]) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        connection.disconnect_callbacks.append(callback)

    def on_timeout(self, connection_id: str, callback: Callable[[], Any]) -> None:
        """Register a callback run when the overall timeout fires, before the ``error`` event."""
        connection = self._connections.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        connection.timeout_callbacks.append(callback)

    def notify_client_disconnect(self, connection_id: str) -> bool:
        """Report that the remote end went away.

        Runs the registered callbacks once per connection. Returns False when
        the connection is unknown or already closed.
        """
        connection = self._connections.get(connection_id)
        if connection is None or connection.disconnect_notified:
            return False

        connection.disconnect_notified = True
        logger.info("Client disconnected", extra={"connection_id": connection_id})

        for callback in connection.disconnect_callbacks:
            try:
                result = callback()
            except Exception:
                logger.error("Client disconnect callback failed", exc_info=True,
                             extra={"connection_id": connection_id})
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_tasks.discard)
        return True

    async def _heartbeat(self, connection_id: str) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.emit(connection_id, "heartbeat",
                            {"timestamp": datetime.now(timezone.utc).isoformat()})

    async def _expire(self, connection_id: str) -> None:
        await asyncio.sleep(self.timeout_seconds)
        logger.warning("SSE connection timed out", extra={"connection_id": connection_id})
        connection = self._connections.get(connection_id)
        if connection is not None:
            for callback in connection.timeout_callbacks:
                try:
                    result = callback()
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.error("Connection timeout callback failed", exc_info=True,
                                 extra={"connection_id": connection_id})
        await self.emit(connection_id, "error", error_payload("Operation timed out", 504))
        await self.close(connection_id)

    def _remember_closed(self, connection_id: str) -> None:
        self._closed[connection_id] = None
        while len(self._closed) > self.closed_history:
            self._closed.popitem(last=False)
