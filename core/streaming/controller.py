"""
Bridge between one streaming metrics request and the aggregation service.

Each request ends in exactly one terminal event (``result`` or ``error``)
unless the client went away first, and its channel is closed exactly once:
PENDING -> STREAMING -> COMPLETED | FAILED | TIMED_OUT | CLIENT_DISCONNECTED.
"""
import asyncio
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from core.errors import AppError
from core.metrics.types import ProgressEvent
from utils.logger import get_logger
from .channel import ProgressChannel
from .events import error_payload, result_payload

logger = get_logger(__name__)


class RequestState(Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CLIENT_DISCONNECTED = "client_disconnected"


TERMINAL_STATES = {
    RequestState.COMPLETED,
    RequestState.FAILED,
    RequestState.TIMED_OUT,
    RequestState.CLIENT_DISCONNECTED,
}


class _StreamingRequest:
    """Per-request bookkeeping"""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.state = RequestState.PENDING
        self.deliverable = True
        self.closed = False
        self.last_progress = 0
        self.progress_queue: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self.pump: Optional[asyncio.Task] = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class MetricsController:
    """Stream aggregation progress and the final result over a ProgressChannel."""

    def __init__(self, channel: ProgressChannel, service_factory: Callable[..., Any],
                 request_timeout_seconds: float = 120):
        self.channel = channel
        self.service_factory = service_factory
        self.request_timeout_seconds = request_timeout_seconds
        self._active: Set[asyncio.Task] = set()

    def start_request(self, connection_id: str, sink: Any, time_period_days: int,
                      **service_options: Any) -> asyncio.Task:
        """Run handle_request in the background, keeping a reference to the task."""
        task = asyncio.create_task(
            self.handle_request(connection_id, sink, time_period_days, **service_options)
        )
        self._active.add(task)
        task.add_done_callback(self._active.discard)
        return task

    async def handle_request(self, connection_id: str, sink: Any, time_period_days: int,
                             **service_options: Any) -> RequestState:
        """Stream one aggregation; ``service_options`` are passed to the service factory."""
        request = _StreamingRequest(connection_id)
        service = self.service_factory(**service_options)

        logger.info("Received metrics stream request",
                    extra={"connection_id": connection_id, "time_period_days": time_period_days})

        try:
            await self.channel.open(connection_id, sink)
        except Exception:
            await sink.close()
            raise

        request.state = RequestState.STREAMING
        self.channel.on_client_disconnect(connection_id, lambda: self._handle_disconnect(request, service))
        self.channel.on_timeout(connection_id, lambda: self._handle_channel_timeout(request, service))
        request.pump = asyncio.create_task(self._pump_progress(request))

        try:
            result = await asyncio.wait_for(
                service.get_all_metrics(self._progress_callback(request), time_period_days),
                timeout=self.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            service.cancel_operation()
            logger.warning("Metrics request timed out",
                           extra={"connection_id": connection_id, "time_period_days": time_period_days})
            await self._finish(request, RequestState.TIMED_OUT, "error",
                               error_payload("Operation timed out", 504))
        except asyncio.CancelledError:
            service.cancel_operation()
            request.deliverable = False
            await self._close(request)
            raise
        except AppError as e:
            logger.error(f"Error fetching metrics: {e}",
                         extra={"connection_id": connection_id, "status": e.status_code})
            await self._finish(request, RequestState.FAILED, "error",
                               error_payload(e.message, e.status_code))
        except Exception as e:
            logger.error(f"Unexpected error fetching metrics: {e}", exc_info=True,
                         extra={"connection_id": connection_id})
            await self._finish(request, RequestState.FAILED, "error",
                               error_payload("An unexpected error occurred", 500))
        else:
            logger.info(
                "Metrics fetched",
                extra={
                    "connection_id": connection_id,
                    "metrics_count": len(result.metrics),
                    "errors_count": len(result.errors),
                },
            )
            await self._finish(request, RequestState.COMPLETED, "result", result_payload(result))

        return request.state

    def _progress_callback(self, request: _StreamingRequest):
        def on_progress(current: float, total: float, message: str) -> None:
            percentage = int(ProgressEvent(current, total, message).percentage + 0.5)
            # never move backwards
            progress = max(request.last_progress, min(percentage, 100))
            request.last_progress = progress
            if request.deliverable and not request.finished:
                request.progress_queue.put_nowait({"progress": progress, "message": message})

        return on_progress

    async def _pump_progress(self, request: _StreamingRequest) -> None:
        while True:
            payload = await request.progress_queue.get()
            if payload is None:
                return
            if request.deliverable:
                await self.channel.emit(request.connection_id, "progress", payload)

    async def _finish(self, request: _StreamingRequest, state: RequestState,
                      event: str, payload: Dict[str, Any]) -> None:
        if request.finished:
            await self._close(request)
            return

        request.state = state
        if request.pump is not None and not request.pump.done():
            request.progress_queue.put_nowait(None)
            # flush queued progress; the pump may be cancelled by a disconnect meanwhile
            await asyncio.wait([request.pump])

        if request.deliverable:
            await self.channel.emit(request.connection_id, event, payload)
        await self._close(request)

    def _handle_channel_timeout(self, request: _StreamingRequest, service: Any) -> None:
        # the channel sends the terminal error event and closes itself
        request.deliverable = False
        if not request.finished:
            request.state = RequestState.TIMED_OUT
        service.cancel_operation()
        if request.pump is not None and not request.pump.done():
            request.pump.cancel()

    def _handle_disconnect(self, request: _StreamingRequest, service: Any):
        request.deliverable = False
        if not request.finished:
            request.state = RequestState.CLIENT_DISCONNECTED
        service.cancel_operation()
        return self._close(request)

    async def _close(self, request: _StreamingRequest) -> None:
        if request.closed:
            return
        request.closed = True
        if request.pump is not None and not request.pump.done():
            request.pump.cancel()
        await self.channel.close(request.connection_id)
