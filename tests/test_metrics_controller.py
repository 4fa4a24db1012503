import asyncio

import pytest

from core.errors import ConnectionAlreadyExistsError, OperationCancelledError
from core.metrics import AggregationError, AggregationResult, SourceStats
from core.streaming import MetricsController, ProgressChannel, RequestState
from conftest import RecordingSink


class FakeService:
    """Aggregator double driven by an async ``run(callback, days)`` function."""

    def __init__(self, run):
        self.run = run
        self.cancel_calls = 0

    def cancel_operation(self):
        self.cancel_calls += 1

    async def get_all_metrics(self, progress_callback=None, time_period_days=90):
        return await self.run(progress_callback, time_period_days)


def _controller(run, request_timeout_seconds=5):
    service = FakeService(run)
    channel = ProgressChannel(heartbeat_interval=0, timeout_seconds=None)
    controller = MetricsController(channel, lambda: service, request_timeout_seconds=request_timeout_seconds)
    return controller, channel, service


def _terminal_events(sink):
    return [(name, payload) for name, payload in sink.events() if name in ("result", "error")]


class TestMetricsController:
    """Tests for streaming one metrics request."""

    @pytest.mark.asyncio
    async def test_success_emits_progress_then_result(self):
        async def run(callback, days):
            callback(0, 100, "starting")
            callback(50, 100, "Google Sheets: done")
            return AggregationResult(metrics=[], source_stats=SourceStats(3, 5, days))

        controller, channel, _ = _controller(run)
        sink = RecordingSink()

        state = await controller.handle_request("c1", sink, 7)

        events = sink.events()
        assert state == RequestState.COMPLETED
        assert events[0] == ("progress", {"progress": 0, "message": "starting"})
        assert events[1] == ("progress", {"progress": 50, "message": "Google Sheets: done"})
        assert events[-1] == ("result", {
            "success": True,
            "data": [],
            "errors": [],
            "sourceStats": {"totalItems": 3, "fetchedItems": 5, "timePeriodDays": 7},
            "status": 200,
        })
        assert sink.close_calls == 1
        assert not channel.is_open("c1")

    @pytest.mark.asyncio
    async def test_partial_failure_result_is_207(self):
        async def run(callback, days):
            return AggregationResult(metrics=[], errors=[AggregationError("Google Sheets", "API Error")])

        controller, _, _ = _controller(run)
        sink = RecordingSink()
        await controller.handle_request("c1", sink, 7)

        (name, payload), = _terminal_events(sink)
        assert name == "result"
        assert payload["status"] == 207
        assert payload["errors"] == [{"source": "Google Sheets", "message": "API Error"}]

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self):
        """Test that reported progress is non-decreasing and capped at 100."""
        async def run(callback, days):
            for current in (30, 10, 120, 60):
                callback(current, 100, "step")
            return AggregationResult(metrics=[])

        controller, _, _ = _controller(run)
        sink = RecordingSink()
        await controller.handle_request("c1", sink, 7)

        values = [payload["progress"] for name, payload in sink.events() if name == "progress"]
        assert values == [30, 30, 100, 100]

    @pytest.mark.asyncio
    async def test_application_error_carries_status(self):
        async def run(callback, days):
            raise OperationCancelledError()

        controller, _, _ = _controller(run)
        sink = RecordingSink()

        state = await controller.handle_request("c1", sink, 7)

        assert state == RequestState.FAILED
        assert _terminal_events(sink) == [("error", {
            "success": False,
            "errors": [{"source": "Aggregator", "message": "Operation cancelled"}],
            "status": 499,
        })]
        assert sink.close_calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic_500(self):
        """Test that internal messages are not leaked to the client."""
        async def run(callback, days):
            raise KeyError("secret internals")

        controller, _, _ = _controller(run)
        sink = RecordingSink()
        await controller.handle_request("c1", sink, 7)

        (name, payload), = _terminal_events(sink)
        assert name == "error"
        assert payload["status"] == 500
        assert payload["errors"][0]["message"] == "An unexpected error occurred"

    @pytest.mark.asyncio
    async def test_request_timeout(self):
        async def run(callback, days):
            await asyncio.sleep(1)

        controller, _, service = _controller(run, request_timeout_seconds=0.01)
        sink = RecordingSink()

        state = await controller.handle_request("c1", sink, 7)

        assert state == RequestState.TIMED_OUT
        assert _terminal_events(sink) == [("error", {
            "success": False,
            "errors": [{"source": "Aggregator", "message": "Operation timed out"}],
            "status": 504,
        })]
        assert service.cancel_calls >= 1
        assert sink.close_calls == 1

    @pytest.mark.asyncio
    async def test_client_disconnect_suppresses_terminal_event(self):
        """Test that a client leaving early gets no result and cancels the work."""
        async def run(callback, days):
            callback(10, 100, "working")
            await asyncio.sleep(0.05)
            callback(90, 100, "late")
            return AggregationResult(metrics=[])

        controller, channel, service = _controller(run)
        sink = RecordingSink()

        task = asyncio.create_task(controller.handle_request("c1", sink, 7))
        await asyncio.sleep(0.01)
        assert channel.notify_client_disconnect("c1")
        state = await task

        assert state == RequestState.CLIENT_DISCONNECTED
        assert _terminal_events(sink) == []
        assert "late" not in "".join(sink.chunks)
        assert service.cancel_calls >= 1
        assert sink.close_calls == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_closes_channel(self):
        async def run(callback, days):
            await asyncio.sleep(1)

        controller, channel, service = _controller(run)
        sink = RecordingSink()

        task = controller.start_request("c1", sink, 7)
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert _terminal_events(sink) == []
        assert service.cancel_calls >= 1
        assert sink.close_calls == 1
        assert not channel.is_open("c1")

    @pytest.mark.asyncio
    async def test_duplicate_connection_id_fails_loudly(self):
        async def run(callback, days):
            return AggregationResult(metrics=[])

        controller, channel, _ = _controller(run)
        await channel.open("c1", RecordingSink())
        sink = RecordingSink()

        with pytest.raises(ConnectionAlreadyExistsError):
            await controller.handle_request("c1", sink, 7)
        assert sink.close_calls == 1

    @pytest.mark.asyncio
    async def test_channel_timeout_cancels_aggregation(self):
        """Test that the channel's own timeout stops the work and ends in a single 504 error."""
        async def run(callback, days):
            await asyncio.sleep(0.2)
            callback(90, 100, "late")
            return AggregationResult(metrics=[])

        service = FakeService(run)
        channel = ProgressChannel(heartbeat_interval=0, timeout_seconds=0.05)
        controller = MetricsController(channel, lambda: service, request_timeout_seconds=5)
        sink = RecordingSink()

        state = await controller.handle_request("c1", sink, 7)

        assert state == RequestState.TIMED_OUT
        assert service.cancel_calls >= 1
        assert _terminal_events(sink) == [("error", {
            "success": False,
            "errors": [{"source": "Aggregator", "message": "Operation timed out"}],
            "status": 504,
        })]
        assert "late" not in "".join(sink.chunks)
        assert sink.close_calls == 1
