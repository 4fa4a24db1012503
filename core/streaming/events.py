"""
Server-Sent Events framing and the payloads of the metrics stream.
"""
import json
from typing import Any, Dict

from core.metrics.types import AggregationResult

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable proxy buffering (nginx)
    "X-Accel-Buffering": "no",
}

KEEP_ALIVE_COMMENT = ":\n\n"

AGGREGATOR_SOURCE = "Aggregator"


def format_event(event: str, payload: Any) -> str:
    """Frame one named event: ``event: <name>\\ndata: <json>\\n\\n``."""
    data = json.dumps(payload, default=str, separators=(",", ":"))
    return f"event: {event}\ndata: {data}\n\n"


def result_payload(result: AggregationResult) -> Dict[str, Any]:
    return {
        "success": True,
        "data": [metric.to_dict() for metric in result.metrics],
        "errors": [error.to_dict() for error in result.errors],
        "sourceStats": result.source_stats.to_dict(),
        "status": result.status,
    }


def error_payload(message: str, status: int) -> Dict[str, Any]:
    return {
        "success": False,
        "errors": [{"source": AGGREGATOR_SOURCE, "message": message}],
        "status": status,
    }
