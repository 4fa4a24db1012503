"""
Server-Sent Events streaming of metrics aggregation progress
"""

from .channel import ProgressChannel, QueueSink, ConnectionState
from .controller import MetricsController, RequestState
from .events import SSE_HEADERS, format_event, error_payload, result_payload

__all__ = [
    'ProgressChannel',
    'QueueSink',
    'ConnectionState',
    'MetricsController',
    'RequestState',
    'SSE_HEADERS',
    'format_event',
    'error_payload',
    'result_payload'
]
