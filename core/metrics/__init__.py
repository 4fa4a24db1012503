"""
Team health metric calculation and aggregation
"""

from .types import (
    Metric,
    PullRequest,
    SheetRow,
    FetchResult,
    AggregationError,
    AggregationResult,
    SourceStats,
    ProgressEvent,
    UNBOUNDED,
)
from .calculator import GitHubMetricCalculator, SheetsMetricCalculator
from .service import MetricsService, merge_metrics

__all__ = [
    'Metric',
    'PullRequest',
    'SheetRow',
    'FetchResult',
    'AggregationError',
    'AggregationResult',
    'SourceStats',
    'ProgressEvent',
    'UNBOUNDED',
    'GitHubMetricCalculator',
    'SheetsMetricCalculator',
    'MetricsService',
    'merge_metrics'
]
