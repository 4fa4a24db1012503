"""
Aggregation of team health metrics from Google Sheets and GitHub.

Sources are fetched one after the other. A failing source becomes an
AggregationError in the result; only cancellation, or an error outside the
per-source handling, makes get_all_metrics raise.
"""
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.errors import OperationCancelledError
from utils.logger import get_logger
from .calculator import GitHubMetricCalculator, SheetsMetricCalculator
from .types import (
    AggregationError,
    AggregationResult,
    Metric,
    ProgressCallback,
    SourceStats,
)

logger = get_logger(__name__)

# Record count at which a source with an unknown total is shown half done.
UNBOUNDED_PROGRESS_PIVOT = 100


def source_fraction(current: float, total: float) -> float:
    """Fraction of a source's work done, in [0, 1]."""
    if current <= 0 or math.isnan(current) or math.isnan(total):
        return 0.0
    if math.isinf(total):
        return current / (current + UNBOUNDED_PROGRESS_PIVOT)
    if total <= 0:
        return 0.0
    return min(current / total, 1.0)


def merge_metrics(metrics: Iterable[Metric]) -> List[Metric]:
    """Deduplicate on (source, id), keeping the most recent metric.

    On equal timestamps the metric seen first is kept. Output keeps the order
    in which each key first appeared.
    """
    merged: Dict[Tuple[str, str], Metric] = {}
    for metric in metrics:
        key = (metric.source, metric.id)
        existing = merged.get(key)
        if existing is None or metric.timestamp > existing.timestamp:
            merged[key] = metric
    return list(merged.values())


class MetricsService:
    """Aggregate both sources for one request.

    Instances are per request: the cancellation flag is not shared.
    """

    def __init__(self, sheets_source: Any, github_source: Any,
                 sheets_calculator: Optional[SheetsMetricCalculator] = None,
                 github_calculator: Optional[GitHubMetricCalculator] = None,
                 metric_repository: Any = None,
                 cache: Any = None):
        self.sheets_source = sheets_source
        self.github_source = github_source
        self.sheets_calculator = sheets_calculator or SheetsMetricCalculator()
        self.github_calculator = github_calculator or GitHubMetricCalculator()
        self.metric_repository = metric_repository
        self.cache = cache
        self._cancelled = False

    def cancel_operation(self) -> None:
        """Request a stop at the next checkpoint."""
        if self._cancelled:
            return
        self._cancelled = True
        logger.info("Metrics aggregation cancellation requested")
        for source in (self.sheets_source, self.github_source):
            cancel = getattr(source, "cancel_operation", None)
            if cancel is not None:
                cancel()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def _check_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError()

    async def get_all_metrics(self, progress_callback: Optional[ProgressCallback] = None,
                              time_period_days: int = 90) -> AggregationResult:
        errors: List[AggregationError] = []
        metrics: List[Metric] = []
        source_stats = SourceStats(time_period_days=time_period_days)

        steps = [
            (self.sheets_source, 0, lambda records: self.sheets_calculator.calculate(records)),
            (self.github_source, 50, lambda records: self.github_calculator.calculate(records)),
        ]

        for source, offset, calculate in steps:
            self._check_cancelled()
            callback = self._scaled_progress(source.name, offset, progress_callback)
            try:
                result = await source.fetch(time_period_days, callback)
                source_metrics = calculate(result.records)
                metrics.extend(source_metrics)
                if source is self.github_source:
                    source_stats = SourceStats(
                        total_items=int(result.total_available),
                        fetched_items=result.fetched_count,
                        time_period_days=result.time_period_days,
                    )
                logger.info(f"Fetched {len(source_metrics)} metrics from {source.name}",
                            extra={"source": source.name, "time_period_days": time_period_days})
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.error(f"Error fetching {source.name} data: {e}", exc_info=True,
                             extra={"source": source.name, "time_period_days": time_period_days})
                errors.append(AggregationError(source=source.name, message=str(e) or "Unknown error"))

            self._check_cancelled()
            if progress_callback:
                progress_callback(offset + 50, 100, f"{source.name}: done")

        merged = merge_metrics(metrics)
        logger.info(
            f"Aggregated {len(merged)} metrics with {len(errors)} source errors",
            extra={"time_period_days": time_period_days},
        )
        return AggregationResult(metrics=merged, errors=errors, source_stats=source_stats)

    def _scaled_progress(self, source_name: str, offset: float,
                         main_callback: Optional[ProgressCallback]) -> Optional[ProgressCallback]:
        """Map a source's progress into its half of the overall range."""
        if main_callback is None:
            return None

        def report(current: float, total: float, message: str) -> None:
            main_callback(offset + source_fraction(current, total) * 50, 100, f"{source_name}: {message}")

        return report

    async def sync_metrics(self, time_period_days: int = 90) -> Dict[str, Any]:
        """Aggregate without progress reporting and persist the merged metrics."""
        result = await self.get_all_metrics(None, time_period_days)
        stored = 0
        if self.metric_repository is not None and result.metrics:
            stored = self.metric_repository.store_metrics(result.metrics)
        logger.info(f"Synced {stored} metrics", extra={"time_period_days": time_period_days})
        return {
            "stored": stored,
            "errors": [error.to_dict() for error in result.errors],
            "sourceStats": result.source_stats.to_dict(),
            "status": result.status,
        }

    def get_stored_metrics(self, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        metrics = self.metric_repository.get_metrics(page, page_size)
        return {
            "metrics": [metric.to_dict() for metric in metrics],
            "page": page,
            "pageSize": page_size,
            "total": self.metric_repository.count(),
        }

    async def reset_database(self) -> int:
        """Delete persisted metrics and drop cached source results."""
        deleted = self.metric_repository.reset()
        if self.cache is not None:
            await self.cache.clear()
        logger.warning(f"Metrics database reset, {deleted} rows deleted")
        return deleted
