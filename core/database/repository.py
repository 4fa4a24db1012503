"""
Read/write access to persisted metrics.
"""
from datetime import timezone
from typing import List, Sequence

from sqlalchemy.orm import Session

from core.metrics.types import Metric
from utils.logger import get_logger
from .models import MetricRecord

logger = get_logger(__name__)


class MetricRepository:
    """Store metrics as new rows and read them back newest first."""

    def __init__(self, session: Session):
        self.session = session

    def store_metrics(self, metrics: Sequence[Metric]) -> int:
        records = [
            MetricRecord(
                metric_id=metric.id,
                category=metric.category,
                name=metric.name,
                value=float(metric.value),
                unit=metric.unit,
                additional_info=metric.additional_info,
                source=metric.source,
                timestamp=metric.timestamp,
            )
            for metric in metrics
        ]
        try:
            self.session.add_all(records)
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.error("Error storing metrics", exc_info=True)
            raise
        logger.info(f"Stored {len(records)} metrics")
        return len(records)

    def get_metrics(self, page: int = 1, page_size: int = 20) -> List[Metric]:
        offset = (max(page, 1) - 1) * page_size
        rows = (
            self.session.query(MetricRecord)
            .order_by(MetricRecord.timestamp.desc(), MetricRecord.id.desc())
            .offset(offset)
            .limit(page_size)
            .all()
        )
        return [self._to_metric(row) for row in rows]

    def count(self) -> int:
        return self.session.query(MetricRecord).count()

    def reset(self) -> int:
        try:
            deleted = self.session.query(MetricRecord).delete()
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.error("Error resetting metrics table", exc_info=True)
            raise
        return deleted

    @staticmethod
    def _to_metric(row: MetricRecord) -> Metric:
        timestamp = row.timestamp
        # SQLite drops tzinfo
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return Metric(
            id=row.metric_id,
            category=row.category,
            name=row.name,
            value=row.value,
            unit=row.unit or "",
            additional_info=row.additional_info or "",
            source=row.source,
            timestamp=timestamp,
        )
