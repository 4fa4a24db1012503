"""
Shared types for metric aggregation and progress reporting.
"""
import math
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime

# Called as (current, total, message). total may be UNBOUNDED.
ProgressCallback = Callable[[float, float, str], None]

UNBOUNDED = math.inf

SOURCE_GITHUB = "GitHub"
SOURCE_GOOGLE_SHEETS = "Google Sheets"


@dataclass(frozen=True)
class Metric:
    """Normalized measurement produced by a calculator"""
    id: str
    category: str
    name: str
    value: float
    unit: str
    additional_info: str
    source: str
    timestamp: datetime

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise ValueError(f"Metric {self.id} value must be numeric, got {self.value!r}")
        if not math.isfinite(self.value):
            raise ValueError(f"Metric {self.id} value must be finite, got {self.value!r}")
        if not isinstance(self.timestamp, datetime):
            raise ValueError(f"Metric {self.id} timestamp must be a datetime")

    def to_dict(self) -> Dict[str, Any]:
        """Convert metric to dictionary"""
        return {
            "id": self.id,
            "metric_category": self.category,
            "metric_name": self.name,
            "value": self.value,
            "unit": self.unit,
            "additional_info": self.additional_info,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class PullRequest:
    """Raw pull request record fetched from GitHub"""
    number: int
    title: str
    state: str  # open, closed, merged
    author: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None
    commits: int = 0
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    base_ref_name: str = ""
    head_ref_name: str = ""

    @property
    def timestamp(self) -> datetime:
        return self.created_at


@dataclass
class SheetRow:
    """Raw spreadsheet row: timestamp, category, name, value, unit, additional info"""
    row_number: int
    timestamp: datetime
    category: str
    name: str
    value: float
    unit: str = ""
    additional_info: str = ""


@dataclass
class FetchResult:
    """Outcome of one source fetch"""
    records: List[Any]
    total_available: float
    fetched_count: int
    time_period_days: int


@dataclass
class AggregationError:
    """One source's failure, reported as data"""
    source: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "message": self.message}


@dataclass
class SourceStats:
    total_items: int = 0
    fetched_items: int = 0
    time_period_days: int = 90

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalItems": self.total_items,
            "fetchedItems": self.fetched_items,
            "timePeriodDays": self.time_period_days,
        }


@dataclass
class AggregationResult:
    """Merged metrics plus per-source errors for one aggregation run"""
    metrics: List[Metric]
    errors: List[AggregationError] = field(default_factory=list)
    source_stats: SourceStats = field(default_factory=SourceStats)

    @property
    def status(self) -> int:
        return 207 if self.errors else 200

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": [metric.to_dict() for metric in self.metrics],
            "errors": [error.to_dict() for error in self.errors],
            "sourceStats": self.source_stats.to_dict(),
        }


@dataclass
class ProgressEvent:
    current_step: float
    total_steps: float
    message: str

    @property
    def percentage(self) -> float:
        """Percentage in [0, 100]; 0 when the total is unknown or empty."""
        if self.total_steps <= 0 or math.isinf(self.total_steps):
            return 0.0
        return min(max(self.current_step / self.total_steps * 100.0, 0.0), 100.0)
