"""
Pure transformations from raw source records into metrics.
"""
import math
import re
from typing import List, Optional, Sequence
from datetime import datetime, timezone

from .types import Metric, PullRequest, SheetRow, SOURCE_GITHUB, SOURCE_GOOGLE_SHEETS


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class GitHubMetricCalculator:
    """Derive the fixed set of pull request metrics.

    Always returns three metrics, in this order: count, cycle time, size.
    """

    def calculate(self, pull_requests: Sequence[PullRequest],
                  now: Optional[datetime] = None) -> List[Metric]:
        timestamp = now or datetime.now(timezone.utc)
        return [
            self._pr_count(pull_requests, timestamp),
            self._cycle_time(pull_requests, timestamp),
            self._pr_size(pull_requests, timestamp),
        ]

    def _pr_count(self, pull_requests: Sequence[PullRequest], timestamp: datetime) -> Metric:
        return Metric(
            id="github-pr-count",
            category=SOURCE_GITHUB,
            name="Pull Request Count",
            value=len(pull_requests),
            unit="count",
            additional_info=f"Based on {len(pull_requests)} PRs",
            source=SOURCE_GITHUB,
            timestamp=timestamp,
        )

    def _cycle_time(self, pull_requests: Sequence[PullRequest], timestamp: datetime) -> Metric:
        """Average creation-to-merge time in whole hours, over merged PRs only."""
        merged = [pr for pr in pull_requests if pr.merged_at is not None]

        if merged:
            total_seconds = sum((pr.merged_at - pr.created_at).total_seconds() for pr in merged)
            average_hours = _round_half_up(total_seconds / len(merged) / 3600)
        else:
            average_hours = 0

        return Metric(
            id="github-pr-cycle-time",
            category=SOURCE_GITHUB,
            name="Average Time to Merge",
            value=average_hours,
            unit="hours",
            additional_info=f"Based on {len(merged)} merged PRs",
            source=SOURCE_GITHUB,
            timestamp=timestamp,
        )

    def _pr_size(self, pull_requests: Sequence[PullRequest], timestamp: datetime) -> Metric:
        total_size = sum((pr.additions or 0) + (pr.deletions or 0) for pr in pull_requests)
        average_size = _round_half_up(total_size / len(pull_requests)) if pull_requests else 0

        return Metric(
            id="github-avg-pr-size",
            category=SOURCE_GITHUB,
            name="Average PR Size",
            value=average_size,
            unit="lines",
            additional_info=f"Based on {len(pull_requests)} PRs",
            source=SOURCE_GITHUB,
            timestamp=timestamp,
        )


class SheetsMetricCalculator:
    """Map spreadsheet rows one-to-one onto metrics."""

    def calculate(self, rows: Sequence[SheetRow]) -> List[Metric]:
        return [
            Metric(
                id=f"sheets-{_slug(row.category)}-{_slug(row.name)}",
                category=row.category,
                name=row.name,
                value=row.value,
                unit=row.unit,
                additional_info=row.additional_info,
                source=SOURCE_GOOGLE_SHEETS,
                timestamp=row.timestamp,
            )
            for row in rows
        ]
