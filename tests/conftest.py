import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from unittest.mock import patch

from core.metrics.types import UNBOUNDED, FetchResult, PullRequest, SheetRow
from core.sources.base import BaseSource, Page

# Set test environment variables before importing app modules
TEST_ENV = {
    "API_TOKEN": "test-token",
    "GITHUB_TOKEN": "test-key",
    "REPO_OWNER": "acme",
    "REPO_NAME": "widgets",
    "GOOGLE_SHEETS_ID": "test-sheet",
    "GOOGLE_SHEETS_API_KEY": "test-key",
    "ALLOWED_ORIGINS": "http://localhost:3000",
    "DATABASE_URL": f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'test_metrics.db')}",
    "HEARTBEAT_INTERVAL_SECONDS": "0",
}
os.environ.update(TEST_ENV)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

REPOSITORY_DATA = {
    "repository": {
        "isPrivate": False,
        "description": "Widget factory",
        "defaultBranchRef": {"name": "main"},
        "repositoryTopics": {"nodes": [{"topic": {"name": "widgets"}}]},
        "primaryLanguage": {"name": "Python"},
    }
}


@pytest.fixture(autouse=True)
def mock_settings():
    """Mock settings for all tests."""
    with patch.dict(os.environ, TEST_ENV):
        yield


def make_pull_request(number: int, days_ago: float, merged_after_hours: Optional[float] = None,
                      additions: int = 10, deletions: int = 5) -> PullRequest:
    created = NOW - timedelta(days=days_ago)
    merged = created + timedelta(hours=merged_after_hours) if merged_after_hours is not None else None
    return PullRequest(
        number=number,
        title=f"PR {number}",
        state="merged" if merged else "open",
        author="octocat",
        created_at=created,
        merged_at=merged,
        additions=additions,
        deletions=deletions,
    )


def make_sheet_row(row_number: int, days_ago: float, category: str = "Team",
                   name: str = "Morale", value: float = 4.0) -> SheetRow:
    return SheetRow(
        row_number=row_number,
        timestamp=NOW - timedelta(days=days_ago),
        category=category,
        name=name,
        value=value,
    )


class StubSource(BaseSource):
    """In-memory paginated source; each entry of ``pages`` is one page of records."""

    name = "Stub"
    record_label = "items"

    def __init__(self, pages: List[List], newest_first: bool = False, error: Optional[Exception] = None,
                 **kwargs):
        kwargs.setdefault("now", lambda: NOW)
        super().__init__(**kwargs)
        self.pages = pages
        self.newest_first = newest_first
        self.error = error
        self.calls: List = []

    @property
    def cache_key_prefix(self) -> str:
        return "stub"

    def log_context(self):
        return {}

    async def fetch_page(self, cursor):
        self.calls.append(cursor)
        if self.error is not None:
            raise self.error
        index = cursor or 0
        return Page(records=self.pages[index], cursor=index + 1, has_more=index + 1 < len(self.pages))


class FakeSource:
    """Source double returning a fixed FetchResult, or raising ``error``."""

    def __init__(self, name: str, records: Optional[List] = None, error: Optional[Exception] = None,
                 progress: Optional[List[float]] = None, total_available: float = None):
        self.name = name
        self.records = records or []
        self.error = error
        self.progress = progress or []
        self.total_available = total_available
        self.cancelled = False
        self.calls = 0

    @property
    def cache_key_prefix(self) -> str:
        return f"fake:{self.name}"

    def cancel_operation(self):
        self.cancelled = True

    async def fetch(self, time_period_days, progress_callback=None):
        self.calls += 1
        for current in self.progress:
            if progress_callback:
                progress_callback(current, UNBOUNDED, f"Fetched {int(current)} items")
        if self.error is not None:
            raise self.error
        total = len(self.records) if self.total_available is None else self.total_available
        return FetchResult(
            records=list(self.records),
            total_available=total,
            fetched_count=len(self.records),
            time_period_days=time_period_days,
        )


class RecordingSink:
    """Sink double that records every chunk and close call."""

    def __init__(self):
        self.headers = None
        self.chunks = []
        self.close_calls = 0

    def start(self, headers):
        self.headers = headers

    async def write(self, chunk):
        self.chunks.append(chunk)

    async def close(self):
        self.close_calls += 1

    def events(self):
        parsed = []
        for chunk in self.chunks:
            if chunk.startswith("event: "):
                name_line, data_line = chunk.strip().split("\n")
                parsed.append((name_line[len("event: "):], json.loads(data_line[len("data: "):])))
        return parsed
