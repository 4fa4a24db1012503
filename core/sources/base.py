"""
Base class for paginated upstream sources.

A source pages through one external API, reports progress after every page,
checks for cancellation between pages and gives up once the whole loop has
run longer than its ceiling.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from core.errors import OperationCancelledError, OperationTimeoutError, SourceFetchError
from core.metrics.types import UNBOUNDED, FetchResult, ProgressCallback
from utils.logger import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Page:
    """One page of upstream records plus its continuation state"""
    records: List[Any]
    cursor: Optional[Any]
    has_more: bool


class BaseSource(ABC):
    """Paginated source with a cooperative cancellation flag.

    Records must expose a timezone-aware ``timestamp``.
    """

    name: str = "source"
    record_label: str = "records"
    # Pages arrive newest-first, so paging can stop at the window bound.
    newest_first: bool = False

    def __init__(self, fetch_timeout_seconds: float = 300,
                 clock: Callable[[], float] = time.monotonic,
                 now: Callable[[], datetime] = utc_now):
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self._clock = clock
        self._now = now
        self._cancelled = False

    @property
    @abstractmethod
    def cache_key_prefix(self) -> str:
        """Stable key identifying the source and its fixed parameters."""
        pass

    @abstractmethod
    async def fetch_page(self, cursor: Optional[Any]) -> Page:
        """Fetch the page that starts at ``cursor`` (None for the first page)."""
        pass

    @abstractmethod
    def log_context(self) -> Dict[str, Any]:
        """Identifiers used to diagnose a failed fetch."""
        pass

    def cancel_operation(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def _check_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError()

    async def fetch(self, time_period_days: int,
                    progress_callback: Optional[ProgressCallback] = None) -> FetchResult:
        now = self._now()
        since = now - timedelta(days=time_period_days)
        context = {**self.log_context(), "source": self.name, "time_period_days": time_period_days}

        records: List[Any] = []
        cursor = None
        has_more = True
        started = self._clock()

        try:
            while has_more:
                self._check_cancelled()

                remaining = self.fetch_timeout_seconds - (self._clock() - started)
                if remaining <= 0:
                    raise OperationTimeoutError()

                try:
                    page = await asyncio.wait_for(self.fetch_page(cursor), timeout=remaining)
                except asyncio.TimeoutError:
                    raise OperationTimeoutError()

                self._check_cancelled()

                records.extend(page.records)
                cursor = page.cursor
                has_more = page.has_more

                if progress_callback:
                    progress_callback(len(records), UNBOUNDED,
                                      f"Fetched {len(records)} {self.record_label}")

                if self.newest_first and page.records and page.records[-1].timestamp < since:
                    logger.debug(f"{self.name}: reached records older than {since.isoformat()}, stopping")
                    break

        except (OperationCancelledError, OperationTimeoutError) as e:
            logger.warning(f"{self.name} fetch stopped: {e}", extra=context)
            raise
        except Exception as e:
            logger.error(f"Error fetching {self.record_label} from {self.name}: {e}",
                         exc_info=True, extra=context)
            raise SourceFetchError(self.name, str(e) or e.__class__.__name__, cause=e) from e

        in_window = [record for record in records if since <= record.timestamp <= now]
        logger.info(
            f"{self.name}: {len(in_window)} of {len(records)} fetched {self.record_label} "
            f"within the last {time_period_days} days",
            extra=context,
        )
        return FetchResult(
            records=in_window,
            total_available=len(in_window),
            fetched_count=len(records),
            time_period_days=time_period_days,
        )
