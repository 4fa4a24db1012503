"""
Composition root: builds the object graph once from Settings.
"""
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from core.cache import CacheService, CachedSourceClient
from core.config import Settings
from core.database import DatabaseManager, MetricRepository
from core.github import GitHubClient, GitHubSource
from core.metrics import MetricsService
from core.repositories import RepositoryManagementService
from core.sheets import GoogleSheetsClient, GoogleSheetsSource
from core.streaming import MetricsController, ProgressChannel
from utils.logger import get_logger

logger = get_logger(__name__)


class Container:
    """Long-lived collaborators shared by all requests."""

    def __init__(self, settings: Settings):
        self.settings = settings

        self.cache = CacheService(max_size=settings.cache_max_size)
        self.github_client = GitHubClient({
            'github_token': settings.github_token,
            'api_url': settings.github_api_url,
            'timeout': settings.http_timeout_seconds,
        })
        self.sheets_client = GoogleSheetsClient({
            'api_key': settings.google_sheets_api_key,
            'access_token': settings.google_sheets_access_token,
            'api_url': settings.google_sheets_api_url,
            'timeout': settings.http_timeout_seconds,
        })
        self.database = DatabaseManager(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.debug,
        )
        self.channel = ProgressChannel(
            heartbeat_interval=settings.heartbeat_interval_seconds,
            timeout_seconds=settings.sse_timeout_seconds,
        )
        self.metrics_controller = MetricsController(
            self.channel,
            self.build_metrics_service,
            request_timeout_seconds=settings.request_timeout_seconds,
        )

    def build_metrics_service(self, session: Optional[Session] = None,
                              repository: Optional[Tuple[str, str]] = None) -> MetricsService:
        """Build a per-request MetricsService over fresh source instances.

        ``repository`` is an (owner, name) pair; the configured repository is used when omitted.
        """
        owner, repo = repository or self.settings.repository
        ttl = self.settings.cache_ttl_seconds
        fetch_timeout = self.settings.source_fetch_timeout_seconds

        sheets_source = GoogleSheetsSource(
            self.sheets_client,
            self.settings.google_sheets_id,
            columns=self.settings.google_sheets_range_columns,
            page_size=self.settings.sheets_page_size,
            fetch_timeout_seconds=fetch_timeout,
        )
        github_source = GitHubSource(self.github_client, owner, repo, fetch_timeout_seconds=fetch_timeout)

        return MetricsService(
            CachedSourceClient(sheets_source, self.cache, ttl),
            CachedSourceClient(github_source, self.cache, ttl),
            metric_repository=MetricRepository(session) if session is not None else None,
            cache=self.cache,
        )

    def build_repository_service(self, session: Session) -> RepositoryManagementService:
        return RepositoryManagementService(session, self.github_client)

    async def close(self) -> None:
        await self.github_client.close()
        await self.sheets_client.close()
        self.database.dispose()
        logger.info("Container resources released")
