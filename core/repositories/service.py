"""
Management of the GitHub repositories tracked by the dashboard.

Removing a repository archives it so that its metric history stays
meaningful; archived repositories are not streamed or synced.
"""
import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.database.models import Repository
from core.errors import NotFoundError, ValidationError
from core.github.client import GitHubAPIError, GitHubClient
from core.github.metadata import RepositoryMetadata, fetch_repository_metadata
from utils.logger import get_logger

logger = get_logger(__name__)


class RepositoryStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"
    VALIDATION_PENDING = "validation_pending"
    VALIDATION_FAILED = "validation_failed"


SORT_FIELDS = {
    "createdAt": Repository.created_at,
    "updatedAt": Repository.updated_at,
    "fullName": Repository.full_name,
    "lastSyncAt": Repository.last_sync_at,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepositoryManagementService:
    """Add, validate, list and update tracked repositories."""

    def __init__(self, session: Session, github_client: Optional[GitHubClient] = None):
        self.session = session
        self.github_client = github_client

    async def validate_repository(self, owner: str, name: str,
                                  token: Optional[str] = None) -> Optional[RepositoryMetadata]:
        """Fetch the repository's metadata; None when GitHub cannot confirm it."""
        if self.github_client is None:
            return None
        try:
            return await fetch_repository_metadata(self.github_client, owner, name, token=token)
        except (GitHubAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Repository validation failed: {e}", extra={"owner": owner, "repo": name})
            return None

    async def add_repository(self, owner: str, name: str, credentials_type: Optional[str] = None,
                             token: Optional[str] = None) -> Repository:
        logger.info("Adding new repository", extra={"owner": owner, "repo": name})

        full_name = f"{owner}/{name}"
        existing = (
            self.session.query(Repository)
            .filter(Repository.full_name == full_name,
                    Repository.status != RepositoryStatus.ARCHIVED.value)
            .first()
        )
        if existing is not None:
            raise ValidationError(f"Repository {full_name} is already tracked")

        metadata = await self.validate_repository(owner, name, token)
        if metadata is None:
            raise ValidationError("Repository validation failed")

        repository = Repository(
            owner=owner,
            name=name,
            full_name=full_name,
            status=RepositoryStatus.ACTIVE.value,
            credentials_type=credentials_type if token else None,
            credentials_validated_at=_utcnow() if token else None,
            is_private=metadata.is_private,
            description=metadata.description,
            default_branch=metadata.default_branch,
            topics=metadata.topics,
            language=metadata.language,
            sync_enabled=True,
        )
        self._commit(repository)
        logger.info("Repository created successfully", extra={"repository_id": repository.id})
        return repository

    def get_repository(self, repo_id: int) -> Repository:
        repository = self.session.get(Repository, repo_id)
        if repository is None:
            raise NotFoundError("Repository not found")
        return repository

    def get_active_repository(self, repo_id: int) -> Repository:
        """Return a repository that metrics may be collected for."""
        repository = self.get_repository(repo_id)
        if repository.status != RepositoryStatus.ACTIVE.value:
            raise ValidationError(f"Repository {repository.full_name} is {repository.status}")
        return repository

    def list_repositories(self, page: int = 1, page_size: int = 10, status: Optional[str] = None,
                          owner: Optional[str] = None, search: Optional[str] = None,
                          sync_enabled: Optional[bool] = None, sort_field: str = "createdAt",
                          sort_order: str = "desc") -> Dict[str, Any]:
        query = self.session.query(Repository)
        if status:
            query = query.filter(Repository.status == status)
        if owner:
            query = query.filter(Repository.owner == owner)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Repository.full_name.ilike(pattern),
                                     Repository.description.ilike(pattern)))
        if sync_enabled is not None:
            query = query.filter(Repository.sync_enabled == sync_enabled)

        if sort_field not in SORT_FIELDS:
            raise ValidationError(f"Invalid sort field: {sort_field}")
        column = SORT_FIELDS[sort_field]
        query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), Repository.id)

        total = query.count()
        items = query.offset((max(page, 1) - 1) * page_size).limit(page_size).all()
        return {"items": items, "total": total, "page": page, "pageSize": page_size}

    def remove_repository(self, repo_id: int) -> Repository:
        logger.info("Archiving repository", extra={"repository_id": repo_id})
        return self.update_repository_status(repo_id, RepositoryStatus.ARCHIVED)

    def update_repository_status(self, repo_id: int, status: RepositoryStatus) -> Repository:
        try:
            status = RepositoryStatus(status)
        except ValueError:
            raise ValidationError("Invalid status value") from None

        repository = self.get_repository(repo_id)
        repository.status = status.value
        repository.updated_at = _utcnow()
        self._commit(repository)
        logger.info("Repository status updated", extra={"repository_id": repo_id, "status": status.value})
        return repository

    def update_repository_settings(self, repo_id: int, settings: Dict[str, Any]) -> Repository:
        """Apply the given settings; keys that are absent keep their value."""
        repository = self.get_repository(repo_id)

        if settings.get("sync_enabled") is not None:
            repository.sync_enabled = settings["sync_enabled"]
        for key in ("sync_interval", "branch_patterns", "label_patterns"):
            if settings.get(key) is not None:
                setattr(repository, key, settings[key])
        repository.updated_at = _utcnow()

        self._commit(repository)
        return repository

    def mark_synced(self, repo_id: int) -> Repository:
        repository = self.get_repository(repo_id)
        repository.last_sync_at = _utcnow()
        self._commit(repository)
        return repository

    def _commit(self, repository: Repository) -> None:
        try:
            self.session.add(repository)
            self.session.commit()
            self.session.refresh(repository)
        except Exception:
            self.session.rollback()
            logger.error("Error saving repository", exc_info=True)
            raise
