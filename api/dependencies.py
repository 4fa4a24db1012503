"""
Shared FastAPI dependencies.
"""
import secrets
from typing import Generator, Optional

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from core.container import Container
from core.errors import AuthenticationError
from core.repositories import RepositoryManagementService
from utils.logger import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_db_session(container: Container = Depends(get_container)) -> Generator[Session, None, None]:
    """Dependency function to get database session."""
    yield from container.database.get_session()


def get_repository_service(
    container: Container = Depends(get_container),
    db_session: Session = Depends(get_db_session),
) -> RepositoryManagementService:
    return container.build_repository_service(db_session)


def resolve_time_period(
    time_period: Optional[int] = Query(None, alias="timePeriod", ge=1, le=365),
    container: Container = Depends(get_container),
) -> int:
    """Requested window in days, or the configured default."""
    if time_period is None:
        return container.settings.default_time_period_days
    return time_period


def require_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: Container = Depends(get_container),
) -> str:
    """Check the bearer token and return the authenticated principal."""
    expected = container.settings.api_token

    if credentials is None or not expected or not secrets.compare_digest(
        credentials.credentials.encode(), expected.encode()
    ):
        logger.warning("Authentication failed", extra={"path": request.url.path})
        raise AuthenticationError()

    principal = "api-client"
    request.state.principal = principal
    return principal
