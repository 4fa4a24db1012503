"""
Metrics API routes: the progress stream plus the persisted-metrics endpoints.
"""
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.dependencies import get_container, get_db_session, require_principal, resolve_time_period
from core.container import Container
from core.streaming import SSE_HEADERS, QueueSink
from utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["metrics"])


class StoredMetricsResponse(BaseModel):
    """Response model for a page of persisted metrics."""
    metrics: List[Dict[str, Any]]
    page: int
    pageSize: int
    total: int


class SyncResponse(BaseModel):
    """Response model for a metrics sync run."""
    stored: int
    errors: List[Dict[str, str]]
    sourceStats: Dict[str, int]
    status: int


class ResetResponse(BaseModel):
    deleted: int


def _tracked_repository(container: Container, db_session: Session,
                        repository_id: Optional[int]) -> Optional[Tuple[str, str]]:
    """Resolve a tracked repository id to an (owner, name) pair."""
    if repository_id is None:
        return None
    repository = container.build_repository_service(db_session).get_active_repository(repository_id)
    return repository.owner, repository.name


@router.get("/metrics")
async def stream_metrics(
    time_period: int = Depends(resolve_time_period),
    repository_id: Optional[int] = Query(None, alias="repositoryId", ge=1),
    principal: str = Depends(require_principal),
    container: Container = Depends(get_container),
    db_session: Session = Depends(get_db_session),
):
    """Stream aggregation progress and the final result as server-sent events."""
    repository = _tracked_repository(container, db_session, repository_id)
    connection_id = f"metrics-{uuid4().hex}"
    sink = QueueSink()
    channel = container.channel
    task = container.metrics_controller.start_request(connection_id, sink, time_period,
                                                      repository=repository)

    logger.info("Metrics stream requested",
                extra={"connection_id": connection_id, "principal": principal,
                       "time_period_days": time_period, "repository_id": repository_id})

    async def event_stream():
        finished = False
        try:
            async for chunk in sink.stream():
                yield chunk
            finished = True
        finally:
            # the client went away before the channel closed
            if not finished and not channel.notify_client_disconnect(connection_id):
                task.cancel()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/metrics/stored", response_model=StoredMetricsResponse)
async def get_stored_metrics(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, alias="pageSize", ge=1, le=500),
    principal: str = Depends(require_principal),
    container: Container = Depends(get_container),
    db_session: Session = Depends(get_db_session),
):
    """Get a page of persisted metrics, newest first."""
    service = container.build_metrics_service(db_session)
    return service.get_stored_metrics(page, page_size)


@router.post("/metrics/sync", response_model=SyncResponse)
async def sync_metrics(
    time_period: int = Depends(resolve_time_period),
    repository_id: Optional[int] = Query(None, alias="repositoryId", ge=1),
    principal: str = Depends(require_principal),
    container: Container = Depends(get_container),
    db_session: Session = Depends(get_db_session),
):
    """Aggregate both sources and persist the merged metrics."""
    repository = _tracked_repository(container, db_session, repository_id)
    service = container.build_metrics_service(db_session, repository=repository)
    summary = await service.sync_metrics(time_period)
    if repository_id is not None:
        container.build_repository_service(db_session).mark_synced(repository_id)
    return JSONResponse(status_code=summary["status"], content=summary)


@router.post("/metrics/reset-database", response_model=ResetResponse)
async def reset_database(
    principal: str = Depends(require_principal),
    container: Container = Depends(get_container),
    db_session: Session = Depends(get_db_session),
):
    """Delete every persisted metric and drop cached source results."""
    service = container.build_metrics_service(db_session)
    deleted = await service.reset_database()
    logger.warning("Metrics database reset via API", extra={"principal": principal, "deleted": deleted})
    return {"deleted": deleted}
