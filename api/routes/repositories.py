"""
Routes for the GitHub repositories tracked by the dashboard.
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import get_repository_service, require_principal
from core.repositories import RepositoryManagementService, RepositoryStatus
from utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["repositories"])


class CredentialsModel(BaseModel):
    """Credentials used to confirm access to a private repository."""
    type: Literal["token", "oauth"]
    value: str = Field(..., min_length=1)


class RepositoryCreateRequest(BaseModel):
    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    credentials: Optional[CredentialsModel] = None


class StatusUpdateRequest(BaseModel):
    status: RepositoryStatus


class SettingsUpdateRequest(BaseModel):
    syncEnabled: Optional[bool] = None
    syncInterval: Optional[int] = Field(None, ge=1)
    branchPatterns: Optional[List[str]] = None
    labelPatterns: Optional[List[str]] = None


@router.post("/repositories", status_code=201)
async def add_repository(
    request: RepositoryCreateRequest,
    principal: str = Depends(require_principal),
    service: RepositoryManagementService = Depends(get_repository_service),
):
    """Validate a repository against GitHub and start tracking it."""
    credentials = request.credentials
    repository = await service.add_repository(
        request.owner,
        request.name,
        credentials_type=credentials.type if credentials else None,
        token=credentials.value if credentials else None,
    )
    return {"success": True, "data": {"repository": repository.to_dict()}}


@router.get("/repositories")
async def list_repositories(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, alias="pageSize", ge=1, le=100),
    status: Optional[RepositoryStatus] = None,
    owner: Optional[str] = None,
    search: Optional[str] = None,
    sync_enabled: Optional[bool] = Query(None, alias="syncEnabled"),
    sort_field: Literal["createdAt", "updatedAt", "fullName", "lastSyncAt"] = Query("createdAt", alias="sortField"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    principal: str = Depends(require_principal),
    service: RepositoryManagementService = Depends(get_repository_service),
):
    result = service.list_repositories(
        page=page,
        page_size=page_size,
        status=status.value if status else None,
        owner=owner,
        search=search,
        sync_enabled=sync_enabled,
        sort_field=sort_field,
        sort_order=sort_order,
    )
    result["items"] = [repository.to_dict() for repository in result["items"]]
    return {"success": True, "data": result}


@router.get("/repositories/{repo_id}")
async def get_repository(
    repo_id: int,
    principal: str = Depends(require_principal),
    service: RepositoryManagementService = Depends(get_repository_service),
):
    repository = service.get_repository(repo_id)
    return {"success": True, "data": {"repository": repository.to_dict()}}


@router.delete("/repositories/{repo_id}")
async def remove_repository(
    repo_id: int,
    principal: str = Depends(require_principal),
    service: RepositoryManagementService = Depends(get_repository_service),
):
    """Archive a repository; its stored metrics are kept."""
    service.remove_repository(repo_id)
    return {"success": True, "message": "Repository archived successfully"}


@router.patch("/repositories/{repo_id}/status")
async def update_repository_status(
    repo_id: int,
    request: StatusUpdateRequest,
    principal: str = Depends(require_principal),
    service: RepositoryManagementService = Depends(get_repository_service),
):
    repository = service.update_repository_status(repo_id, request.status)
    return {"success": True, "data": {"repository": repository.to_dict()}}


@router.patch("/repositories/{repo_id}/settings")
async def update_repository_settings(
    repo_id: int,
    request: SettingsUpdateRequest,
    principal: str = Depends(require_principal),
    service: RepositoryManagementService = Depends(get_repository_service),
):
    repository = service.update_repository_settings(repo_id, {
        "sync_enabled": request.syncEnabled,
        "sync_interval": request.syncInterval,
        "branch_patterns": request.branchPatterns,
        "label_patterns": request.labelPatterns,
    })
    logger.info("Repository settings updated", extra={"repository_id": repo_id, "principal": principal})
    return {"success": True, "data": {"repository": repository.to_dict()}}
