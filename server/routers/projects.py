"""Project routes."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from core.container import container
from core.logging import get_logger
from middleware.auth import current_user_id
from services.projects import ProjectService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[Literal["active", "archived"]] = None


def get_project_service() -> ProjectService:
    return container.project_service()


@router.get("")
async def list_projects(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user_id),
    projects: ProjectService = Depends(get_project_service)
):
    """Get the caller's projects, newest first."""
    result = await projects.list_for_user(user_id, page=page, limit=limit)
    return {"success": True, **result}


@router.post("", status_code=201)
async def create_project(
    request: ProjectCreateRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectService = Depends(get_project_service)
):
    project = await projects.create(user_id, request.name.strip(), request.description)
    return {"success": True, "project": project}


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectService = Depends(get_project_service)
):
    project = await projects.get(project_id, user_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True, "project": project}


@router.put("/{project_id}")
async def update_project(
    project_id: str,
    request: ProjectUpdateRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectService = Depends(get_project_service)
):
    project = await projects.update(project_id, user_id, request.model_dump(exclude_unset=True))
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True, "project": project}


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectService = Depends(get_project_service)
):
    if not await projects.delete(project_id, user_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True, "message": "Project deleted successfully"}
