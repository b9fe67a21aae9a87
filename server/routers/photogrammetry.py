"""Photogrammetry job routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from core.container import container
from middleware.auth import current_user_id
from services.photogrammetry import PhotogrammetryService, PhotogrammetryValidationError
from services.projects import ProjectService

router = APIRouter(prefix="/api/photogrammetry", tags=["photogrammetry"])


class JobCreateRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(min_length=1)
    project_id: Optional[str] = None
    reconstruction_method: Optional[str] = Field(default=None, max_length=50)
    quality_settings: Optional[Dict[str, Any]] = None
    input_images_count: Optional[int] = Field(default=None, ge=0)


class JobProgressRequest(BaseModel):
    processing_status: Optional[str] = Field(default=None, max_length=20)
    output_mesh_path: Optional[str] = Field(default=None, max_length=1024)
    processing_log: Optional[str] = None


def get_photogrammetry_service() -> PhotogrammetryService:
    return container.photogrammetry_service()


def get_project_service() -> ProjectService:
    return container.project_service()


@router.post("/projects", status_code=201)
async def create_job(
    request: JobCreateRequest,
    user_id: str = Depends(current_user_id),
    jobs: PhotogrammetryService = Depends(get_photogrammetry_service),
    projects: ProjectService = Depends(get_project_service)
):
    if request.project_id and not await projects.verify_ownership(request.project_id, user_id):
        raise HTTPException(status_code=404, detail="Project not found")

    job = await jobs.create(request.model_id, user_id, request.model_dump(exclude={"model_id"}))
    if not job:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "project": job}


@router.get("/models/{model_id}/projects")
async def list_model_jobs(
    model_id: str,
    user_id: str = Depends(current_user_id),
    jobs: PhotogrammetryService = Depends(get_photogrammetry_service)
):
    items = await jobs.list_for_model(model_id, user_id)
    if items is None:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "projects": items}


@router.get("/projects/{job_id}")
async def get_job(
    job_id: str,
    user_id: str = Depends(current_user_id),
    jobs: PhotogrammetryService = Depends(get_photogrammetry_service)
):
    job = await jobs.get(job_id, user_id)
    if not job:
        raise HTTPException(status_code=404, detail="Photogrammetry project not found")
    return {"success": True, "project": job}


@router.put("/projects/{job_id}")
async def update_job(
    job_id: str,
    request: JobProgressRequest,
    user_id: str = Depends(current_user_id),
    jobs: PhotogrammetryService = Depends(get_photogrammetry_service)
):
    try:
        job = await jobs.update_progress(job_id, user_id, request.model_dump())
    except PhotogrammetryValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not job:
        raise HTTPException(status_code=404, detail="Photogrammetry project not found")
    return {"success": True, "project": job}
