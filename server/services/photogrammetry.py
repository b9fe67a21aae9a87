"""Photogrammetry job records. Reconstruction itself runs elsewhere."""

from typing import Any, Dict, List, Optional

from constants import PHOTOGRAMMETRY_STATUSES
from core.database import Database
from core.logging import get_logger
from models.database import PhotogrammetryProject

logger = get_logger(__name__)

# Fields an external reconstruction worker reports back
PROGRESS_FIELDS = ("processing_status", "output_mesh_path", "processing_log")


class PhotogrammetryValidationError(ValueError):
    """Rejected job update (unknown processing status)."""


def job_dict(job: PhotogrammetryProject, model_name: Optional[str] = None,
             model_path: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": job.id,
        "model_id": job.model_id,
        "project_id": job.project_id,
        "user_id": job.user_id,
        "reconstruction_method": job.reconstruction_method,
        "quality_settings": job.quality_settings,
        "input_images_count": job.input_images_count,
        "processing_status": job.processing_status,
        "output_mesh_path": job.output_mesh_path,
        "processing_log": job.processing_log,
        "model_name": model_name,
        "model_path": model_path,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
    }


class PhotogrammetryService:

    def __init__(self, database: Database):
        self.database = database

    async def create(self, model_id: str, user_id: str,
                     data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Open a pending job on an owned model; None if the model is not owned."""
        if not await self.database.model_exists(model_id, user_id):
            return None

        job = await self.database.create_photogrammetry_project(PhotogrammetryProject(
            model_id=model_id,
            user_id=user_id,
            project_id=data.get("project_id"),
            reconstruction_method=data.get("reconstruction_method") or "SfM",
            quality_settings=data.get("quality_settings"),
            input_images_count=data.get("input_images_count") or 0,
        ))

        logger.info("Photogrammetry job created", job_id=job.id, model_id=model_id)
        return job_dict(job)

    async def get(self, job_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        row = await self.database.get_photogrammetry_project(job_id, user_id)
        if not row:
            return None
        job, model_name, model_path = row
        return job_dict(job, model_name, model_path)

    async def list_for_model(self, model_id: str, user_id: str) -> Optional[List[Dict[str, Any]]]:
        """Jobs of an owned model, newest first; None if the model is not owned."""
        if not await self.database.model_exists(model_id, user_id):
            return None
        jobs = await self.database.list_photogrammetry_projects(model_id, user_id)
        return [job_dict(j) for j in jobs]

    async def update_progress(self, job_id: str, user_id: str,
                              fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Record worker progress. Only non-null progress fields are written."""
        changes = {k: v for k, v in fields.items() if k in PROGRESS_FIELDS and v is not None}
        status = changes.get("processing_status")
        if status is not None and status not in PHOTOGRAMMETRY_STATUSES:
            raise PhotogrammetryValidationError(f"Unknown processing status: {status}")

        job = await self.database.update_photogrammetry_project(job_id, user_id, changes)
        if not job:
            return None

        logger.info("Photogrammetry job updated", job_id=job_id, status=job.processing_status)
        return job_dict(job)
