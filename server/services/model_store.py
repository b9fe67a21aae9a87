"""3D model records: cached listing, registration, updates and deletion."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from constants import ALLOWED_EXTENSIONS, detect_model_type, normalize_extension
from core.cache import QueryCache, annotation_list_key, model_list_key, model_list_prefix
from core.config import Settings
from core.database import Database
from core.logging import get_logger
from models.database import Model3D
from services.pagination import normalize_page, page_offset, pagination_info

logger = get_logger(__name__)


class ModelValidationError(ValueError):
    """Rejected model registration (bad extension, size or project)."""


def model_dict(model: Model3D, project_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": model.id,
        "name": model.name,
        "description": model.description,
        "file_path": model.file_path,
        "file_size": model.file_size,
        "file_type": model.file_type,
        "project_id": model.project_id,
        "project_name": project_name,
        "user_id": model.user_id,
        "crs": model.crs,
        "origin_lat": model.origin_lat,
        "origin_lon": model.origin_lon,
        "origin_altitude": model.origin_altitude,
        "transform_matrix": model.transform_matrix,
        "model_type": model.model_type,
        "metadata": model.extra_metadata,
        "created_at": model.created_at,
        "updated_at": model.updated_at,
    }


class ModelService:
    """Model records scoped to their owner."""

    def __init__(self, database: Database, cache: QueryCache, settings: Settings):
        self.database = database
        self.cache = cache
        self.settings = settings

    async def list_for_user(self, user_id: str, page: Any = 1, limit: Any = None,
                            use_cache: bool = True) -> Dict[str, Any]:
        """One page of the user's models (with project names) plus pagination info."""
        safe_page, safe_limit = normalize_page(page, limit)
        cache_key = model_list_key(user_id, safe_page, safe_limit)

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        total = await self.database.count_models(user_id)
        rows = await self.database.list_models(
            user_id, page_offset(safe_page, safe_limit), safe_limit
        )

        result = {
            "models": [model_dict(model, project_name) for model, project_name in rows],
            "pagination": pagination_info(safe_page, safe_limit, total),
        }

        if use_cache:
            self.cache.set(cache_key, result, self.settings.model_list_cache_ttl)
        return result

    async def get(self, model_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        row = await self.database.get_model(model_id, user_id)
        if not row:
            return None
        model, project_name = row
        return model_dict(model, project_name)

    async def create(self, user_id: str, *, name: str, file_path: str, file_type: str,
                     project_id: str, description: Optional[str] = None,
                     file_size: Optional[int] = None, crs: Optional[str] = None,
                     origin_lat: Optional[float] = None, origin_lon: Optional[float] = None,
                     origin_altitude: Optional[float] = None,
                     transform_matrix: Optional[List[float]] = None,
                     model_type: Optional[str] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Register a stored model file under one of the user's projects.

        Raises ModelValidationError for an unsupported extension, an oversized
        file, or a project the user does not own.
        """
        ext = normalize_extension(file_type)
        if ext not in ALLOWED_EXTENSIONS:
            raise ModelValidationError(
                f"Invalid file type. Supported formats: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )
        if file_size is not None and file_size > self.settings.max_file_size:
            raise ModelValidationError("File exceeds the maximum allowed size")

        project = await self.database.get_project(project_id, user_id)
        if not project:
            raise ModelValidationError("Project not found or you do not have access to it")

        model = await self.database.create_model(Model3D(
            name=name,
            description=description or None,
            file_path=file_path,
            file_size=file_size,
            file_type=ext,
            project_id=project_id,
            user_id=user_id,
            crs=crs,
            origin_lat=origin_lat,
            origin_lon=origin_lon,
            origin_altitude=origin_altitude,
            transform_matrix=transform_matrix,
            model_type=detect_model_type(ext, model_type),
            extra_metadata=metadata,
        ))

        self.cache.invalidate(model_list_prefix(user_id))
        logger.info("Model registered", model_id=model.id, user_id=user_id,
                    file_type=ext, model_type=model.model_type)
        return model_dict(model, project.name)

    async def update(self, model_id: str, user_id: str,
                     fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update name, description and (optionally) project; None if not owned."""
        changes = {
            k: v for k, v in fields.items()
            if k == "description" or (k == "name" and v is not None)
        }
        if "project_id" in fields:
            project_id = fields["project_id"]
            if project_id and not await self.database.get_project(project_id, user_id):
                raise ModelValidationError("Project not found or you do not have access to it")
            changes["project_id"] = project_id or None

        model = await self.database.update_model_fields(model_id, user_id, changes)
        if not model:
            return None

        self.cache.invalidate(model_list_prefix(user_id))
        return await self.get(model_id, user_id)

    async def delete(self, model_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Delete the record, its annotations, and the stored file if present."""
        model = await self.database.delete_model(model_id, user_id)
        if not model:
            return None

        self.cache.invalidate(model_list_prefix(user_id))
        self.cache.invalidate(annotation_list_key(model_id))
        self._remove_file(model.file_path)
        logger.info("Model deleted", model_id=model_id, user_id=user_id)
        return {"id": model.id, "file_path": model.file_path}

    def _remove_file(self, file_path: str) -> None:
        if not file_path:
            return
        upload_dir = Path(self.settings.upload_dir).resolve()
        target = (upload_dir / Path(file_path).name).resolve()
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            # The record is gone either way
            logger.warning("Failed to delete model file", file_path=str(target), error=str(e))

    async def verify_ownership(self, model_id: str, user_id: str) -> bool:
        return await self.database.model_exists(model_id, user_id)

    async def stats(self, user_id: str) -> Dict[str, int]:
        return await self.database.model_stats(user_id)
