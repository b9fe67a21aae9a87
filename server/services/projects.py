"""Project CRUD with cached paginated listing."""

from typing import Any, Dict, Optional

from core.cache import QueryCache, project_list_key, project_list_prefix, model_list_prefix
from core.config import Settings
from core.database import Database
from core.logging import get_logger
from models.database import Project
from services.pagination import normalize_page, page_offset, pagination_info

logger = get_logger(__name__)


def project_dict(project: Project) -> Dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "status": project.status,
        "user_id": project.user_id,
        "created_at": project.created_at,
        "updated_at": project.updated_at,
    }


class ProjectService:
    """Projects scoped to their owner."""

    def __init__(self, database: Database, cache: QueryCache, settings: Settings):
        self.database = database
        self.cache = cache
        self.settings = settings

    async def list_for_user(self, user_id: str, page: Any = 1, limit: Any = None,
                            use_cache: bool = True) -> Dict[str, Any]:
        """One page of the user's projects plus pagination info."""
        safe_page, safe_limit = normalize_page(page, limit)
        cache_key = project_list_key(user_id, safe_page, safe_limit)

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        total = await self.database.count_projects(user_id)
        projects = await self.database.list_projects(
            user_id, page_offset(safe_page, safe_limit), safe_limit
        )

        result = {
            "projects": [project_dict(p) for p in projects],
            "pagination": pagination_info(safe_page, safe_limit, total),
        }

        if use_cache:
            self.cache.set(cache_key, result, self.settings.project_list_cache_ttl)
        return result

    async def get(self, project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        project = await self.database.get_project(project_id, user_id)
        return project_dict(project) if project else None

    async def create(self, user_id: str, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        project = await self.database.create_project(
            Project(name=name, description=description or None, user_id=user_id)
        )
        self.cache.invalidate(project_list_prefix(user_id))
        logger.info("Project created", project_id=project.id, user_id=user_id)
        return project_dict(project)

    async def update(self, project_id: str, user_id: str,
                     fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply name/description/status changes; None if not owned."""
        allowed = {
            k: v for k, v in fields.items()
            if k == "description" or (k in ("name", "status") and v is not None)
        }
        project = await self.database.update_project(project_id, user_id, allowed)
        if not project:
            return None

        self.cache.invalidate(project_list_prefix(user_id))
        # Model listings embed project_name
        self.cache.invalidate(model_list_prefix(user_id))
        return project_dict(project)

    async def delete(self, project_id: str, user_id: str) -> bool:
        deleted = await self.database.delete_project(project_id, user_id)
        if deleted:
            self.cache.invalidate(project_list_prefix(user_id))
            self.cache.invalidate(model_list_prefix(user_id))
            logger.info("Project deleted", project_id=project_id, user_id=user_id)
        return deleted

    async def verify_ownership(self, project_id: str, user_id: str) -> bool:
        return await self.database.get_project(project_id, user_id) is not None
