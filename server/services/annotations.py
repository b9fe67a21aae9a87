"""Annotations on models and their attached reference images."""

from collections import defaultdict
from typing import Any, Dict, List, Optional

from core.cache import QueryCache, annotation_list_key
from core.config import Settings
from core.database import Database
from core.logging import get_logger
from models.database import Annotation, AnnotationImage
from services.georeferencing import GeoreferencingService, Point3D

logger = get_logger(__name__)

UPDATABLE_FIELDS = (
    "title", "description", "position_x", "position_y", "position_z",
    "color", "status", "priority", "measurement_value", "measurement_unit",
)

POSITION_FIELDS = frozenset(["position_x", "position_y", "position_z"])

# Non-nullable columns; an explicit null in an update leaves them untouched
REQUIRED_FIELDS = frozenset([
    "position_x", "position_y", "position_z",
    "color", "status", "priority", "measurement_unit",
])


def image_dict(image: AnnotationImage) -> Dict[str, Any]:
    return {
        "id": image.id,
        "annotation_id": image.annotation_id,
        "image_path": image.image_path,
        "image_name": image.image_name,
        "image_identifier": image.image_identifier,
        "thumbnail_path": image.thumbnail_path,
        "camera_position_x": image.camera_position_x,
        "camera_position_y": image.camera_position_y,
        "camera_position_z": image.camera_position_z,
        "display_order": image.display_order,
        "uploaded_by": image.uploaded_by,
        "created_at": image.created_at,
    }


def annotation_dict(annotation: Annotation,
                    images: Optional[List[AnnotationImage]] = None) -> Dict[str, Any]:
    data = {
        "id": annotation.id,
        "model_id": annotation.model_id,
        "user_id": annotation.user_id,
        "title": annotation.title,
        "description": annotation.description,
        "position_x": annotation.position_x,
        "position_y": annotation.position_y,
        "position_z": annotation.position_z,
        "normal_x": annotation.normal_x,
        "normal_y": annotation.normal_y,
        "normal_z": annotation.normal_z,
        "color": annotation.color,
        "annotation_type": annotation.annotation_type,
        "measurement_value": annotation.measurement_value,
        "measurement_unit": annotation.measurement_unit,
        "priority": annotation.priority,
        "status": annotation.status,
        "latitude": annotation.latitude,
        "longitude": annotation.longitude,
        "altitude": annotation.altitude,
        "georeferenced": annotation.georeferenced,
        "created_at": annotation.created_at,
        "updated_at": annotation.updated_at,
    }
    if images is not None:
        data["images"] = [image_dict(i) for i in images]
        data["image_count"] = len(images)
    return data


class AnnotationService:
    """Annotation CRUD; list reads are cached per model."""

    def __init__(self, database: Database, cache: QueryCache,
                 georeferencing: GeoreferencingService, settings: Settings):
        self.database = database
        self.cache = cache
        self.georeferencing = georeferencing
        self.settings = settings

    async def _images_by_annotation(self, annotation_ids: List[str]) -> Dict[str, List[AnnotationImage]]:
        grouped: Dict[str, List[AnnotationImage]] = defaultdict(list)
        for image in await self.database.list_annotation_images(annotation_ids):
            grouped[image.annotation_id].append(image)
        return grouped

    async def list_for_model(self, model_id: str, use_cache: bool = True) -> List[Dict[str, Any]]:
        """All annotations of a model, newest first, each with its images.

        Callers check model ownership first.
        """
        cache_key = annotation_list_key(model_id)
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        annotations = await self.database.list_annotations(model_id)
        images = await self._images_by_annotation([a.id for a in annotations])
        result = [annotation_dict(a, images.get(a.id, [])) for a in annotations]

        if use_cache:
            self.cache.set(cache_key, result, self.settings.annotation_cache_ttl)
        return result

    async def get(self, annotation_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        annotation = await self.database.get_annotation(annotation_id, user_id)
        if not annotation:
            return None
        images = await self._images_by_annotation([annotation.id])
        return annotation_dict(annotation, images.get(annotation.id, []))

    async def create(self, model_id: str, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create an annotation on an owned model.

        Geographic fields are filled from the model origin when the model is
        georeferenced; otherwise they stay empty.
        """
        coordinates = await self.georeferencing.annotation_coordinates(
            model_id, user_id,
            Point3D(x=data["position_x"], y=data["position_y"], z=data["position_z"]),
        )
        optional = {
            key: data[key]
            for key in ("color", "annotation_type", "measurement_unit", "priority")
            if data.get(key)
        }

        annotation = await self.database.create_annotation(Annotation(
            model_id=model_id,
            user_id=user_id,
            title=data.get("title"),
            description=data.get("description"),
            normal_x=data.get("normal_x"),
            normal_y=data.get("normal_y"),
            normal_z=data.get("normal_z"),
            measurement_value=data.get("measurement_value"),
            **coordinates,
            **optional,
        ))

        self.cache.invalidate(annotation_list_key(model_id))
        logger.info("Annotation created", annotation_id=annotation.id, model_id=model_id,
                    georeferenced=annotation.georeferenced)
        return annotation_dict(annotation)

    async def update(self, annotation_id: str, user_id: str,
                     fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply a partial update to an owned annotation.

        Moving the annotation recomputes its geographic fields from the
        model's current origin.
        """
        changes = {
            k: v for k, v in fields.items()
            if k in UPDATABLE_FIELDS and not (v is None and k in REQUIRED_FIELDS)
        }

        if POSITION_FIELDS.intersection(changes):
            current = await self.database.get_annotation(annotation_id, user_id)
            if not current:
                return None
            changes.update(await self.georeferencing.annotation_coordinates(
                current.model_id, user_id,
                Point3D(
                    x=changes.get("position_x", current.position_x),
                    y=changes.get("position_y", current.position_y),
                    z=changes.get("position_z", current.position_z),
                ),
            ))

        annotation = await self.database.update_annotation(annotation_id, user_id, changes)
        if not annotation:
            return None

        self.cache.invalidate(annotation_list_key(annotation.model_id))
        return annotation_dict(annotation)

    async def delete(self, annotation_id: str, user_id: str) -> bool:
        annotation = await self.database.delete_annotation(annotation_id, user_id)
        if not annotation:
            return False

        self.cache.invalidate(annotation_list_key(annotation.model_id))
        return True

    async def verify_ownership(self, annotation_id: str, user_id: str) -> bool:
        return await self.database.annotation_exists(annotation_id, user_id)

    async def add_image(self, annotation_id: str, user_id: str,
                        data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Attach an image to an owned annotation; None if not owned."""
        annotation = await self.database.get_annotation(annotation_id, user_id)
        if not annotation:
            return None

        image = await self.database.add_annotation_image(AnnotationImage(
            annotation_id=annotation_id,
            image_path=data["image_path"],
            image_name=data.get("image_name"),
            image_identifier=data.get("image_identifier"),
            thumbnail_path=data.get("thumbnail_path"),
            camera_position_x=data.get("camera_position_x"),
            camera_position_y=data.get("camera_position_y"),
            camera_position_z=data.get("camera_position_z"),
            display_order=data.get("display_order") or 0,
            uploaded_by=user_id,
        ))

        self.cache.invalidate(annotation_list_key(annotation.model_id))
        return image_dict(image)

    async def delete_image(self, image_id: str, user_id: str) -> bool:
        model_id = await self.database.delete_annotation_image(image_id, user_id)
        if model_id is None:
            return False

        self.cache.invalidate(annotation_list_key(model_id))
        return True
