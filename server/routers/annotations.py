"""Annotation and annotation image routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from core.container import container
from core.logging import get_logger
from middleware.auth import current_user_id
from services.annotations import AnnotationService
from services.model_store import ModelService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/annotations", tags=["annotations"])


class AnnotationCreateRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(min_length=1)
    position_x: float
    position_y: float
    position_z: float
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    normal_x: Optional[float] = None
    normal_y: Optional[float] = None
    normal_z: Optional[float] = None
    color: Optional[str] = Field(default=None, max_length=32)
    annotation_type: Optional[str] = Field(default=None, max_length=50)
    measurement_value: Optional[float] = None
    measurement_unit: Optional[str] = Field(default=None, max_length=20)
    priority: Optional[str] = Field(default=None, max_length=20)


class AnnotationUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    position_z: Optional[float] = None
    color: Optional[str] = Field(default=None, max_length=32)
    status: Optional[str] = Field(default=None, max_length=20)
    priority: Optional[str] = Field(default=None, max_length=20)
    measurement_value: Optional[float] = None
    measurement_unit: Optional[str] = Field(default=None, max_length=20)


class AnnotationImageRequest(BaseModel):
    image_path: str = Field(min_length=1, max_length=1024)
    image_name: Optional[str] = Field(default=None, max_length=255)
    image_identifier: Optional[str] = Field(default=None, max_length=255)
    thumbnail_path: Optional[str] = Field(default=None, max_length=1024)
    camera_position_x: Optional[float] = None
    camera_position_y: Optional[float] = None
    camera_position_z: Optional[float] = None
    display_order: int = 0


def get_annotation_service() -> AnnotationService:
    return container.annotation_service()


def get_model_service() -> ModelService:
    return container.model_service()


@router.get("/model/{model_id}")
async def list_model_annotations(
    model_id: str,
    user_id: str = Depends(current_user_id),
    annotations: AnnotationService = Depends(get_annotation_service),
    models: ModelService = Depends(get_model_service)
):
    """Get every annotation on one of the caller's models, with images."""
    if not await models.verify_ownership(model_id, user_id):
        raise HTTPException(status_code=404, detail="Model not found")

    items = await annotations.list_for_model(model_id)
    return {"success": True, "annotations": items}


@router.post("", status_code=201)
async def create_annotation(
    request: AnnotationCreateRequest,
    user_id: str = Depends(current_user_id),
    annotations: AnnotationService = Depends(get_annotation_service),
    models: ModelService = Depends(get_model_service)
):
    if not await models.verify_ownership(request.model_id, user_id):
        raise HTTPException(status_code=404, detail="Model not found")

    annotation = await annotations.create(
        request.model_id, user_id, request.model_dump(exclude={"model_id"})
    )
    return {"success": True, "annotation": annotation}


# Declared before /{annotation_id} so "images" is not read as an id
@router.delete("/images/{image_id}")
async def delete_annotation_image(
    image_id: str,
    user_id: str = Depends(current_user_id),
    annotations: AnnotationService = Depends(get_annotation_service)
):
    if not await annotations.delete_image(image_id, user_id):
        raise HTTPException(status_code=404, detail="Image not found")
    return {"success": True, "message": "Image deleted successfully"}


@router.get("/{annotation_id}")
async def get_annotation(
    annotation_id: str,
    user_id: str = Depends(current_user_id),
    annotations: AnnotationService = Depends(get_annotation_service)
):
    annotation = await annotations.get(annotation_id, user_id)
    if not annotation:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return {"success": True, "annotation": annotation}


@router.put("/{annotation_id}")
async def update_annotation(
    annotation_id: str,
    request: AnnotationUpdateRequest,
    user_id: str = Depends(current_user_id),
    annotations: AnnotationService = Depends(get_annotation_service)
):
    annotation = await annotations.update(
        annotation_id, user_id, request.model_dump(exclude_unset=True)
    )
    if not annotation:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return {"success": True, "annotation": annotation}


@router.delete("/{annotation_id}")
async def delete_annotation(
    annotation_id: str,
    user_id: str = Depends(current_user_id),
    annotations: AnnotationService = Depends(get_annotation_service)
):
    if not await annotations.delete(annotation_id, user_id):
        raise HTTPException(status_code=404, detail="Annotation not found")
    return {"success": True, "message": "Annotation deleted successfully"}


@router.post("/{annotation_id}/images", status_code=201)
async def add_annotation_image(
    annotation_id: str,
    request: AnnotationImageRequest,
    user_id: str = Depends(current_user_id),
    annotations: AnnotationService = Depends(get_annotation_service)
):
    if not await annotations.verify_ownership(annotation_id, user_id):
        raise HTTPException(status_code=404, detail="Annotation not found")

    image = await annotations.add_image(annotation_id, user_id, request.model_dump())
    if not image:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return {"success": True, "image": image}
