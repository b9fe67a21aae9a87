"""Model record, georeferencing and coordinate conversion routes."""

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from constants import MODEL_TYPES
from core.container import container
from core.logging import get_logger
from middleware.auth import current_user_id
from services.georeferencing import (
    GeoCoordinate, GeoreferencingService, Point3D, to_geographic, to_local,
)
from services.model_store import ModelService, ModelValidationError

logger = get_logger(__name__)
router = APIRouter(prefix="/api/models", tags=["models"])


class ModelCreateRequest(BaseModel):
    """Registers a file already placed in the upload directory."""
    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(min_length=1, max_length=255)
    file_path: str = Field(min_length=1, max_length=1024)
    file_type: str = Field(min_length=1, max_length=16)
    project_id: str = Field(min_length=1)
    description: Optional[str] = Field(default=None, max_length=2000)
    file_size: Optional[int] = Field(default=None, ge=0)
    crs: Optional[str] = Field(default=None, max_length=100)
    origin_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    origin_lon: Optional[float] = Field(default=None, ge=-180, le=180)
    origin_altitude: Optional[float] = None
    transform_matrix: Optional[List[float]] = None
    model_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ModelUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    project_id: Optional[str] = None


class GeoreferencingRequest(BaseModel):
    """Full replacement: omitted fields are cleared."""
    crs: Optional[str] = Field(default=None, max_length=100)
    origin_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    origin_lon: Optional[float] = Field(default=None, ge=-180, le=180)
    origin_altitude: Optional[float] = None
    transform_matrix: Optional[List[float]] = None


class ConvertCoordinatesRequest(BaseModel):
    direction: Literal["to-geographic", "to-local"]
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    altitude: Optional[float] = None


def get_model_service() -> ModelService:
    return container.model_service()


def get_georeferencing_service() -> GeoreferencingService:
    return container.georeferencing_service()


@router.get("")
async def list_models(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user_id),
    models: ModelService = Depends(get_model_service)
):
    """Get the caller's models with project names, newest first."""
    result = await models.list_for_user(user_id, page=page, limit=limit)
    return {"success": True, **result}


@router.get("/stats")
async def get_model_stats(
    user_id: str = Depends(current_user_id),
    models: ModelService = Depends(get_model_service)
):
    return {"success": True, "stats": await models.stats(user_id)}


@router.post("", status_code=201)
async def create_model(
    request: ModelCreateRequest,
    user_id: str = Depends(current_user_id),
    models: ModelService = Depends(get_model_service)
):
    if request.model_type is not None and request.model_type not in MODEL_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown model type: {request.model_type}")

    try:
        model = await models.create(user_id, **request.model_dump())
    except ModelValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "model": model}


@router.get("/{model_id}")
async def get_model(
    model_id: str,
    user_id: str = Depends(current_user_id),
    models: ModelService = Depends(get_model_service)
):
    model = await models.get(model_id, user_id)
    if not model:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "model": model}


@router.put("/{model_id}")
async def update_model(
    model_id: str,
    request: ModelUpdateRequest,
    user_id: str = Depends(current_user_id),
    models: ModelService = Depends(get_model_service)
):
    try:
        model = await models.update(model_id, user_id, request.model_dump(exclude_unset=True))
    except ModelValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not model:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "model": model}


@router.delete("/{model_id}")
async def delete_model(
    model_id: str,
    user_id: str = Depends(current_user_id),
    models: ModelService = Depends(get_model_service)
):
    if not await models.delete(model_id, user_id):
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "message": "Model deleted successfully"}


# ============================================================================
# Georeferencing
# ============================================================================

@router.get("/{model_id}/georeferencing")
async def get_georeferencing(
    model_id: str,
    user_id: str = Depends(current_user_id),
    georeferencing: GeoreferencingService = Depends(get_georeferencing_service)
):
    georef = await georeferencing.get_georeferencing(model_id, user_id)
    if not georef:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "georeferencing": georef}


@router.put("/{model_id}/georeferencing")
async def update_georeferencing(
    model_id: str,
    request: GeoreferencingRequest,
    user_id: str = Depends(current_user_id),
    georeferencing: GeoreferencingService = Depends(get_georeferencing_service)
):
    """Overwrite a model's georeferencing; other users' models read as missing."""
    georef = await georeferencing.update_georeferencing(model_id, user_id, **request.model_dump())
    if not georef:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "georeferencing": georef}


@router.post("/{model_id}/convert-coordinates")
async def convert_coordinates(
    model_id: str,
    request: ConvertCoordinatesRequest,
    user_id: str = Depends(current_user_id),
    georeferencing: GeoreferencingService = Depends(get_georeferencing_service)
):
    """Convert between model-local XYZ and latitude/longitude/altitude."""
    origin = await georeferencing.get_origin(model_id, user_id)
    if origin is None:
        raise HTTPException(status_code=404, detail="Model not found")

    if request.direction == "to-geographic":
        if request.x is None or request.y is None or request.z is None:
            raise HTTPException(status_code=400, detail="x, y and z are required for to-geographic")
        converted = to_geographic(origin, Point3D(x=request.x, y=request.y, z=request.z))
    else:
        if request.lat is None or request.lon is None:
            raise HTTPException(status_code=400, detail="lat and lon are required for to-local")
        converted = to_local(
            origin,
            GeoCoordinate(latitude=request.lat, longitude=request.lon,
                          altitude=request.altitude if request.altitude is not None else 0.0)
        )

    if converted is None:
        raise HTTPException(status_code=400, detail="Model is not georeferenced")
    return {"success": True, "direction": request.direction, "result": converted.to_dict()}
