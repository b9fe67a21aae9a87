"""Volumetric video and frame routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from constants import MAX_FRAME_NUMBER
from core.container import container
from middleware.auth import current_user_id
from services.volumetric import VolumetricVideoService

router = APIRouter(prefix="/api/volumetric-video", tags=["volumetric-video"])


class VideoCreateRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(min_length=1)
    video_path: str = Field(min_length=1, max_length=1024)
    frame_count: Optional[int] = Field(default=None, ge=0)
    fps: Optional[float] = Field(default=None, ge=0)
    resolution_width: Optional[int] = Field(default=None, ge=0)
    resolution_height: Optional[int] = Field(default=None, ge=0)
    format: Optional[str] = Field(default=None, max_length=50)
    metadata: Optional[Dict[str, Any]] = None


class FrameRequest(BaseModel):
    frame_number: int = Field(ge=0, le=MAX_FRAME_NUMBER)
    frame_path: str = Field(min_length=1, max_length=1024)
    timestamp: Optional[float] = None


def get_volumetric_service() -> VolumetricVideoService:
    return container.volumetric_video_service()


@router.post("/videos", status_code=201)
async def create_video(
    request: VideoCreateRequest,
    user_id: str = Depends(current_user_id),
    videos: VolumetricVideoService = Depends(get_volumetric_service)
):
    video = await videos.create(
        request.model_id, user_id, request.model_dump(exclude={"model_id"})
    )
    if not video:
        raise HTTPException(status_code=404, detail="Model not found")
    return {"success": True, "video": video}


@router.get("/models/{model_id}/video")
async def get_model_video(
    model_id: str,
    user_id: str = Depends(current_user_id),
    videos: VolumetricVideoService = Depends(get_volumetric_service)
):
    """Newest volumetric video of one of the caller's models."""
    video = await videos.get_for_model(model_id, user_id)
    if not video:
        raise HTTPException(status_code=404, detail="Volumetric video not found")
    return {"success": True, "video": video}


@router.get("/videos/{video_id}")
async def get_video(
    video_id: str,
    user_id: str = Depends(current_user_id),
    videos: VolumetricVideoService = Depends(get_volumetric_service)
):
    video = await videos.get(video_id, user_id)
    if not video:
        raise HTTPException(status_code=404, detail="Volumetric video not found")
    return {"success": True, "video": video}


@router.get("/videos/{video_id}/frames")
async def list_frames(
    video_id: str,
    start_frame: Optional[str] = Query(default=None),
    end_frame: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user_id),
    videos: VolumetricVideoService = Depends(get_volumetric_service)
):
    result = await videos.list_frames(video_id, user_id, start_frame, end_frame, limit)
    if result is None:
        raise HTTPException(status_code=404, detail="Volumetric video not found")
    return {"success": True, **result}


@router.post("/videos/{video_id}/frames", status_code=201)
async def add_frame(
    video_id: str,
    request: FrameRequest,
    user_id: str = Depends(current_user_id),
    videos: VolumetricVideoService = Depends(get_volumetric_service)
):
    frame = await videos.add_frame(
        video_id, user_id, request.frame_number, request.frame_path, request.timestamp
    )
    if not frame:
        raise HTTPException(status_code=404, detail="Volumetric video not found")
    return {"success": True, "frame": frame}


@router.delete("/videos/{video_id}")
async def delete_video(
    video_id: str,
    user_id: str = Depends(current_user_id),
    videos: VolumetricVideoService = Depends(get_volumetric_service)
):
    if not await videos.delete(video_id, user_id):
        raise HTTPException(status_code=404, detail="Volumetric video not found")
    return {"success": True, "message": "Volumetric video deleted successfully"}
