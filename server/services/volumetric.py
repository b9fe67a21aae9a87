"""Volumetric video bookkeeping: frame-sequence captures attached to models."""

from typing import Any, Dict, Optional

from constants import (
    DEFAULT_FRAME_LIMIT, MAX_FRAME_LIMIT, MAX_FRAME_NUMBER, VOLUMETRIC_FORMAT_PLY_SEQUENCE,
)
from core.database import Database
from core.logging import get_logger
from models.database import VolumetricFrame, VolumetricVideo
from services.pagination import as_int

logger = get_logger(__name__)


def video_dict(video: VolumetricVideo, model_name: Optional[str] = None,
               model_path: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": video.id,
        "model_id": video.model_id,
        "user_id": video.user_id,
        "video_path": video.video_path,
        "frame_count": video.frame_count,
        "fps": video.fps,
        "resolution_width": video.resolution_width,
        "resolution_height": video.resolution_height,
        "format": video.format,
        "metadata": video.extra_metadata,
        "model_name": model_name,
        "model_path": model_path,
        "created_at": video.created_at,
        "updated_at": video.updated_at,
    }


def frame_dict(frame: VolumetricFrame) -> Dict[str, Any]:
    return {
        "id": frame.id,
        "volumetric_video_id": frame.volumetric_video_id,
        "frame_number": frame.frame_number,
        "frame_path": frame.frame_path,
        "timestamp": frame.timestamp,
    }


def _optional_bound(value: Any) -> Optional[int]:
    try:
        return min(max(int(value), 0), MAX_FRAME_NUMBER)
    except (TypeError, ValueError):
        return None


class VolumetricVideoService:
    """Videos and frames scoped to the owner of the underlying model."""

    def __init__(self, database: Database):
        self.database = database

    async def create(self, model_id: str, user_id: str,
                     data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Register a video on an owned model; None if the model is not owned.

        Zero or missing frame count, fps and resolution are stored as null.
        """
        if not await self.database.model_exists(model_id, user_id):
            return None

        video = await self.database.create_volumetric_video(VolumetricVideo(
            model_id=model_id,
            user_id=user_id,
            video_path=data["video_path"],
            frame_count=data.get("frame_count") or None,
            fps=data.get("fps") or None,
            resolution_width=data.get("resolution_width") or None,
            resolution_height=data.get("resolution_height") or None,
            format=data.get("format") or VOLUMETRIC_FORMAT_PLY_SEQUENCE,
            extra_metadata=data.get("metadata"),
        ))

        logger.info("Volumetric video created", video_id=video.id, model_id=model_id)
        return video_dict(video)

    async def get(self, video_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        row = await self.database.get_volumetric_video(video_id, user_id)
        if not row:
            return None
        video, model_name, model_path = row
        return video_dict(video, model_name, model_path)

    async def get_for_model(self, model_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Newest video registered on an owned model."""
        if not await self.database.model_exists(model_id, user_id):
            return None
        video = await self.database.latest_volumetric_video(model_id, user_id)
        return video_dict(video) if video else None

    async def list_frames(self, video_id: str, user_id: str, start_frame: Any = None,
                          end_frame: Any = None, limit: Any = None) -> Optional[Dict[str, Any]]:
        """Frames of an owned video within an inclusive frame-number range.

        Returns None when the video is not the caller's.
        """
        if not await self.database.get_volumetric_video(video_id, user_id):
            return None

        safe_limit = min(max(as_int(limit, DEFAULT_FRAME_LIMIT), 1), MAX_FRAME_LIMIT)
        frames = await self.database.list_volumetric_frames(
            video_id, _optional_bound(start_frame), _optional_bound(end_frame), safe_limit
        )
        return {"frames": [frame_dict(f) for f in frames], "limit": safe_limit}

    async def add_frame(self, video_id: str, user_id: str, frame_number: int,
                        frame_path: str, timestamp: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Store a frame; re-adding a frame number replaces its path and timestamp."""
        if not await self.database.get_volumetric_video(video_id, user_id):
            return None

        frame = await self.database.upsert_volumetric_frame(
            video_id, frame_number, frame_path, timestamp
        )
        return frame_dict(frame)

    async def delete(self, video_id: str, user_id: str) -> bool:
        deleted = await self.database.delete_volumetric_video(video_id, user_id)
        if deleted:
            logger.info("Volumetric video deleted", video_id=video_id)
        return deleted
