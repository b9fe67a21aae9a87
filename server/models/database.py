"""SQLModel database models and tables."""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import UniqueConstraint, func


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Project(SQLModel, table=True):
    """A named group of models owned by one user."""

    __tablename__ = "projects"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: str = Field(default="active", max_length=50)
    user_id: str = Field(index=True, max_length=64)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class Model3D(SQLModel, table=True):
    """Stored 3D model file record with optional georeferencing origin."""

    __tablename__ = "models"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    file_path: str = Field(max_length=1024)
    file_size: Optional[int] = Field(default=None)
    file_type: str = Field(max_length=16)
    project_id: Optional[str] = Field(default=None, foreign_key="projects.id", index=True, max_length=32)
    user_id: str = Field(index=True, max_length=64)

    # Georeferencing: origin_lat and origin_lon both set means georeferenced
    crs: Optional[str] = Field(default=None, max_length=100)
    origin_lat: Optional[float] = Field(default=None)
    origin_lon: Optional[float] = Field(default=None)
    origin_altitude: Optional[float] = Field(default=None)
    transform_matrix: Optional[List[float]] = Field(default=None, sa_column=Column(JSON))

    model_type: str = Field(default="static", max_length=50)
    # "metadata" is reserved on declarative classes
    extra_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )

    @property
    def is_georeferenced(self) -> bool:
        return self.origin_lat is not None and self.origin_lon is not None


class Annotation(SQLModel, table=True):
    """Point annotation placed on a model, in model-local coordinates."""

    __tablename__ = "annotations"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    model_id: str = Field(foreign_key="models.id", index=True, max_length=32)
    user_id: str = Field(index=True, max_length=64)
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    position_x: float
    position_y: float
    position_z: float
    normal_x: Optional[float] = Field(default=None)
    normal_y: Optional[float] = Field(default=None)
    normal_z: Optional[float] = Field(default=None)
    color: str = Field(default="#FF0000", max_length=32)
    annotation_type: str = Field(default="marker", max_length=50)
    measurement_value: Optional[float] = Field(default=None)
    measurement_unit: str = Field(default="m", max_length=20)
    priority: str = Field(default="normal", max_length=20)
    status: str = Field(default="active", max_length=20)
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)
    altitude: Optional[float] = Field(default=None)
    georeferenced: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class AnnotationImage(SQLModel, table=True):
    """Reference photo attached to an annotation."""

    __tablename__ = "annotation_images"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    annotation_id: str = Field(foreign_key="annotations.id", index=True, max_length=32)
    image_path: str = Field(max_length=1024)
    image_name: Optional[str] = Field(default=None, max_length=255)
    image_identifier: Optional[str] = Field(default=None, max_length=255)
    thumbnail_path: Optional[str] = Field(default=None, max_length=1024)
    camera_position_x: Optional[float] = Field(default=None)
    camera_position_y: Optional[float] = Field(default=None)
    camera_position_z: Optional[float] = Field(default=None)
    display_order: int = Field(default=0)
    uploaded_by: str = Field(max_length=64)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class VolumetricVideo(SQLModel, table=True):
    """Frame-sequence capture registered against a volumetric model."""

    __tablename__ = "volumetric_videos"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    model_id: str = Field(foreign_key="models.id", index=True, max_length=32)
    user_id: str = Field(index=True, max_length=64)
    video_path: str = Field(max_length=1024)
    frame_count: Optional[int] = Field(default=None)
    fps: Optional[float] = Field(default=None)
    resolution_width: Optional[int] = Field(default=None)
    resolution_height: Optional[int] = Field(default=None)
    format: str = Field(default="PLY_SEQUENCE", max_length=50)
    extra_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class VolumetricFrame(SQLModel, table=True):
    """One frame file of a volumetric video; frame numbers are unique per video."""

    __tablename__ = "volumetric_video_frames"
    __table_args__ = (
        UniqueConstraint("volumetric_video_id", "frame_number", name="uq_frame_per_video"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    volumetric_video_id: str = Field(foreign_key="volumetric_videos.id", index=True, max_length=32)
    frame_number: int = Field(ge=0)
    frame_path: str = Field(max_length=1024)
    timestamp: Optional[float] = Field(default=None)


class PhotogrammetryProject(SQLModel, table=True):
    """Reconstruction job record for a model built from photos."""

    __tablename__ = "photogrammetry_projects"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    model_id: str = Field(foreign_key="models.id", index=True, max_length=32)
    project_id: Optional[str] = Field(default=None, foreign_key="projects.id", max_length=32)
    user_id: str = Field(index=True, max_length=64)
    reconstruction_method: str = Field(default="SfM", max_length=50)
    quality_settings: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    input_images_count: int = Field(default=0, ge=0)
    processing_status: str = Field(default="pending", max_length=20)
    output_mesh_path: Optional[str] = Field(default=None, max_length=1024)
    processing_log: Optional[str] = Field(default=None)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )
