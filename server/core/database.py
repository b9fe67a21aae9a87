"""Async database service with SQLModel and SQLAlchemy 2.0."""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, col, select

from core.config import Settings
from core.logging import get_logger
from models.database import (
    Annotation, AnnotationImage, Model3D, PhotogrammetryProject, Project,
    VolumetricFrame, VolumetricVideo, utcnow,
)

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel.

    Every query is scoped by owner where the row has one; a row owned by
    someone else reads exactly like a missing row.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.is_sqlite:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def _insert(self, row):
        async with self.get_session() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    # ============================================================================
    # Projects
    # ============================================================================

    async def count_projects(self, user_id: str) -> int:
        async with self.get_session() as session:
            stmt = select(func.count(Project.id)).where(Project.user_id == user_id)
            result = await session.execute(stmt)
            return result.scalar_one()

    async def list_projects(self, user_id: str, offset: int, limit: int) -> Sequence[Project]:
        """Get one page of a user's projects, newest first."""
        async with self.get_session() as session:
            stmt = (
                select(Project)
                .where(Project.user_id == user_id)
                .order_by(col(Project.created_at).desc())
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return result.scalars().all()

    async def get_project(self, project_id: str, user_id: str) -> Optional[Project]:
        async with self.get_session() as session:
            stmt = select(Project).where(Project.id == project_id, Project.user_id == user_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_project(self, project: Project) -> Project:
        return await self._insert(project)

    async def update_project(self, project_id: str, user_id: str,
                             fields: Dict[str, Any]) -> Optional[Project]:
        async with self.get_session() as session:
            stmt = select(Project).where(Project.id == project_id, Project.user_id == user_id)
            result = await session.execute(stmt)
            project = result.scalar_one_or_none()
            if not project:
                return None

            for name, value in fields.items():
                setattr(project, name, value)
            project.updated_at = utcnow()
            await session.commit()
            await session.refresh(project)
            return project

    async def delete_project(self, project_id: str, user_id: str) -> bool:
        """Delete a project; its models stay, detached from it."""
        async with self.get_session() as session:
            stmt = select(Project).where(Project.id == project_id, Project.user_id == user_id)
            result = await session.execute(stmt)
            project = result.scalar_one_or_none()
            if not project:
                return False

            await session.execute(
                update(Model3D)
                .where(col(Model3D.project_id) == project_id)
                .values(project_id=None)
            )
            await session.execute(
                update(PhotogrammetryProject)
                .where(col(PhotogrammetryProject.project_id) == project_id)
                .values(project_id=None)
            )
            await session.delete(project)
            await session.commit()
            return True

    # ============================================================================
    # Models
    # ============================================================================

    def _model_with_project(self):
        return (
            select(Model3D, Project.name)
            .outerjoin(Project, col(Model3D.project_id) == col(Project.id))
        )

    async def count_models(self, user_id: str) -> int:
        async with self.get_session() as session:
            stmt = select(func.count(Model3D.id)).where(Model3D.user_id == user_id)
            result = await session.execute(stmt)
            return result.scalar_one()

    async def list_models(self, user_id: str, offset: int,
                          limit: int) -> List[Tuple[Model3D, Optional[str]]]:
        """Get one page of a user's models with their project names, newest first."""
        async with self.get_session() as session:
            stmt = (
                self._model_with_project()
                .where(Model3D.user_id == user_id)
                .order_by(col(Model3D.created_at).desc())
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [(row[0], row[1]) for row in result.all()]

    async def get_model(self, model_id: str, user_id: str) -> Optional[Tuple[Model3D, Optional[str]]]:
        async with self.get_session() as session:
            stmt = self._model_with_project().where(
                Model3D.id == model_id, Model3D.user_id == user_id
            )
            result = await session.execute(stmt)
            row = result.first()
            return (row[0], row[1]) if row else None

    async def find_model_by_id(self, model_id: str, user_id: Optional[str] = None) -> Optional[Model3D]:
        """Point lookup, optionally scoped to an owner."""
        async with self.get_session() as session:
            stmt = select(Model3D).where(Model3D.id == model_id)
            if user_id is not None:
                stmt = stmt.where(Model3D.user_id == user_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_model(self, model: Model3D) -> Model3D:
        return await self._insert(model)

    async def update_model_fields(self, model_id: str, user_id: str,
                                  fields: Dict[str, Any]) -> Optional[Model3D]:
        """Overwrite the given fields in one transaction, scoped to the owner."""
        async with self.get_session() as session:
            stmt = select(Model3D).where(Model3D.id == model_id, Model3D.user_id == user_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if not model:
                return None

            for name, value in fields.items():
                setattr(model, name, value)
            model.updated_at = utcnow()
            await session.commit()
            await session.refresh(model)
            return model

    async def delete_model(self, model_id: str, user_id: str) -> Optional[Model3D]:
        """Delete a model with its annotations, images, volumetric videos,
        their frames and photogrammetry jobs.

        Returns the deleted row so the caller can clean up the stored file.
        """
        async with self.get_session() as session:
            stmt = select(Model3D).where(Model3D.id == model_id, Model3D.user_id == user_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if not model:
                return None

            annotation_ids = select(Annotation.id).where(Annotation.model_id == model_id)
            await session.execute(
                delete(AnnotationImage).where(col(AnnotationImage.annotation_id).in_(annotation_ids))
            )
            await session.execute(delete(Annotation).where(col(Annotation.model_id) == model_id))

            video_ids = select(VolumetricVideo.id).where(VolumetricVideo.model_id == model_id)
            await session.execute(
                delete(VolumetricFrame).where(col(VolumetricFrame.volumetric_video_id).in_(video_ids))
            )
            await session.execute(delete(VolumetricVideo).where(col(VolumetricVideo.model_id) == model_id))
            await session.execute(
                delete(PhotogrammetryProject).where(col(PhotogrammetryProject.model_id) == model_id)
            )
            await session.delete(model)
            await session.commit()
            return model

    async def model_exists(self, model_id: str, user_id: str) -> bool:
        async with self.get_session() as session:
            stmt = select(func.count(Model3D.id)).where(
                Model3D.id == model_id, Model3D.user_id == user_id
            )
            result = await session.execute(stmt)
            return result.scalar_one() > 0

    async def model_stats(self, user_id: str) -> Dict[str, int]:
        async with self.get_session() as session:
            stmt = select(
                func.count(Model3D.id),
                func.coalesce(func.sum(Model3D.file_size), 0),
                func.count(func.distinct(Model3D.file_type)),
            ).where(Model3D.user_id == user_id)
            result = await session.execute(stmt)
            total_models, total_size, unique_types = result.one()
            return {
                "total_models": total_models,
                "total_size": total_size,
                "unique_types": unique_types,
            }

    # ============================================================================
    # Annotations
    # ============================================================================

    async def list_annotations(self, model_id: str) -> Sequence[Annotation]:
        async with self.get_session() as session:
            stmt = (
                select(Annotation)
                .where(Annotation.model_id == model_id)
                .order_by(col(Annotation.created_at).desc())
            )
            result = await session.execute(stmt)
            return result.scalars().all()

    async def list_annotation_images(self, annotation_ids: List[str]) -> Sequence[AnnotationImage]:
        """Images for the given annotations, in display order."""
        if not annotation_ids:
            return []
        async with self.get_session() as session:
            stmt = (
                select(AnnotationImage)
                .where(col(AnnotationImage.annotation_id).in_(annotation_ids))
                .order_by(col(AnnotationImage.display_order), col(AnnotationImage.created_at))
            )
            result = await session.execute(stmt)
            return result.scalars().all()

    async def get_annotation(self, annotation_id: str, user_id: str) -> Optional[Annotation]:
        async with self.get_session() as session:
            stmt = select(Annotation).where(
                Annotation.id == annotation_id, Annotation.user_id == user_id
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_annotation(self, annotation: Annotation) -> Annotation:
        return await self._insert(annotation)

    async def update_annotation(self, annotation_id: str, user_id: str,
                                fields: Dict[str, Any]) -> Optional[Annotation]:
        async with self.get_session() as session:
            stmt = select(Annotation).where(
                Annotation.id == annotation_id, Annotation.user_id == user_id
            )
            result = await session.execute(stmt)
            annotation = result.scalar_one_or_none()
            if not annotation:
                return None

            for name, value in fields.items():
                setattr(annotation, name, value)
            annotation.updated_at = utcnow()
            await session.commit()
            await session.refresh(annotation)
            return annotation

    async def delete_annotation(self, annotation_id: str, user_id: str) -> Optional[Annotation]:
        async with self.get_session() as session:
            stmt = select(Annotation).where(
                Annotation.id == annotation_id, Annotation.user_id == user_id
            )
            result = await session.execute(stmt)
            annotation = result.scalar_one_or_none()
            if not annotation:
                return None

            await session.execute(
                delete(AnnotationImage).where(col(AnnotationImage.annotation_id) == annotation_id)
            )
            await session.delete(annotation)
            await session.commit()
            return annotation

    async def annotation_exists(self, annotation_id: str, user_id: str) -> bool:
        async with self.get_session() as session:
            stmt = select(func.count(Annotation.id)).where(
                Annotation.id == annotation_id, Annotation.user_id == user_id
            )
            result = await session.execute(stmt)
            return result.scalar_one() > 0

    async def add_annotation_image(self, image: AnnotationImage) -> AnnotationImage:
        return await self._insert(image)

    async def delete_annotation_image(self, image_id: str, user_id: str) -> Optional[str]:
        """Delete an image whose parent annotation belongs to user_id.

        Returns the parent annotation's model_id, or None when not found.
        """
        async with self.get_session() as session:
            stmt = (
                select(AnnotationImage, Annotation.model_id)
                .join(Annotation, col(AnnotationImage.annotation_id) == col(Annotation.id))
                .where(AnnotationImage.id == image_id, Annotation.user_id == user_id)
            )
            result = await session.execute(stmt)
            row = result.first()
            if not row:
                return None

            image, model_id = row[0], row[1]
            await session.delete(image)
            await session.commit()
            return model_id

    # ============================================================================
    # Volumetric videos
    # ============================================================================

    async def create_volumetric_video(self, video: VolumetricVideo) -> VolumetricVideo:
        return await self._insert(video)

    async def get_volumetric_video(self, video_id: str,
                                   user_id: str) -> Optional[Tuple[VolumetricVideo, Optional[str], Optional[str]]]:
        """Video with its model's name and file path."""
        async with self.get_session() as session:
            stmt = (
                select(VolumetricVideo, Model3D.name, Model3D.file_path)
                .outerjoin(Model3D, col(VolumetricVideo.model_id) == col(Model3D.id))
                .where(VolumetricVideo.id == video_id, VolumetricVideo.user_id == user_id)
            )
            result = await session.execute(stmt)
            row = result.first()
            return (row[0], row[1], row[2]) if row else None

    async def latest_volumetric_video(self, model_id: str, user_id: str) -> Optional[VolumetricVideo]:
        async with self.get_session() as session:
            stmt = (
                select(VolumetricVideo)
                .where(VolumetricVideo.model_id == model_id, VolumetricVideo.user_id == user_id)
                .order_by(col(VolumetricVideo.created_at).desc())
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_volumetric_frames(self, video_id: str, start_frame: Optional[int],
                                     end_frame: Optional[int], limit: int) -> Sequence[VolumetricFrame]:
        """Frames in [start_frame, end_frame] (either bound optional), in frame order."""
        async with self.get_session() as session:
            stmt = select(VolumetricFrame).where(VolumetricFrame.volumetric_video_id == video_id)
            if start_frame is not None:
                stmt = stmt.where(col(VolumetricFrame.frame_number) >= start_frame)
            if end_frame is not None:
                stmt = stmt.where(col(VolumetricFrame.frame_number) <= end_frame)
            stmt = stmt.order_by(col(VolumetricFrame.frame_number)).limit(limit)
            result = await session.execute(stmt)
            return result.scalars().all()

    async def upsert_volumetric_frame(self, video_id: str, frame_number: int,
                                      frame_path: str, timestamp: Optional[float]) -> VolumetricFrame:
        """Insert a frame, or replace path and timestamp of an existing frame number."""
        async with self.get_session() as session:
            stmt = select(VolumetricFrame).where(
                VolumetricFrame.volumetric_video_id == video_id,
                VolumetricFrame.frame_number == frame_number
            )
            result = await session.execute(stmt)
            frame = result.scalar_one_or_none()

            if frame:
                frame.frame_path = frame_path
                frame.timestamp = timestamp
            else:
                frame = VolumetricFrame(
                    volumetric_video_id=video_id,
                    frame_number=frame_number,
                    frame_path=frame_path,
                    timestamp=timestamp
                )
                session.add(frame)

            await session.commit()
            await session.refresh(frame)
            return frame

    async def delete_volumetric_video(self, video_id: str, user_id: str) -> bool:
        async with self.get_session() as session:
            stmt = select(VolumetricVideo).where(
                VolumetricVideo.id == video_id, VolumetricVideo.user_id == user_id
            )
            result = await session.execute(stmt)
            video = result.scalar_one_or_none()
            if not video:
                return False

            await session.execute(
                delete(VolumetricFrame).where(col(VolumetricFrame.volumetric_video_id) == video_id)
            )
            await session.delete(video)
            await session.commit()
            return True

    # ============================================================================
    # Photogrammetry jobs
    # ============================================================================

    async def create_photogrammetry_project(self, job: PhotogrammetryProject) -> PhotogrammetryProject:
        return await self._insert(job)

    async def get_photogrammetry_project(self, job_id: str,
                                         user_id: str) -> Optional[Tuple[PhotogrammetryProject, Optional[str], Optional[str]]]:
        """Job with its model's name and file path."""
        async with self.get_session() as session:
            stmt = (
                select(PhotogrammetryProject, Model3D.name, Model3D.file_path)
                .outerjoin(Model3D, col(PhotogrammetryProject.model_id) == col(Model3D.id))
                .where(PhotogrammetryProject.id == job_id, PhotogrammetryProject.user_id == user_id)
            )
            result = await session.execute(stmt)
            row = result.first()
            return (row[0], row[1], row[2]) if row else None

    async def list_photogrammetry_projects(self, model_id: str, user_id: str) -> Sequence[PhotogrammetryProject]:
        async with self.get_session() as session:
            stmt = (
                select(PhotogrammetryProject)
                .where(PhotogrammetryProject.model_id == model_id,
                       PhotogrammetryProject.user_id == user_id)
                .order_by(col(PhotogrammetryProject.created_at).desc())
            )
            result = await session.execute(stmt)
            return result.scalars().all()

    async def update_photogrammetry_project(self, job_id: str, user_id: str,
                                            fields: Dict[str, Any]) -> Optional[PhotogrammetryProject]:
        async with self.get_session() as session:
            stmt = select(PhotogrammetryProject).where(
                PhotogrammetryProject.id == job_id, PhotogrammetryProject.user_id == user_id
            )
            result = await session.execute(stmt)
            job = result.scalar_one_or_none()
            if not job:
                return None

            for name, value in fields.items():
                setattr(job, name, value)
            job.updated_at = utcnow()
            await session.commit()
            await session.refresh(job)
            return job
