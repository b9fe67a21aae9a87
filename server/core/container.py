"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import QueryCache
from services.annotations import AnnotationService
from services.georeferencing import GeoreferencingService
from services.model_store import ModelService
from services.photogrammetry import PhotogrammetryService
from services.projects import ProjectService
from services.user_auth import UserAuthService
from services.volumetric import VolumetricVideoService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    # One query cache per process
    cache = providers.Singleton(
        QueryCache,
    )

    # Services
    user_auth_service = providers.Factory(
        UserAuthService,
        settings=settings
    )

    georeferencing_service = providers.Factory(
        GeoreferencingService,
        database=database,
        cache=cache
    )

    project_service = providers.Factory(
        ProjectService,
        database=database,
        cache=cache,
        settings=settings
    )

    model_service = providers.Factory(
        ModelService,
        database=database,
        cache=cache,
        settings=settings
    )

    annotation_service = providers.Factory(
        AnnotationService,
        database=database,
        cache=cache,
        georeferencing=georeferencing_service,
        settings=settings
    )

    volumetric_video_service = providers.Factory(
        VolumetricVideoService,
        database=database
    )

    photogrammetry_service = providers.Factory(
        PhotogrammetryService,
        database=database
    )


# Global container instance
container = Container()
