"""
Shared test fixtures for the Web3DRender API test suite.
Provides settings, a started database, a query cache with a controllable
clock, service instances, JWT helpers and an authenticated test client.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient
from jose import jwt


class TestSecrets:
    """Test secrets and keys for consistent testing."""
    JWT_SECRET = "test-jwt-secret-for-all-tests-0123456789"
    INVALID_JWT_SECRET = "wrong-secret-for-testing-0123456789abcdef"


# main.py builds Settings at import time, so the environment must be ready first
_BOOT_DIR = tempfile.mkdtemp(prefix="web3d-tests-")
os.environ.setdefault("JWT_SECRET_KEY", TestSecrets.JWT_SECRET)
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_BOOT_DIR}/boot.db")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_BOOT_DIR, "uploads"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "console")

from core.cache import QueryCache  # noqa: E402
from core.config import Settings  # noqa: E402
from core.container import container  # noqa: E402
from core.database import Database  # noqa: E402
from services.annotations import AnnotationService  # noqa: E402
from services.georeferencing import GeoreferencingService  # noqa: E402
from services.model_store import ModelService  # noqa: E402
from services.photogrammetry import PhotogrammetryService  # noqa: E402
from services.projects import ProjectService  # noqa: E402
from services.volumetric import VolumetricVideoService  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_token(sub: str, secret: str = TestSecrets.JWT_SECRET,
               expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    payload = {"sub": sub, "exp": datetime.now(timezone.utc) + expires_in, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(sub: str) -> dict:
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture
def test_secrets():
    return TestSecrets()


@pytest.fixture
def make_jwt():
    return make_token


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret_key=TestSecrets.JWT_SECRET,
        database_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        upload_dir=str(tmp_path / "uploads"),
        log_level="WARNING",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return QueryCache(clock=clock)


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def georeferencing_service(database, cache):
    return GeoreferencingService(database=database, cache=cache)


@pytest.fixture
def project_service(database, cache, settings):
    return ProjectService(database=database, cache=cache, settings=settings)


@pytest.fixture
def model_service(database, cache, settings):
    return ModelService(database=database, cache=cache, settings=settings)


@pytest.fixture
def annotation_service(database, cache, georeferencing_service, settings):
    return AnnotationService(
        database=database, cache=cache,
        georeferencing=georeferencing_service, settings=settings
    )


@pytest.fixture
def volumetric_service(database):
    return VolumetricVideoService(database=database)


@pytest.fixture
def photogrammetry_service(database):
    return PhotogrammetryService(database=database)


@pytest.fixture
def client(settings, cache):
    """TestClient wired to the per-test settings and cache."""
    from main import app

    container.settings.override(providers.Object(settings))
    container.cache.override(providers.Object(cache))
    container.reset_singletons()
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        container.settings.reset_override()
        container.cache.reset_override()
        container.reset_singletons()


@pytest.fixture
def owner_headers():
    return bearer("user-1")


@pytest.fixture
def other_headers():
    return bearer("user-2")
