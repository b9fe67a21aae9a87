"""
FastAPI backend for Web3DRender: projects, 3D model records, annotations
and georeferencing.
"""

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.config import Settings
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from middleware.auth import AuthMiddleware
from routers import annotations, models, photogrammetry, projects, volumetric

# Initialize settings and logging
settings = Settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting Web3DRender API")

    await container.database().startup()
    set_startup_time()

    logger.info("Services started successfully")
    yield

    container.cache().clear()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Web3DRender API",
    version="1.0.0",
    description="3D model library with annotations and georeferencing",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", path=request.url.path,
                         error_type=type(e).__name__, error=str(e), exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": type(e).__name__,
                    "detail": "Internal server error"
                }
            )


# Middleware runs outermost-last: CORS wraps the exception catcher, which wraps auth
app.add_middleware(AuthMiddleware)
app.add_middleware(CatchAllExceptionsMiddleware)

logger.info("Configuring CORS middleware",
            origins_count=len(settings.cors_origins),
            origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects.router)
app.include_router(models.router)
app.include_router(annotations.router)
app.include_router(volumetric.router)
app.include_router(photogrammetry.router)


@app.get("/health")
@app.get("/api/health")
async def health_check():
    """Detailed health check."""
    current = container.settings()
    health = await get_health_status(container.database(), container.cache(), current)
    return {
        **health,
        "service": "web3drender-api",
        "version": app.version,
        "environment": "development" if current.is_development else "production",
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Web3DRender API",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )
