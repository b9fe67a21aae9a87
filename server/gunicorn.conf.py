"""Gunicorn configuration for production deployment.

Bind address, worker count and log level come from the same Settings the
app reads (environment or .env).

Usage (from server/):
    gunicorn main:app -c gunicorn.conf.py

Each worker process owns a separate query cache. A write handled by one
worker only invalidates that worker's entries; the others serve their
cached list pages until the TTL runs out.
"""
import os

from core.config import Settings

settings = Settings()

bind = f"{settings.host}:{settings.port}"
workers = settings.workers
worker_class = "uvicorn.workers.UvicornWorker"

timeout = int(os.getenv("GUNICORN_TIMEOUT", "120"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

# Recycle workers periodically; this also resets their caches
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "10000"))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", "1000"))

accesslog = "-" if settings.is_production else None
errorlog = "-"
loglevel = settings.log_level.lower()

proc_name = "web3drender-api"

# The database engine is created in the lifespan hook, after the fork
preload_app = settings.is_production
