"""
FastAPI application entry point for the storage quota backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storage_quota.config import get_settings
from storage_quota.errors import ConfigurationError, ObjectNotFound, StoreUnavailable
from storage_quota.routes import router

logger = logging.getLogger(__name__)


async def _store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error("Storage backend failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def _object_not_found_handler(request: Request, exc: ObjectNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Storage limits misconfigured: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Storage Quota Backend (FastAPI)", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(ObjectNotFound, _object_not_found_handler)
    app.add_exception_handler(StoreUnavailable, _store_unavailable_handler)
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    return app


app = create_app()
