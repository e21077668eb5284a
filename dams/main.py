from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from dams.api.v1.router import api_router
from dams.core.config import settings
from dams.core.errors import AssetServiceError
from dams.core.logging import configure_logging
from dams.db.session import SessionLocal
from dams.middleware.rate_limit import RedisRateLimitMiddleware
from dams.services.activity import ActivityLogger
from dams.services.storage import BlobStore, S3BlobStore

logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content={"message": message, "success": False, "status_code": status_code},
    )


async def asset_error_handler(request: Request, exc: AssetServiceError) -> ORJSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _envelope(exc.status_code, exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    response = _envelope(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def create_app(
    *,
    blob_store: BlobStore | None = None,
    activity_logger: ActivityLogger | None = None,
    rate_limit: bool = True,
    metrics: bool = True,
) -> FastAPI:
    app = FastAPI(title=settings.app_name, default_response_class=ORJSONResponse, version="0.1.0")
    app.state.blob_store = blob_store if blob_store is not None else S3BlobStore.from_settings(settings)
    app.state.activity_logger = activity_logger if activity_logger is not None else ActivityLogger(SessionLocal)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if rate_limit:
        app.add_middleware(RedisRateLimitMiddleware)

    app.add_exception_handler(AssetServiceError, asset_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.include_router(api_router, prefix=settings.api_prefix)

    if metrics:
        Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


configure_logging()

app = create_app()
