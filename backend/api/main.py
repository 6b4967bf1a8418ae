"""
FastAPI application entrypoint for PropertyWebBuilder.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import JobQueue
from api.middleware import TenantMiddleware
from api.routers import (
    enquiries,
    external_listings,
    health,
    properties,
    reports,
    social_posts,
    subdomains,
    subscription,
    website,
)
from core.cache import cleanup_cache, initialize_cache
from core.config import get_environment_config, settings
from core.exceptions import ApplicationError
from database.session import close_db, init_db
from services.ai_service import AIService
from services.external_feed import register_default_providers
from services.ntfy_service import NtfyService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await initialize_cache()
    await init_db()

    ai_service = AIService()
    await ai_service.initialize()

    ntfy_service = NtfyService()

    app.state.ai_service = ai_service
    app.state.ntfy_service = ntfy_service
    app.state.feed_registry = register_default_providers()
    app.state.job_queue = JobQueue()

    logger.info("Application services initialized (AI provider: %s)", ai_service.provider)

    try:
        yield
    finally:
        await ai_service.close()
        await cleanup_cache()
        await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-tenant real estate website platform",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(TenantMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=f"{settings.API_V1_STR}/health", tags=["Health"])
app.include_router(properties.router, prefix=f"{settings.API_V1_STR}/properties", tags=["Properties"])
app.include_router(
    external_listings.router, prefix=f"{settings.API_V1_STR}/external-listings", tags=["External Listings"]
)
app.include_router(reports.router, prefix=f"{settings.API_V1_STR}/reports/cma", tags=["Reports"])
app.include_router(social_posts.router, prefix=f"{settings.API_V1_STR}/social-posts", tags=["Social Posts"])
app.include_router(enquiries.router, prefix=f"{settings.API_V1_STR}/enquiries", tags=["Enquiries"])
app.include_router(subscription.router, prefix=f"{settings.API_V1_STR}/subscription", tags=["Subscription"])
app.include_router(subdomains.router, prefix=f"{settings.API_V1_STR}/subdomains", tags=["Subdomains"])
app.include_router(website.router, prefix=f"{settings.API_V1_STR}/website", tags=["Website"])


@app.get("/", response_model=dict[str, Any])
async def root() -> dict[str, Any]:
    return {
        "message": "Welcome to the PropertyWebBuilder API",
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.DEBUG else None,
        "health": f"{settings.API_V1_STR}/health",
        "environment": settings.ENVIRONMENT,
    }


@app.exception_handler(ApplicationError)
async def application_error_handler(_request: Request, exc: ApplicationError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content={"success": False, **exc.to_api_response()})


@app.exception_handler(Exception)
async def unhandled_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    content: dict[str, Any] = {"success": False, "error": "INTERNAL_SERVER_ERROR", "message": "Internal Server Error"}
    if settings.DEBUG:
        content["detail"] = str(exc)
    return JSONResponse(status_code=500, content=content)


if __name__ == "__main__":
    config = get_environment_config()
    uvicorn.run(
        "api.main:app",
        host=config["host"],
        port=config["port"],
        reload=config["reload"],
        log_level=config["log_level"],
        workers=config["workers"],
    )
