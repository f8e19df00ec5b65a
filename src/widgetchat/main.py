"""widgetchat

FastAPI application serving the embeddable chat widget: tenant-scoped
conversations answered by an AI model chosen per plan and message complexity.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from .api.deps import get_storage_service
from .api.routers import chat_router, health_router
from .config import settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown logic"""
    logfire.configure(
        send_to_logfire="if-token-present",
        token=settings.logfire_token,
        service_name=settings.app_name,
        service_version=settings.app_version,
        environment=settings.logfire_environment or settings.environment,
    )
    logfire.instrument_pydantic_ai()
    logfire.info("Starting {app} v{version}", app=settings.app_name, version=settings.app_version)
    yield
    logfire.info("Shutting down...")
    await get_storage_service().close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    version=settings.app_version,
    debug=settings.environment == "development",
    lifespan=lifespan,
)

# Add CORS middleware
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods.split(","),
        allow_headers=settings.cors_headers.split(","),
    )

# Import and include routers
app.include_router(health_router)
app.include_router(chat_router)


@app.get("/")
async def root() -> RedirectResponse:
    """Redirect root to API docs"""
    return RedirectResponse(url="/docs")
