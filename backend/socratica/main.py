"""Socratica FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import analytics, auth, conversations, courses, materials, tutor
from .core.config import settings
from .core.errors import SocraticaError
from .db.base import close_all, init_databases
from .observability.langsmith import initialize_langsmith

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context for startup and shutdown events."""
    # Startup
    configure_logging(settings.LOG_LEVEL)
    logger.info("%s starting up...", settings.APP_NAME)
    initialize_langsmith(settings)
    await init_databases()
    yield
    # Shutdown
    logger.info("%s shutting down...", settings.APP_NAME)
    await close_all()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Socratic tutoring backend with course materials and classroom analytics",
        version="0.1.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=settings.cors_allow_headers_list,
    )

    # Include routers
    app.include_router(auth.router, prefix=settings.API_V1_PREFIX)
    app.include_router(courses.router, prefix=settings.API_V1_PREFIX)
    app.include_router(conversations.router, prefix=settings.API_V1_PREFIX)
    app.include_router(materials.router, prefix=settings.API_V1_PREFIX)
    app.include_router(tutor.router, prefix=settings.API_V1_PREFIX)
    app.include_router(analytics.router, prefix=settings.API_V1_PREFIX)

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "app": settings.APP_NAME}

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "app": settings.APP_NAME,
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(SocraticaError)
    async def socratica_error_handler(request: Request, exc: SocraticaError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        else:
            message = "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": str(exc) if settings.DEBUG else "Internal server error"},
        )

    return app


# Create the app instance
app = create_app()
