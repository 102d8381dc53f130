"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.deps import container
from src.api.v1 import health, map_fields, odata, preview
from src.core.config import settings
from src.core.constants import API_PREFIX
from src.core.exceptions import ReportPreviewError, ValidationError
from src.core.logging import get_logger, setup_logging

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "Starting report preview service",
        app_name=settings.app_name,
        env=settings.app_env,
    )

    # Configuration errors (e.g. missing token secret in production) abort startup
    container.initialize()
    logger.info(
        "Service container initialized",
        smart_table=settings.preview.smart_table,
        strict_filters=settings.preview.strict_filters,
        llm_configured=bool(settings.llm.api_key),
    )

    yield

    # Shutdown
    logger.info("Shutting down report preview service")
    await container.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Report Preview API",
    description="Prompt-to-field mapping and sandboxed UI5 report previews with a mock OData V2 backend",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ReportPreviewError)
async def report_preview_error_handler(
    request: Request,
    exc: ReportPreviewError,
) -> JSONResponse:
    """Handle custom application errors."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Application error",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Render malformed request bodies as 400 validation errors."""
    fields = sorted({".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()})
    error = ValidationError("Invalid request body", details={"fields": fields})
    logger.warning(
        "Request validation failed",
        fields=fields,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected errors."""
    logger.exception(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(map_fields.router, prefix=API_PREFIX, tags=["Field Mapping"])
app.include_router(preview.router, prefix=API_PREFIX, tags=["Preview"])
app.include_router(odata.router, prefix=API_PREFIX, tags=["OData"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
    }


# API info endpoint
@app.get("/api")
async def api_info() -> dict[str, Any]:
    """API information endpoint."""
    return {
        "name": "Report Preview API",
        "version": "1.0.0",
        "prefix": API_PREFIX,
        "endpoints": {
            "health": f"{API_PREFIX}/health",
            "map_fields": f"{API_PREFIX}/map-fields",
            "preview": f"{API_PREFIX}/preview",
            "odata": f"{API_PREFIX}/preview/{{preview_id}}/odata/",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
