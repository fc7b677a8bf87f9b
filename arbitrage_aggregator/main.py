"""
Main FastAPI application for Arbitrage Price Aggregator.
Includes lifespan management for the shared HTTP client.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time

from .core.config import settings
from .core.logging_config import setup_logging, create_logger
from .api.endpoints import router as api_router
from .api.schemas import ErrorResponse
from .services.price_aggregator import InvalidRequest, aggregator_service

# Setup logging first
setup_logging()
logger = create_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.
    Opens the outbound HTTP client on startup and closes it on shutdown.
    """
    logger.info("Starting Arbitrage Price Aggregator", extra={
        "version": settings.app_version,
        "debug": settings.debug,
        "exchanges": aggregator_service.registry.names
    })

    await aggregator_service.connect()

    yield  # Application is running

    logger.info("Shutting down Arbitrage Price Aggregator")

    try:
        await aggregator_service.disconnect()
    except Exception as e:
        logger.error("Error during service shutdown", extra={
            "error": str(e)
        })


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Cross-exchange cryptocurrency price aggregation for arbitrage detection",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=not settings.debug,
    allow_methods=["GET"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests and responses."""
    start_time = time.time()

    logger.debug("Request received", extra={
        "method": request.method,
        "url": str(request.url),
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent")
    })

    try:
        response = await call_next(request)

    except Exception as e:
        process_time = time.time() - start_time
        logger.error("Request failed", extra={
            "method": request.method,
            "url": str(request.url),
            "error": str(e),
            "process_time": round(process_time, 4)
        })
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                error_code="INTERNAL_ERROR"
            ).model_dump(mode="json")
        )

    process_time = time.time() - start_time
    logger.info("Request completed", extra={
        "method": request.method,
        "url": str(request.url),
        "status_code": response.status_code,
        "process_time": round(process_time, 4)
    })
    response.headers["X-Process-Time"] = str(process_time)
    return response


# Exception handlers
@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    """Map malformed input to a 400 with structured response."""
    logger.info("Rejected invalid request", extra={
        "path": request.url.path,
        "error": exc.message
    })
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=exc.message,
            error_code="INVALID_REQUEST",
            details={"field": exc.field} if exc.field else None
        ).model_dump(mode="json")
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handle 404 errors with structured response."""
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(
            error="Endpoint not found",
            error_code="NOT_FOUND",
            details={
                "path": request.url.path,
                "method": request.method
            }
        ).model_dump(mode="json")
    )


# Include API routes
app.include_router(api_router, tags=["Arbitrage API"])


# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint with service information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "docs_url": "/docs" if settings.debug else "disabled",
        "timestamp": datetime.now(timezone.utc)
    }


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "arbitrage_aggregator.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    run()
