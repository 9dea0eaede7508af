"""
FastAPI application entry point.

Sets up logging, middleware and the readiness router, and restores the
personalized model's saved weights at startup.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from routers import readiness
from core.config import settings
from core.database import check_db_connection, init_db
from core.exceptions import APIException
from core.logging import log_context, setup_logging
import logging
import time

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Readiness Engine API",
    description="Daily readiness scoring with a personalized model and next-day predictions",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)


@app.on_event("startup")
async def load_readiness_model():
    """Create missing tables and restore the saved model weights."""
    init_db()
    service = readiness.get_readiness_service()
    if service.load_saved_model():
        logger.info(
            f"Readiness model restored: {service.training_example_count} examples, "
            f"ml_weight={service.ml_weight:.2f}"
        )
    else:
        logger.info("No saved readiness model, scoring with rules only")


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information."""
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra=log_context(
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )
    )

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(
            f"Response: {request.method} {request.url.path} - {response.status_code}",
            extra=log_context(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                process_time_ms=round(process_time * 1000, 2),
            )
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response
    except Exception as e:
        logger.error(
            f"Request failed: {request.method} {request.url.path}",
            exc_info=True,
            extra=log_context(
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
        )
        raise


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    logger.info(
        f"{exc.error_code}: {exc.detail}",
        extra=log_context(path=request.url.path, status_code=exc.status_code, error_code=exc.error_code),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
        headers=exc.headers,
    )


# Error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra=log_context(
            method=request.method,
            path=request.url.path,
        )
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
async def health():
    """
    Health check.

    Returns:
        - 200: Database reachable
        - 503: Database unavailable
    """
    if not check_db_connection():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database": "unavailable",
            }
        )

    return {
        "status": "healthy",
        "timestamp": time.time(),
    }


app.include_router(readiness.router)
