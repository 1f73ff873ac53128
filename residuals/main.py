"""
FastAPI application main module.
Middleware, domain error mapping and health checks around the residuals engine.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import uuid
import os
from contextlib import asynccontextmanager
from residuals.api.v1 import api_router
from residuals.config import FEATURE_FLAGS
from residuals.database import engine
from residuals.database import Base
from residuals.errors import (
    DependencyError,
    IncompleteDealError,
    InvalidStateTransition,
    NotFoundError,
    ResidualsError,
    ValidationError,
)
from residuals.utils import setup_logging, get_logger
from residuals.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/app.log"),
    enable_console=True
)

logger = get_logger(__name__)

SERVICE_NAME = "residual-reconciliation"
SERVICE_VERSION = "1.0.0"

# Most specific class first; first isinstance match wins
ERROR_STATUS_CODES: list[tuple[type[ResidualsError], int]] = [
    (ValidationError, 400),
    (IncompleteDealError, 400),
    (NotFoundError, 404),
    (InvalidStateTransition, 409),
    (DependencyError, 503),
]


def status_code_for(exc: ResidualsError) -> int:
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Application startup initiated", feature_flags=FEATURE_FLAGS.__dict__)
    try:
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
        # Post-commit hooks for event confirmation; empty until a sync target is wired in
        app.state.post_commit_hooks = []
        logger.info("Application startup completed successfully")
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown completed")

app = FastAPI(
    title="Residual Reconciliation Engine",
    description="""
    Ingests merchant residual CSV exports, confirms residual events into
    per-partner payouts, rebuilds deals from payout history and manages
    adjustment batches over the audit log.
    """,
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# Request ID and request/response logging middleware
@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and request/response logging.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("User-Agent"),
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    process_time = time.time() - request.state.start_time
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )

    return response

def _error_response(request: Request, status_code: int, message, **extra) -> JSONResponse:
    """Uniform failure envelope: success flag, message, request id and any extra keys."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message,
            **extra,
            "request_id": getattr(request.state, "request_id", "unknown"),
        }
    )

@app.exception_handler(ResidualsError)
async def residuals_exception_handler(request: Request, exc: ResidualsError):
    """Map domain errors onto HTTP status codes with their structured context."""
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Domain error",
        error_type=type(exc).__name__,
        error=exc.message,
        context=exc.context,
        status_code=status_code,
        request_id=getattr(request.state, "request_id", None),
        url=str(request.url),
        method=request.method
    )
    return _error_response(
        request, status_code, exc.message, error=type(exc).__name__, details=jsonable_encoder(exc.context)
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Pydantic rejections of request bodies and path parameters."""
    logger.warning("Request validation failed", errors=exc.errors(), url=str(request.url))
    return _error_response(request, 422, "Request validation failed", details=jsonable_encoder(exc.errors()))

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail, url=str(request.url))
    return _error_response(request, exc.status_code, exc.detail)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Anything that escaped the domain error taxonomy is a 500."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=getattr(request.state, "request_id", None),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )
    return _error_response(request, 500, "Internal server error")

@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check():
    """Health check with database reachability and outbound breaker state."""
    health_status = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "checks": {}
    }

    try:
        from residuals.database import SessionLocal
        from sqlalchemy import text
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    health_status["checks"]["circuit_breakers"] = GLOBAL_CIRCUIT_BREAKER.snapshot()
    return health_status

@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Residual Reconciliation Engine API",
        "version": SERVICE_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }

app.include_router(api_router, prefix="/api/v1")

# Development server configuration
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "residuals.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["residuals"],
        log_level="info",
        access_log=True
    )
