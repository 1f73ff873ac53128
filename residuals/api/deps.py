"""
Dependencies for database sessions, feature flags and request context.
"""
from typing import Generator
from fastapi import Request
from sqlalchemy.orm import Session
from residuals.config import FEATURE_FLAGS, FeatureFlags
from residuals.database import SessionLocal
from residuals.utils import get_logger

logger = get_logger(__name__)

def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()

def get_feature_flags() -> FeatureFlags:
    """Flags resolved at startup; overridden in tests to exercise each combination."""
    return FEATURE_FLAGS

def get_request_id(request: Request) -> str:
    """Request ID set by the logging middleware, or the caller's header."""
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID", "unknown")
