"""FastAPI dependencies: DB session, current user from JWT, shared services.

SECURITY: Supports JWT from:
1. Authorization header (for API clients)
2. httpOnly cookie (for web frontend)
"""
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from casebook.core.config import settings
from casebook.core.exceptions import BusinessError
from casebook.core.security import decode_access_token
from casebook.db.session import SessionLocal
from casebook.models.user import User
from casebook.services.report_service import ReportBuilderService
from casebook.services.tax_service import TaxCalculator

security = HTTPBearer(auto_error=False)

TOKEN_COOKIE = "casebook_token"


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract user ID from JWT token.
    SECURITY: Checks both Authorization header and httpOnly cookie.
    Header takes precedence over cookie.
    """
    token = None

    if credentials:
        token = credentials.credentials
    elif TOKEN_COOKIE in request.cookies:
        token = request.cookies[TOKEN_COOKIE]

    if not token:
        raise BusinessError.unauthorized("missing token")

    sub = decode_access_token(token)
    if not sub:
        raise BusinessError.unauthorized("invalid or expired token")
    return str(sub)


def get_current_user(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> User:
    """Load current user from DB."""
    user = db.get(User, user_id)
    if not user:
        raise BusinessError.unauthorized(f"unknown user {user_id}")
    return user


def get_report_service(request: Request, db: Session = Depends(get_db)) -> ReportBuilderService:
    """Per-request service around the shared (immutable) builder and database."""
    state = request.app.state
    return ReportBuilderService(
        session=db,
        builder=state.query_builder,
        database=state.database,
        default_timeout=settings.REPORT_QUERY_TIMEOUT_SECONDS,
    )


def get_tax_calculator(request: Request) -> TaxCalculator:
    return request.app.state.tax_calculator
