"""FastAPI dependencies for authentication and database access."""

from typing import Generator

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from rentema.core.security import decode_session_token
from rentema.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "rentema_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    
    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_manager(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Get the authenticated property manager from the session cookie.
    
    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - Manager exists
    - Token version matches (for revocation support)
    
    Raises:
        HTTPException 401: Authentication failed
    """
    from rentema.db.models import PropertyManager
    
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    
    try:
        payload = decode_session_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid session")
    
    manager = db.get(PropertyManager, _parse_uuid(payload.get("sub")))
    if not manager:
        raise HTTPException(status_code=401, detail="Manager not found")
    
    # Token version check (revocation support)
    if manager.token_version != payload.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")
    
    return manager


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.
    
    Apply to state-changing endpoints (POST, PUT, DELETE).
    
    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403, 
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )


def _parse_uuid(value):
    from uuid import UUID

    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid session")
