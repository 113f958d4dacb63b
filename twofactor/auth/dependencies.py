"""
Authentication dependencies for FastAPI
"""

import time
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from twofactor.auth.enrollment import EnrollmentFlow
from twofactor.auth.jwt_handler import verify_token
from twofactor.auth.models import User
from twofactor.auth.revocation import RevocationFlow
from twofactor.config import Settings, get_settings
from twofactor.database import get_db

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_clock() -> Callable[[], float]:
    """Dependency returning the time source used for code verification"""
    return time.time


def get_client_ip(request: Request) -> Optional[str]:
    """Client address, honouring X-Forwarded-For from a reverse proxy"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_enrollment_flow(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], float] = Depends(get_clock),
) -> EnrollmentFlow:
    return EnrollmentFlow(db, settings, clock)


def get_revocation_flow(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RevocationFlow:
    return RevocationFlow(db, settings)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[User]:
    """
    Get the current authenticated user from JWT token

    Returns None if no valid token (for optional auth)
    Raises HTTPException for invalid tokens
    """
    # Check for token in Authorization header, then cookie (for browser sessions)
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get("access_token")

    if not token:
        return None

    payload = verify_token(token, settings)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    username = payload.get("sub")
    if not username:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload"
        )

    user = db.query(User).filter(User.username == username).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled"
        )

    return user


async def require_auth(
    user: Optional[User] = Depends(get_current_user)
) -> User:
    """
    Require authentication - raises 401 if not authenticated
    """
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user
