"""
Authentication API routes for the Twofactor Authenticator service
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from twofactor.auth.dependencies import (
    get_client_ip,
    get_current_user,
    get_enrollment_flow,
    require_auth,
)
from twofactor.auth.enrollment import EnrollmentFlow
from twofactor.auth.factors import Active
from twofactor.auth.jwt_handler import create_access_token
from twofactor.auth.models import EventType, TwoFactorType, User
from twofactor.config import Settings, get_settings
from twofactor.database import get_db, transaction
from twofactor.services.event_log import log_user_event

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# ============== Pydantic Models ==============

class LoginRequest(BaseModel):
    username: str
    password: str
    two_factor_token: Optional[str] = None
    two_factor_provider: Optional[int] = None


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


# ============== Auth Routes ==============

@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    response: Response,
    http_request: Request,
    db: Session = Depends(get_db),
    flow: EnrollmentFlow = Depends(get_enrollment_flow),
    settings: Settings = Depends(get_settings),
):
    """Authenticate user, check the second factor and return JWT token"""
    ip = get_client_ip(http_request)
    user = db.query(User).filter(User.username == request.username).first()

    if not user or not user.verify_password(request.password):
        if user:
            with transaction(db):
                log_user_event(db, EventType.USER_FAILED_LOG_IN, user.id, ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is disabled"
        )

    if isinstance(flow.store.state(user.id), Active):
        if request.two_factor_token is None:
            providers = [f.atype for f in flow.store.find_all(user.id) if f.enabled]
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Two factor required.", "providers": providers}
            )
        if request.two_factor_provider not in (None, TwoFactorType.AUTHENTICATOR):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Unsupported two factor provider"
            )
        flow.validate_login_code(user, request.two_factor_token, ip)

    with transaction(db):
        user.last_login = datetime.now(timezone.utc)
        log_user_event(db, EventType.USER_LOGGED_IN, user.id, ip)

    token = create_access_token(
        data={"sub": user.username, "user_id": user.id},
        settings=settings,
    )

    # Set cookie for browser sessions
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        max_age=settings.jwt_expire_minutes * 60,
        samesite="lax"
    )

    return LoginResponse(
        access_token=token,
        user=user.to_dict()
    )


@router.post("/logout")
async def logout(response: Response):
    """Logout and clear session"""
    response.delete_cookie("access_token")
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_me(user: User = Depends(require_auth)):
    """Get current user info"""
    return user.to_dict()


@router.get("/check")
async def check_auth(user: Optional[User] = Depends(get_current_user)):
    """Check if user is authenticated"""
    if user:
        return {"authenticated": True, "user": user.to_dict()}
    return {"authenticated": False}
