"""
Two factor API routes for the Twofactor Authenticator service
"""

from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from twofactor.auth.dependencies import (
    get_client_ip,
    get_enrollment_flow,
    get_revocation_flow,
    require_auth,
)
from twofactor.auth.enrollment import EnrollmentFlow
from twofactor.auth.exceptions import IdentityVerificationFailed
from twofactor.auth.factors import Active
from twofactor.auth.identity import validate_identity
from twofactor.auth.models import User
from twofactor.auth.revocation import RevocationFlow
from twofactor.auth.totp_service import get_totp_uri
from twofactor.config import Settings, get_settings

router = APIRouter(prefix="/api/two-factor", tags=["Two Factor"])


# ============== Pydantic Models ==============

class PasswordOrOtpData(BaseModel):
    master_password_hash: Optional[str] = None
    otp: Optional[str] = None


class EnableAuthenticatorData(BaseModel):
    key: str
    token: Union[int, str]
    master_password_hash: Optional[str] = None
    otp: Optional[str] = None


class DisableAuthenticatorData(BaseModel):
    key: str
    master_password_hash: str
    type: Union[int, str]


class RecoverData(BaseModel):
    email: str
    master_password_hash: str
    recovery_code: str


# ============== Two Factor Routes ==============

@router.get("")
async def get_twofactor(
    user: User = Depends(require_auth),
    flow: EnrollmentFlow = Depends(get_enrollment_flow),
):
    """List the user's second factors"""
    factors = flow.store.find_all(user.id)
    return {
        "data": [f.to_dict() for f in factors],
        "object": "list",
        "continuationToken": None,
    }


@router.post("/get-authenticator")
async def generate_authenticator(
    data: PasswordOrOtpData,
    request: Request,
    user: User = Depends(require_auth),
    flow: EnrollmentFlow = Depends(get_enrollment_flow),
    settings: Settings = Depends(get_settings),
):
    """Return the enrolled secret, or a new one to activate"""
    validate_identity(user, data.master_password_hash, data.otp, flow, get_client_ip(request))

    state = flow.get_or_create_secret(user)
    return {
        "enabled": isinstance(state, Active),
        "key": state.secret,
        "uri": get_totp_uri(state.secret, user.email or user.username, settings.totp_issuer),
        "object": "twoFactorAuthenticator",
    }


@router.post("/authenticator")
async def activate_authenticator(
    data: EnableAuthenticatorData,
    request: Request,
    user: User = Depends(require_auth),
    flow: EnrollmentFlow = Depends(get_enrollment_flow),
):
    """Enable the authenticator after checking a code for the given key"""
    ip = get_client_ip(request)
    validate_identity(user, data.master_password_hash, data.otp, flow, ip)

    flow.activate(user, data.key, str(data.token), ip)

    return {
        "enabled": True,
        "key": data.key,
        "object": "twoFactorAuthenticator",
    }


@router.put("/authenticator")
async def activate_authenticator_put(
    data: EnableAuthenticatorData,
    request: Request,
    user: User = Depends(require_auth),
    flow: EnrollmentFlow = Depends(get_enrollment_flow),
):
    """Same as POST, for clients that use PUT"""
    return await activate_authenticator(data, request, user, flow)


@router.delete("/authenticator")
async def disable_authenticator(
    data: DisableAuthenticatorData,
    request: Request,
    user: User = Depends(require_auth),
    revocation: RevocationFlow = Depends(get_revocation_flow),
):
    """Remove a second factor, the key must match the stored one"""
    try:
        kind = int(data.type)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid two factor type"
        )

    if not user.verify_password(data.master_password_hash):
        raise IdentityVerificationFailed("Invalid password")

    revocation.disable(user, kind, data.key, get_client_ip(request))

    return {
        "enabled": False,
        "keys": kind,
        "object": "twoFactorProvider",
    }


@router.post("/get-recover")
async def get_recover(
    data: PasswordOrOtpData,
    request: Request,
    user: User = Depends(require_auth),
    flow: EnrollmentFlow = Depends(get_enrollment_flow),
):
    """Show the user's recovery code"""
    validate_identity(user, data.master_password_hash, data.otp, flow, get_client_ip(request))
    return {
        "code": user.totp_recover,
        "object": "twoFactorRecover",
    }


@router.post("/recover")
async def recover(
    data: RecoverData,
    request: Request,
    revocation: RevocationFlow = Depends(get_revocation_flow),
):
    """Remove all second factors using the recovery code"""
    revocation.recover(data.email, data.master_password_hash, data.recovery_code, get_client_ip(request))
    return {}
