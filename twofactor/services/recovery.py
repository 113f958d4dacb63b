"""
Recovery code issuing

The recovery code lets a user remove all second factors when the
authenticator device is lost. It is issued once and kept until used.
"""

import base64
import hmac
import secrets
from typing import Optional

from twofactor.auth.models import User

RECOVERY_CODE_BYTES = 20


def generate_recovery_code() -> str:
    """20 random bytes as base32 text"""
    return base64.b32encode(secrets.token_bytes(RECOVERY_CODE_BYTES)).decode("ascii")


def issue_recovery_code(user: User) -> str:
    """Give the user a recovery code unless they already have one"""
    if user.totp_recover is None:
        user.totp_recover = generate_recovery_code()
    return user.totp_recover


def check_recovery_code(user: User, code: Optional[str]) -> bool:
    """Compare a submitted recovery code, ignoring case and spaces"""
    if not user.totp_recover or not code:
        return False
    normalized = code.replace(" ", "").upper()
    return hmac.compare_digest(normalized.encode(), user.totp_recover.encode())
