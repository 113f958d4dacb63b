"""
Authentication module for the Twofactor Authenticator service
"""

from .models import TwoFactor, TwoFactorType, User
from .jwt_handler import create_access_token, verify_token

__all__ = [
    "TwoFactor",
    "TwoFactorType",
    "User",
    "create_access_token",
    "verify_token",
]
