"""
Proof of identity for two factor settings changes
"""

from typing import Optional

from twofactor.auth.enrollment import EnrollmentFlow
from twofactor.auth.exceptions import IdentityVerificationFailed
from twofactor.auth.models import User


def validate_identity(
    user: User,
    master_password_hash: Optional[str],
    otp: Optional[str],
    flow: EnrollmentFlow,
    ip: Optional[str] = None,
) -> None:
    """
    Require either the password or a current authenticator code

    Raises:
        IdentityVerificationFailed: Wrong password, or neither/both given
        InvalidCode, ReplayedCode, InvalidCodeFormat: The code was rejected
    """
    if master_password_hash is not None and otp is None:
        if not user.verify_password(master_password_hash):
            raise IdentityVerificationFailed("Invalid password")
    elif otp is not None and master_password_hash is None:
        flow.validate_login_code(user, otp, ip)
    else:
        raise IdentityVerificationFailed("No validation provided")
