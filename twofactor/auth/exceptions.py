"""
Second factor errors

Every error carries the HTTP status and the message shown to clients. The
internal message may hold more detail and is only logged.
"""

from typing import Optional


class TwoFactorError(Exception):
    """Base class for second factor failures"""
    status_code = 400
    public_message = "Two factor request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class InvalidSecretFormat(TwoFactorError):
    """Secret is not base32 or does not decode to 20 bytes"""
    public_message = "Invalid TOTP secret"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.public_message = str(self)


class InvalidCodeFormat(TwoFactorError):
    public_message = "TOTP code is not a number"


class InvalidCode(TwoFactorError):
    """No offset in the drift window matched"""
    public_message = "Invalid TOTP code"


class ReplayedCode(TwoFactorError):
    """A matching code was found for an already consumed time-step"""
    public_message = "Invalid TOTP code"


class MismatchedKey(TwoFactorError):
    public_message = "TOTP key does not match recorded value, cannot deactivate"


class IdentityVerificationFailed(TwoFactorError):
    public_message = "Invalid password"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.public_message = str(self)


class FactorConflict(TwoFactorError):
    """A concurrent request wrote the same factor first"""
    status_code = 409
    public_message = "Two factor settings were changed by another request"
