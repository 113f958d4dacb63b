"""
TOTP secret handling and code verification

Secrets are 20 random bytes, carried as base32 text. Codes are 6 digit
HMAC-SHA1 one-time passwords over 30 second time-steps (RFC 6238).
"""

import base64
import binascii
import hmac
from typing import Union

import pyotp

from twofactor.auth.exceptions import (
    InvalidCode,
    InvalidCodeFormat,
    InvalidSecretFormat,
    ReplayedCode,
)

STEP_SECONDS = 30
CODE_DIGITS = 6
SECRET_LENGTH = 20


# ============== Secrets ==============

def generate_totp_secret() -> str:
    """Generate a new TOTP secret, 20 random bytes as 32 base32 characters"""
    return pyotp.random_base32(length=32)


def decode_secret(secret: str) -> bytes:
    """
    Decode a base32 secret and check its length

    Args:
        secret: Base32 text, uppercase and correctly padded

    Returns:
        The raw secret bytes

    Raises:
        InvalidSecretFormat: Not base32, or not exactly 20 bytes
    """
    if not isinstance(secret, str):
        raise InvalidSecretFormat("Invalid totp secret")
    try:
        decoded = base64.b32decode(secret, casefold=False)
    except (binascii.Error, ValueError):
        raise InvalidSecretFormat("Invalid totp secret") from None

    if len(decoded) != SECRET_LENGTH:
        raise InvalidSecretFormat("Invalid key length")
    return decoded


def encode_secret(raw: bytes) -> str:
    """Encode raw secret bytes as base32 text"""
    return base64.b32encode(raw).decode("ascii")


def get_totp_uri(secret: str, username: str, issuer: str = "Twofactor") -> str:
    """Generate TOTP provisioning URI for QR code"""
    totp = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=STEP_SECONDS)
    return totp.provisioning_uri(name=username, issuer_name=issuer)


# ============== Verification ==============

def drift_steps(disable_time_drift: bool) -> int:
    """Steps accepted before and after the current one"""
    return 0 if disable_time_drift else 1


def time_step(now: Union[int, float]) -> int:
    """Index of the 30 second window containing `now`"""
    return int(now // STEP_SECONDS)


def code_at_step(secret: bytes, step: int) -> str:
    """The code valid during time-step `step`"""
    # TOTP at step * 30 is HOTP with the time-step as counter
    return pyotp.HOTP(encode_secret(secret), digits=CODE_DIGITS).at(step)


def check_code_format(code: str) -> str:
    """Reject codes that are not made of ASCII digits"""
    if not isinstance(code, str) or not code or not (code.isascii() and code.isdigit()):
        raise InvalidCodeFormat()
    return code


def verify_code(
    secret: bytes,
    code: str,
    last_used_step: int,
    now: Union[int, float],
    drift: int,
) -> int:
    """
    Check a submitted code against the drift window

    Offsets are scanned from the most past to the most future. The first
    matching offset decides: it is accepted if its time-step is newer than
    `last_used_step`, otherwise the code is a replay and the scan stops.

    Args:
        secret: Raw 20 byte secret
        code: Submitted code
        last_used_step: Highest time-step accepted so far
        now: Current UNIX time in seconds
        drift: Number of steps accepted on each side of the current one

    Returns:
        The accepted time-step, to be stored as the new last used step

    Raises:
        ReplayedCode: The code matched a step that was already consumed
        InvalidCode: No step in the window matched
    """
    base_step = time_step(now)
    for offset in range(-drift, drift + 1):
        step = base_step + offset
        if step < 0:
            continue
        if not hmac.compare_digest(code_at_step(secret, step).encode(), code.encode()):
            continue
        if step > last_used_step:
            return step
        raise ReplayedCode(f"TOTP code for step {step} already used (last used {last_used_step})")

    raise InvalidCode(f"No TOTP code matched within {drift} steps of step {base_step}")
