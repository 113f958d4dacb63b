"""
Twofactor Authenticator
TOTP second factor service
"""

__version__ = "1.0.0"
