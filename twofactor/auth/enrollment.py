"""
Authenticator enrollment and code verification

Secrets are handed out without being stored. The factor is written only
after a code generated from the secret has been verified.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from twofactor.auth.exceptions import InvalidCode, ReplayedCode
from twofactor.auth.factors import Active, FactorState, FactorStore, Pending
from twofactor.auth.models import EventType, TwoFactorType, User
from twofactor.auth.totp_service import (
    check_code_format,
    decode_secret,
    drift_steps,
    encode_secret,
    generate_totp_secret,
    time_step,
    verify_code,
)
from twofactor.config import Settings
from twofactor.database import transaction
from twofactor.services.event_log import log_user_event
from twofactor.services.recovery import issue_recovery_code

logger = logging.getLogger(__name__)

AUTHENTICATOR = TwoFactorType.AUTHENTICATOR


class EnrollmentFlow:
    """
    Enrolls and checks the authenticator factor of a user

    Args:
        db: Database session, committed by this flow
        settings: Runtime settings, read once per flow
        clock: Source of the current UNIX time
    """

    def __init__(self, db: Session, settings: Settings, clock: Callable[[], float] = time.time):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.store = FactorStore(db)
        self.drift = drift_steps(settings.authenticator_disable_time_drift)

    def get_or_create_secret(self, user: User) -> FactorState:
        """The enrolled secret, or a new one that is not stored yet"""
        state = self.store.state(user.id, AUTHENTICATOR)
        if isinstance(state, Active):
            return state
        return Pending(secret=generate_totp_secret())

    def activate(self, user: User, secret: str, code: str, ip: Optional[str] = None) -> Active:
        """
        Verify a code for a new secret and store the factor

        Raises:
            InvalidSecretFormat: The secret is malformed
            InvalidCode, ReplayedCode: The code was rejected
        """
        raw_secret = decode_secret(secret)
        canonical = encode_secret(raw_secret)

        try:
            with transaction(self.db):
                last_used = self.store.last_used_step(user.id, AUTHENTICATOR)
                new_step = self._verify(user, raw_secret, code, last_used, ip)
                self.store.activate(user.id, AUTHENTICATOR, canonical, new_step)
                issue_recovery_code(user)
                log_user_event(self.db, EventType.USER_UPDATED_2FA, user.id, ip)
        except (InvalidCode, ReplayedCode):
            self._record_failure(user, ip)
            raise

        logger.info(f"Authenticator enabled for user {user.id}")
        return Active(secret=canonical, last_used_step=new_step)

    def validate_login_code(self, user: User, code: str, ip: Optional[str] = None) -> int:
        """
        Check a login code against the user's enabled authenticator

        Returns:
            The accepted time-step

        Raises:
            InvalidCodeFormat: The code is not numeric
            InvalidCode, ReplayedCode: The code was rejected
        """
        check_code_format(code)

        try:
            with transaction(self.db):
                state = self.store.state(user.id, AUTHENTICATOR)
                if not isinstance(state, Active):
                    raise InvalidCode(f"User {user.id} has no enabled authenticator")
                raw_secret = decode_secret(state.secret)
                new_step = self._verify(user, raw_secret, code, state.last_used_step, ip)
                self.store.advance(user.id, AUTHENTICATOR, new_step)
        except (InvalidCode, ReplayedCode):
            self._record_failure(user, ip)
            raise

        return new_step

    def _verify(self, user: User, secret: bytes, code: str, last_used: int, ip: Optional[str]) -> int:
        now = self.clock()
        try:
            step = verify_code(secret, code, last_used, now, self.drift)
        except ReplayedCode:
            logger.warning(
                f"This TOTP or a TOTP code within {self.drift} steps back or forward has "
                f"already been used! User: {user.id} IP: {ip}"
            )
            raise
        except InvalidCode:
            server_time = datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
            logger.warning(f"Invalid TOTP code! Server time: {server_time} User: {user.id} IP: {ip}")
            raise

        offset = step - time_step(now)
        if offset != 0:
            logger.warning(f"TOTP Time drift detected. The step offset is {offset}")
        return step

    def _record_failure(self, user: User, ip: Optional[str]):
        with transaction(self.db):
            log_user_event(self.db, EventType.USER_FAILED_LOG_IN_2FA, user.id, ip)
