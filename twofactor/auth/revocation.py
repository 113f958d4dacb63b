"""
Removing second factors
"""

import hmac
import logging
from typing import Optional

from sqlalchemy.orm import Session

from twofactor.auth.exceptions import IdentityVerificationFailed, MismatchedKey
from twofactor.auth.factors import FactorStore
from twofactor.auth.models import EventType, User
from twofactor.config import Settings
from twofactor.database import transaction
from twofactor.services.event_log import log_user_event
from twofactor.services.policy import enforce_2fa_policy
from twofactor.services.recovery import check_recovery_code

logger = logging.getLogger(__name__)


class RevocationFlow:
    """Disables factors and applies the organization policy afterwards"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.store = FactorStore(db)

    def disable(self, user: User, kind: int, key: str, ip: Optional[str] = None) -> bool:
        """
        Remove the user's factor of `kind` if `key` matches its secret

        Disabling a factor that does not exist is not an error.

        Returns:
            True if a factor was removed

        Raises:
            MismatchedKey: `key` differs from the stored secret
        """
        removed = False
        with transaction(self.db):
            factor = self.store.find(user.id, kind)
            if factor is not None:
                if not hmac.compare_digest(factor.data.encode(), (key or "").encode()):
                    raise MismatchedKey(
                        f"TOTP key for user {user.email} does not match recorded value, cannot deactivate"
                    )
                self.store.delete(factor)
                log_user_event(self.db, EventType.USER_DISABLED_2FA, user.id, ip)
                removed = True

            if self.store.count_for_user(user.id) == 0:
                enforce_2fa_policy(self.db, user, user.id, self.settings, ip)

        if removed:
            logger.info(f"Two factor type {int(kind)} disabled for user {user.id}")
        return removed

    def recover(
        self,
        email: str,
        master_password_hash: str,
        recovery_code: str,
        ip: Optional[str] = None,
    ) -> User:
        """
        Remove all of a user's factors with their recovery code

        Raises:
            IdentityVerificationFailed: Unknown user, wrong password or wrong code
        """
        user = self.db.query(User).filter(User.email == (email or "").strip().lower()).first()
        if user is None or not user.verify_password(master_password_hash):
            raise IdentityVerificationFailed("Username or password is incorrect. Try again.")

        if not check_recovery_code(user, recovery_code):
            raise IdentityVerificationFailed("Recovery code is incorrect. Try again.")

        with transaction(self.db):
            count = self.store.delete_all(user.id)
            user.totp_recover = None
            log_user_event(self.db, EventType.USER_RECOVERED_2FA, user.id, ip)
            enforce_2fa_policy(self.db, user, user.id, self.settings, ip)

        logger.info(f"Removed {count} two factor provider(s) for user {user.id} with recovery code")
        return user
