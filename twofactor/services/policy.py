"""
Organization two-step login policy

Members of organizations that require two-step login lose their membership
when their last second factor is removed. Owners and admins are exempt.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from twofactor.auth.models import (
    EventType,
    Membership,
    MembershipRole,
    MembershipStatus,
    Organization,
    User,
)
from twofactor.config import Settings
from twofactor.services.email_service import send_2fa_removed_from_org
from twofactor.services.event_log import log_org_event

logger = logging.getLogger(__name__)


def find_memberships_requiring_2fa(db: Session, user_id: int) -> List[Membership]:
    """Accepted or confirmed memberships in organizations that require 2FA"""
    return (
        db.query(Membership)
        .join(Organization, Organization.id == Membership.org_id)
        .filter(
            Membership.user_id == user_id,
            Organization.require_two_factor.is_(True),
            Membership.status >= MembershipStatus.ACCEPTED,
        )
        .all()
    )


def enforce_2fa_policy(
    db: Session,
    user: User,
    act_user_id: int,
    settings: Settings,
    ip: Optional[str] = None,
) -> List[Membership]:
    """
    Revoke the user's memberships that require two-step login

    Called after the user's factor count drops to zero. Changes are added to
    the session; the caller commits.

    Returns:
        The memberships that were revoked
    """
    revoked = []
    for membership in find_memberships_requiring_2fa(db, user.id):
        if membership.role.rank >= MembershipRole.ADMIN.rank:
            continue

        if settings.mail_enabled and user.email:
            org = db.get(Organization, membership.org_id)
            send_2fa_removed_from_org(settings.smtp_config_path, user.email, org.name)

        membership.revoke()
        log_org_event(
            db,
            EventType.ORGANIZATION_USER_REVOKED,
            membership.id,
            membership.org_id,
            act_user_id,
            ip,
        )
        revoked.append(membership)

    if revoked:
        logger.info(f"Revoked {len(revoked)} membership(s) of user {user.id} for missing 2FA")
    db.flush()
    return revoked
