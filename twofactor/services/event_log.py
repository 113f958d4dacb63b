"""
Account security event log
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from twofactor.auth.models import Event, EventType

logger = logging.getLogger(__name__)


def log_user_event(
    db: Session,
    event_type: EventType,
    user_id: int,
    ip: Optional[str] = None,
) -> Event:
    """Record an event about a user's own account (added, not committed)"""
    event = Event(
        event_type=int(event_type),
        user_id=user_id,
        act_user_id=user_id,
        ip_address=ip,
    )
    db.add(event)
    logger.info(f"Event {EventType(event_type).name} for user {user_id} from {ip}")
    return event


def log_org_event(
    db: Session,
    event_type: EventType,
    membership_id: int,
    org_id: int,
    act_user_id: int,
    ip: Optional[str] = None,
) -> Event:
    """Record an event about an organization membership (added, not committed)"""
    event = Event(
        event_type=int(event_type),
        org_id=org_id,
        membership_id=membership_id,
        act_user_id=act_user_id,
        ip_address=ip,
    )
    db.add(event)
    logger.info(
        f"Event {EventType(event_type).name} for membership {membership_id} "
        f"in org {org_id} by user {act_user_id}"
    )
    return event


def get_user_events(db: Session, user_id: int, limit: int = 50):
    """Most recent events for a user, newest first"""
    return (
        db.query(Event)
        .filter(Event.user_id == user_id)
        .order_by(Event.created_at.desc())
        .limit(limit)
        .all()
    )
