"""
Factor lifecycle states and persistence

A factor is Unenrolled, Pending (secret handed out, nothing stored) or
Active (secret stored, codes accepted). Only Active has a database row.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from twofactor.auth.exceptions import FactorConflict, ReplayedCode
from twofactor.auth.models import UNUSED_STEP, TwoFactor, TwoFactorType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unenrolled:
    pass


@dataclass(frozen=True)
class Pending:
    secret: str


@dataclass(frozen=True)
class Active:
    secret: str
    last_used_step: int


FactorState = Union[Unenrolled, Pending, Active]


class FactorStore:
    """
    Reads and writes TwoFactor rows for one database session

    Writes are flushed, never committed; the calling flow owns the
    transaction. Advancing `last_used` is a single conditional UPDATE so two
    requests carrying the same code cannot both succeed.
    """

    def __init__(self, db: Session):
        self.db = db

    def find(self, user_id: int, kind: int) -> Optional[TwoFactor]:
        return (
            self.db.query(TwoFactor)
            .filter(TwoFactor.user_id == user_id, TwoFactor.atype == int(kind))
            .first()
        )

    def find_all(self, user_id: int) -> List[TwoFactor]:
        return self.db.query(TwoFactor).filter(TwoFactor.user_id == user_id).all()

    def count_for_user(self, user_id: int) -> int:
        return (
            self.db.query(func.count(TwoFactor.id))
            .filter(TwoFactor.user_id == user_id)
            .scalar()
        )

    def state(self, user_id: int, kind: int = TwoFactorType.AUTHENTICATOR) -> FactorState:
        """Current lifecycle state of a factor"""
        factor = self.find(user_id, kind)
        if factor is None or not factor.enabled:
            return Unenrolled()
        return Active(secret=factor.data, last_used_step=factor.last_used)

    def last_used_step(self, user_id: int, kind: int) -> int:
        """Last accepted step of any existing row, enabled or not"""
        factor = self.find(user_id, kind)
        if factor is None:
            return UNUSED_STEP
        return factor.last_used

    def activate(self, user_id: int, kind: int, secret: str, new_step: int) -> TwoFactor:
        """
        Store an enabled factor with its first accepted step

        Raises:
            ReplayedCode: Another request already consumed `new_step`
            FactorConflict: Another request created the row first
        """
        factor = self.find(user_id, kind)
        if factor is None:
            factor = TwoFactor(
                user_id=user_id,
                atype=int(kind),
                enabled=True,
                data=secret,
                last_used=new_step,
            )
            self.db.add(factor)
            try:
                self.db.flush()
            except IntegrityError as exc:
                logger.warning(f"Concurrent activation for user {user_id} type {int(kind)}")
                raise FactorConflict() from exc
            return factor

        self._conditional_update(factor, new_step, enabled=True, data=secret, last_used=new_step)
        return factor

    def advance(self, user_id: int, kind: int, new_step: int) -> None:
        """Move `last_used` forward on an enabled factor"""
        factor = self.find(user_id, kind)
        if factor is None or not factor.enabled:
            raise ReplayedCode(f"Factor for user {user_id} was removed during verification")
        self._conditional_update(factor, new_step, last_used=new_step)

    def delete(self, factor: TwoFactor) -> None:
        self.db.delete(factor)
        self.db.flush()

    def delete_all(self, user_id: int) -> int:
        factors = self.find_all(user_id)
        for factor in factors:
            self.db.delete(factor)
        self.db.flush()
        return len(factors)

    def _conditional_update(self, factor: TwoFactor, new_step: int, **values) -> None:
        result = self.db.execute(
            update(TwoFactor)
            .where(TwoFactor.id == factor.id, TwoFactor.last_used < new_step)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ReplayedCode(f"Step {new_step} was consumed by a concurrent request")
        self.db.expire(factor)
