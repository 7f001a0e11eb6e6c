"""Per-user storage ledger.

`credit` and `debit` read the balance, compute the new value and write it
back in a separate statement. Two concurrent requests for the same user can
both act on a stale balance. `reserve` is the race-free alternative used when
ATOMIC_QUOTA is enabled.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)


def authorize(user: models.User, incoming_bytes: int) -> bool:
    return user.storage_used + incoming_bytes <= user.storage_limit


def remaining(user: models.User) -> int:
    return max(0, user.storage_limit - user.storage_used)


def _read_balance(db: Session, user_id: str) -> int:
    current = db.scalar(
        select(models.User.storage_used).where(models.User.id == user_id)
    )
    if current is None:
        raise NotFound("User profile not found")
    return current


def _write_balance(db: Session, user: models.User, value: int) -> None:
    user.storage_used = value
    user.updated_at = models.utcnow()
    db.commit()
    db.refresh(user)


def credit(db: Session, user: models.User, num_bytes: int) -> int:
    try:
        current = _read_balance(db, user.id)
        _write_balance(db, user, current + num_bytes)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamFailure("Failed to update storage usage") from e
    logger.debug("Credited %d bytes to %s, now %d", num_bytes, user.id, user.storage_used)
    return user.storage_used


def debit(db: Session, user: models.User, num_bytes: int) -> int:
    try:
        current = _read_balance(db, user.id)
        _write_balance(db, user, max(0, current - num_bytes))
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamFailure("Failed to update storage usage") from e
    logger.debug("Debited %d bytes from %s, now %d", num_bytes, user.id, user.storage_used)
    return user.storage_used


def reserve(db: Session, user: models.User, num_bytes: int) -> bool:
    """Increase usage only if the result stays within the limit, in one statement."""
    stmt = (
        update(models.User)
        .where(models.User.id == user.id)
        .where(models.User.storage_used + num_bytes <= models.User.storage_limit)
        .values(
            storage_used=models.User.storage_used + num_bytes,
            updated_at=models.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamFailure("Failed to reserve storage") from e
    db.refresh(user)
    return result.rowcount == 1
