"""Fleet-wide statistics for the admin dashboard."""
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from . import config, models
from .classification import AUDIO, DOCUMENT, IMAGE, VIDEO, classify

_BUCKETS = {
    IMAGE: "images",
    VIDEO: "videos",
    AUDIO: "audio",
    DOCUMENT: "documents",
}


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def compute_stats(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)

    total_users = db.scalar(select(func.count(models.User.id))) or 0
    total_files = db.scalar(select(func.count(models.File.id))) or 0
    # trusts the ledger rather than summing file sizes
    total_storage = db.scalar(select(func.coalesce(func.sum(models.User.storage_used), 0))) or 0

    window_start = now - timedelta(days=config.ACTIVE_USER_WINDOW_DAYS)
    active_users = db.scalar(
        select(func.count(func.distinct(models.File.user_id)))
        .where(models.File.created_at >= window_start)
    ) or 0

    new_users = db.scalar(
        select(func.count(models.User.id))
        .where(models.User.created_at >= start_of_month(now))
    ) or 0

    usage = {"images": 0, "videos": 0, "audio": 0, "documents": 0, "others": 0}
    for media_type, size in db.execute(select(models.File.type, models.File.size)):
        usage[_BUCKETS.get(classify(media_type), "others")] += size or 0

    return {
        "totalUsers": total_users,
        "totalFiles": total_files,
        "totalStorage": total_storage,
        "activeUsers": active_users,
        "newUsersThisMonth": new_users,
        "storageUsageByType": usage,
    }


def list_users(
    db: Session,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[models.User], dict]:
    query = select(models.User)
    if search:
        query = query.where(
            or_(
                models.User.email.icontains(search, autoescape=True),
                models.User.full_name.icontains(search, autoescape=True),
            )
        )

    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
    users = db.scalars(
        query.order_by(models.User.created_at.desc(), models.User.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    pagination = {
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": math.ceil(total / page_size),
        "hasNext": page * page_size < total,
        "hasPrev": page > 1,
    }
    return list(users), pagination
