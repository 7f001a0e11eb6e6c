"""Folder and file directory for a single owner.

Every operation takes the calling principal explicitly; rows owned by
someone else are reported as missing.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .auth import Principal
from .classification import CATEGORIES, category_clause
from .errors import DuplicateName, NotFound, UpstreamFailure, ValidationError

logger = logging.getLogger(__name__)

UNSET = object()

SORT_COLUMNS = {
    "name": models.File.name,
    "date": models.File.created_at,
    "size": models.File.size,
    "type": models.File.type,
}
SORT_ORDERS = ("asc", "desc")
DATE_RANGES = ("all", "today", "week", "month", "year")


@dataclass
class FilePage:
    items: List[models.File]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size)

    @property
    def has_next(self) -> bool:
        return (self.page - 1) * self.page_size + self.page_size < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


# ---------- Folders ----------

def get_folder(db: Session, principal: Principal, folder_id: int) -> models.Folder:
    folder = db.get(models.Folder, folder_id)
    if not folder or folder.user_id != principal.id:
        raise NotFound("Folder not found")
    return folder


def list_folders(
    db: Session, principal: Principal, parent_id: Optional[int] = None
) -> List[models.Folder]:
    query = select(models.Folder).where(models.Folder.user_id == principal.id)
    if parent_id is not None:
        query = query.where(models.Folder.parent_id == parent_id)
    else:
        query = query.where(models.Folder.parent_id.is_(None))
    query = query.order_by(models.Folder.name.asc(), models.Folder.id.asc())
    return list(db.scalars(query).all())


def _sibling_exists(
    db: Session, principal: Principal, name: str, parent_id: Optional[int]
) -> bool:
    query = (
        select(models.Folder.id)
        .where(models.Folder.user_id == principal.id)
        .where(models.Folder.name == name)
    )
    if parent_id is not None:
        query = query.where(models.Folder.parent_id == parent_id)
    else:
        query = query.where(models.Folder.parent_id.is_(None))
    return db.scalar(query.limit(1)) is not None


def create_folder(
    db: Session, principal: Principal, name: str, parent_id: Optional[int] = None
) -> models.Folder:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Folder name is required")

    if parent_id is not None:
        get_folder(db, principal, parent_id)

    # read-then-insert; two concurrent requests can still both pass this check
    if _sibling_exists(db, principal, name, parent_id):
        raise DuplicateName()

    folder = models.Folder(user_id=principal.id, name=name, parent_id=parent_id)
    db.add(folder)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error creating folder %r for %s: %s", name, principal.id, e)
        raise UpstreamFailure("Failed to create folder") from e
    db.refresh(folder)
    return folder


def folder_breadcrumb(
    db: Session, principal: Principal, folder_id: Optional[int]
) -> List[dict]:
    """Root-first path down to `folder_id`."""
    chain = []
    seen = set()
    current_id = folder_id
    while current_id is not None and current_id not in seen:
        seen.add(current_id)
        folder = get_folder(db, principal, current_id)
        chain.append(folder)
        current_id = folder.parent_id
    chain.reverse()

    crumbs = [{"id": None, "name": "Root", "path": "/"}]
    path = ""
    for folder in chain:
        path = f"{path}/{folder.name}"
        crumbs.append({"id": folder.id, "name": folder.name, "path": path})
    return crumbs


# ---------- Files ----------

def _range_start(date_range: str, now: datetime) -> Optional[datetime]:
    if date_range == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_range == "week":
        return now - timedelta(days=7)
    if date_range == "month":
        return now - timedelta(days=30)
    if date_range == "year":
        return now - timedelta(days=365)
    return None


def list_files(
    db: Session,
    principal: Principal,
    folder_id: Optional[int] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort_by: str = "date",
    sort_order: str = "desc",
    page: int = 1,
    page_size: int = 50,
    date_range: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FilePage:
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(f"Invalid sortBy: {sort_by}")
    if sort_order not in SORT_ORDERS:
        raise ValidationError(f"Invalid sortOrder: {sort_order}")
    if page < 1 or page_size < 1:
        raise ValidationError("page and pageSize must be positive")

    File = models.File
    query = select(File).where(File.user_id == principal.id)

    if folder_id is not None:
        query = query.where(File.folder_id == folder_id)
    else:
        query = query.where(File.folder_id.is_(None))

    if search:
        query = query.where(
            or_(
                File.name.icontains(search, autoescape=True),
                File.original_name.icontains(search, autoescape=True),
            )
        )

    if category and category != "all":
        if category not in CATEGORIES:
            raise ValidationError(f"Invalid type filter: {category}")
        query = query.where(category_clause(File.type, category))

    if date_range and date_range != "all":
        if date_range not in DATE_RANGES:
            raise ValidationError(f"Invalid dateRange: {date_range}")
        start = _range_start(date_range, now or datetime.now(timezone.utc))
        query = query.where(File.created_at >= start)

    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0

    column = SORT_COLUMNS[sort_by]
    if sort_order == "asc":
        query = query.order_by(column.asc(), File.id.asc())
    else:
        query = query.order_by(column.desc(), File.id.desc())

    query = query.offset((page - 1) * page_size).limit(page_size)
    items = list(db.scalars(query).all())
    return FilePage(items=items, page=page, page_size=page_size, total=total)


def get_file(db: Session, principal: Principal, file_id: int) -> models.File:
    db_file = db.get(models.File, file_id)
    if not db_file or db_file.user_id != principal.id:
        raise NotFound("File not found")
    return db_file


def update_file(
    db: Session,
    principal: Principal,
    file_id: int,
    name: Optional[str] = None,
    folder_id=UNSET,
) -> models.File:
    """Partial update. `name=None` keeps the name, `folder_id=None` moves to root."""
    db_file = get_file(db, principal, file_id)

    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("File name is required")
        db_file.name = name

    if folder_id is not UNSET:
        if folder_id is not None:
            get_folder(db, principal, folder_id)
        db_file.folder_id = folder_id

    db_file.updated_at = models.utcnow()
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error updating file %s: %s", file_id, e)
        raise UpstreamFailure("Failed to update file") from e
    db.refresh(db_file)
    return db_file


def rename_file(db: Session, principal: Principal, file_id: int, new_name: str) -> models.File:
    return update_file(db, principal, file_id, name=new_name)


def move_file(
    db: Session, principal: Principal, file_id: int, new_folder_id: Optional[int]
) -> models.File:
    return update_file(db, principal, file_id, folder_id=new_folder_id)


def remove_file(db: Session, db_file: models.File) -> None:
    try:
        db.delete(db_file)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error deleting file %s from database: %s", db_file.id, e)
        raise UpstreamFailure("Failed to delete file") from e


def delete_file_record(db: Session, principal: Principal, file_id: int) -> models.File:
    db_file = get_file(db, principal, file_id)
    remove_file(db, db_file)
    return db_file
