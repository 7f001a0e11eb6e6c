"""Upload and delete sequences.

Upload: validate -> authorize quota -> store bytes -> record metadata ->
credit ledger. Validation and quota failures happen before any side effect.
A metadata failure removes the stored bytes on a best-effort basis. A ledger
failure after the record is committed is logged and the upload still counts
as completed.

Delete: lookup -> remove bytes (best effort) -> remove record -> debit
ledger (best effort).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import BinaryIO, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config, directory, models, quota
from .auth import Principal
from .classification import format_file_size, is_allowed_type, is_within_size_limit
from .errors import CloudVaultError, QuotaExceeded, UpstreamFailure, ValidationError
from .naming import generate_storage_name
from .storage import ObjectStore, ObjectStoreError

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class BestEffort(str, Enum):
    """Status of a secondary step whose failure never fails the operation."""

    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class UploadRequest:
    filename: str
    content_type: str
    data: BinaryIO
    size: int
    last_modified: Optional[datetime] = None


@dataclass
class UploadOutcome:
    filename: str
    state: UploadState = UploadState.PENDING
    file: Optional[models.File] = None
    error: Optional[CloudVaultError] = None
    quota_update: BestEffort = BestEffort.SKIPPED
    cleanup: BestEffort = BestEffort.SKIPPED

    @property
    def ok(self) -> bool:
        return self.state == UploadState.COMPLETED


@dataclass
class DeleteOutcome:
    file: models.File
    storage_delete: BestEffort = BestEffort.SKIPPED
    quota_update: BestEffort = BestEffort.SKIPPED


@dataclass
class BatchResult:
    outcomes: List[UploadOutcome] = field(default_factory=list)

    @property
    def completed(self) -> List[UploadOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[UploadOutcome]:
        return [o for o in self.outcomes if not o.ok]


def _fail(outcome: UploadOutcome, error: CloudVaultError) -> UploadOutcome:
    outcome.state = UploadState.FAILED
    outcome.error = error
    logger.info("Upload of %r failed: %s", outcome.filename, error.message)
    return outcome


def _release(db: Session, user: models.User, num_bytes: int) -> BestEffort:
    try:
        quota.debit(db, user, num_bytes)
    except CloudVaultError as e:
        logger.error("Failed to release %d reserved bytes for %s: %s", num_bytes, user.id, e)
        return BestEffort.FAILED
    return BestEffort.OK


def _validate(request: UploadRequest, max_megabytes: int) -> None:
    if not request.filename:
        raise ValidationError("No file provided")
    if not is_allowed_type(request.content_type):
        raise ValidationError("File type not allowed")
    if request.size <= 0:
        raise ValidationError("File is empty")
    if not is_within_size_limit(request.size, max_megabytes):
        raise ValidationError(f"File size exceeds limit ({max_megabytes}MB)")


def upload_file(
    db: Session,
    store: ObjectStore,
    user: models.User,
    request: UploadRequest,
    folder_id: Optional[int] = None,
    max_megabytes: Optional[int] = None,
    atomic_quota: Optional[bool] = None,
) -> UploadOutcome:
    """Run the full upload sequence for one file. Expected failures are
    reported on the outcome, never raised."""
    max_megabytes = max_megabytes or config.MAX_UPLOAD_MB
    atomic = config.ATOMIC_QUOTA if atomic_quota is None else atomic_quota
    outcome = UploadOutcome(filename=request.filename)

    try:
        _validate(request, max_megabytes)
        if folder_id is not None:
            directory.get_folder(db, Principal.from_user(user), folder_id)
    except CloudVaultError as e:
        return _fail(outcome, e)

    if atomic:
        try:
            reserved = quota.reserve(db, user, request.size)
        except CloudVaultError as e:
            return _fail(outcome, e)
        if not reserved:
            return _fail(outcome, QuotaExceeded())
    elif not quota.authorize(user, request.size):
        return _fail(outcome, QuotaExceeded())

    outcome.state = UploadState.UPLOADING
    storage_name = generate_storage_name(request.filename)
    storage_path = f"{user.id}/{storage_name}"

    try:
        store.put(storage_path, request.data)
    except ObjectStoreError as e:
        logger.error("Storage upload error for %s: %s", storage_path, e)
        if atomic:
            outcome.quota_update = _release(db, user, request.size)
        return _fail(outcome, UpstreamFailure("Failed to upload file"))

    now = models.utcnow()
    db_file = models.File(
        user_id=user.id,
        name=storage_name,
        original_name=request.filename,
        size=request.size,
        type=request.content_type,
        folder_id=folder_id,
        storage_path=storage_path,
        public_url=store.get_public_url(storage_path),
        uploaded_at=now,
        last_modified=request.last_modified,
        created_at=now,
        updated_at=now,
    )
    db.add(db_file)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database insert error for %s: %s", storage_path, e)
        try:
            store.delete(storage_path)
            outcome.cleanup = BestEffort.OK
        except ObjectStoreError as cleanup_error:
            logger.error("Failed to clean up orphaned object %s: %s", storage_path, cleanup_error)
            outcome.cleanup = BestEffort.FAILED
        if atomic:
            outcome.quota_update = _release(db, user, request.size)
        return _fail(outcome, UpstreamFailure("Failed to save file metadata"))
    db.refresh(db_file)
    outcome.file = db_file

    if atomic:
        outcome.quota_update = BestEffort.OK
    else:
        try:
            quota.credit(db, user, request.size)
            outcome.quota_update = BestEffort.OK
        except CloudVaultError as e:
            logger.error("Failed to update storage usage for %s: %s", user.id, e)
            outcome.quota_update = BestEffort.FAILED

    outcome.state = UploadState.COMPLETED
    logger.info("Uploaded %s (%s) for %s", storage_path, format_file_size(request.size), user.id)
    return outcome


def upload_batch(
    db: Session,
    store: ObjectStore,
    user: models.User,
    requests: Iterable[UploadRequest],
    folder_id: Optional[int] = None,
    **kwargs,
) -> BatchResult:
    """Upload files one after another; each sequence finishes before the next starts."""
    result = BatchResult()
    for request in requests:
        result.outcomes.append(
            upload_file(db, store, user, request, folder_id=folder_id, **kwargs)
        )
    return result


def delete_file(
    db: Session, store: ObjectStore, user: models.User, file_id: int
) -> DeleteOutcome:
    db_file = directory.get_file(db, Principal.from_user(user), file_id)
    outcome = DeleteOutcome(file=db_file)
    size = db_file.size
    storage_path = db_file.storage_path

    try:
        store.delete(storage_path)
        outcome.storage_delete = BestEffort.OK
    except ObjectStoreError as e:
        logger.error("Error deleting %s from storage: %s", storage_path, e)
        outcome.storage_delete = BestEffort.FAILED

    directory.remove_file(db, db_file)

    try:
        quota.debit(db, user, size)
        outcome.quota_update = BestEffort.OK
    except CloudVaultError as e:
        logger.error("Failed to update storage usage for %s: %s", user.id, e)
        outcome.quota_update = BestEffort.FAILED

    logger.info("Deleted %s (%d bytes) for %s", storage_path, size, user.id)
    return outcome
