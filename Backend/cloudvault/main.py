import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import (
    Depends,
    FastAPI,
    File as FastFile,
    Form,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import aggregation, config, directory, lifecycle, models, schemas
from .auth import AdminUser, CurrentUser, DBDep, Principal, PrincipalDep
from .classification import classify, is_previewable
from .database import Base, engine
from .errors import CloudVaultError, NotFound, ValidationError
from .storage import ObjectStore, ObjectStoreError, get_object_store

logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="CloudVault API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error envelope ----------

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(CloudVaultError)
async def cloudvault_error_handler(request: Request, exc: CloudVaultError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, message)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error in %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ---------- Helpers ----------

def _parse_id(raw: Optional[str], field: str) -> Optional[int]:
    # query/form values arrive as strings; the web client sends "" or "null" for root
    if raw is None or raw in ("", "null"):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Invalid {field}") from None


def _from_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _payload_size(upload: UploadFile) -> int:
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def _file_out(f: models.File) -> schemas.FileOut:
    return schemas.FileOut(
        id=f.id,
        user_id=f.user_id,
        name=f.name,
        original_name=f.original_name,
        size=f.size,
        type=f.type,
        category=classify(f.type),
        previewable=is_previewable(f.type),
        folder_id=f.folder_id,
        storage_path=f.storage_path,
        public_url=f.public_url,
        metadata=schemas.FileMetadata(uploadedAt=f.uploaded_at, lastModified=f.last_modified),
        created_at=f.created_at,
        updated_at=f.updated_at,
    )


def _outcome_out(o: lifecycle.UploadOutcome) -> schemas.UploadOutcomeOut:
    return schemas.UploadOutcomeOut(
        filename=o.filename,
        status=o.state.value,
        error=o.error.message if o.error else None,
        file=_file_out(o.file) if o.file else None,
        quota_update=o.quota_update.value,
        cleanup=o.cleanup.value,
    )


@app.get("/health")
def health():
    return {"success": True, "data": {"ok": True}}


# ---------- Profile ----------

@app.get("/auth/me", response_model=schemas.ApiResponse[schemas.UserOut])
def get_me(current_user: CurrentUser):
    return schemas.ApiResponse(data=schemas.UserOut.model_validate(current_user))


# ---------- Files ----------

@app.post("/files/upload")
def upload_files(
    current_user: CurrentUser,
    db: DBDep,
    file: List[UploadFile] = FastFile(...),
    folderId: Optional[str] = Form(None),
    lastModified: Optional[int] = Form(None),
    store: ObjectStore = Depends(get_object_store),
):
    folder_id = _parse_id(folderId, "folderId")
    requests = [
        lifecycle.UploadRequest(
            filename=upload.filename or "",
            content_type=upload.content_type or "",
            data=upload.file,
            size=_payload_size(upload),
            last_modified=_from_millis(lastModified) if len(file) == 1 else None,
        )
        for upload in file
    ]

    if len(requests) == 1:
        outcome = lifecycle.upload_file(db, store, current_user, requests[0], folder_id=folder_id)
        if not outcome.ok:
            raise outcome.error
        return schemas.ApiResponse(
            data=_file_out(outcome.file),
            message="File uploaded successfully",
        )

    result = lifecycle.upload_batch(db, store, current_user, requests, folder_id=folder_id)
    report = schemas.BatchUploadOut(
        completed=len(result.completed),
        failed=len(result.failed),
        results=[_outcome_out(o) for o in result.outcomes],
    )
    if result.failed:
        return schemas.ApiResponse(
            success=False,
            data=report,
            error=f"{len(result.failed)} of {len(result.outcomes)} files failed to upload",
        )
    return schemas.ApiResponse(data=report, message="Files uploaded successfully")


@app.get("/files", response_model=schemas.PaginatedResponse[schemas.FileOut])
def list_files(
    principal: PrincipalDep,
    db: DBDep,
    folderId: Optional[str] = None,
    search: Optional[str] = None,
    type: Optional[str] = None,
    sortBy: str = "date",
    sortOrder: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    dateRange: Optional[str] = None,
):
    result = directory.list_files(
        db,
        principal,
        folder_id=_parse_id(folderId, "folderId"),
        search=search,
        category=type,
        sort_by=sortBy,
        sort_order=sortOrder,
        page=page,
        page_size=limit,
        date_range=dateRange,
    )
    return schemas.PaginatedResponse[schemas.FileOut](
        data=[_file_out(f) for f in result.items],
        pagination=schemas.Pagination(
            page=result.page,
            pageSize=result.page_size,
            total=result.total,
            totalPages=result.total_pages,
            hasNext=result.has_next,
            hasPrev=result.has_prev,
        ),
    )


@app.get("/files/{file_id}", response_model=schemas.ApiResponse[schemas.FileOut])
def get_file(file_id: int, principal: PrincipalDep, db: DBDep):
    return schemas.ApiResponse(data=_file_out(directory.get_file(db, principal, file_id)))


@app.put("/files/{file_id}", response_model=schemas.ApiResponse[schemas.FileOut])
def update_file(
    file_id: int,
    patch: schemas.FileUpdate,
    principal: PrincipalDep,
    db: DBDep,
):
    folder_id = patch.folder_id if "folder_id" in patch.model_fields_set else directory.UNSET
    db_file = directory.update_file(db, principal, file_id, name=patch.name, folder_id=folder_id)
    return schemas.ApiResponse(data=_file_out(db_file), message="File updated successfully")


@app.get("/files/{file_id}/download")
def download_file(
    file_id: int,
    principal: PrincipalDep,
    db: DBDep,
    store: ObjectStore = Depends(get_object_store),
):
    db_file = directory.get_file(db, principal, file_id)
    try:
        path = store.get_local_path(db_file.storage_path)
    except ObjectStoreError:
        raise NotFound("File not found in storage") from None
    return FileResponse(
        path,
        media_type=db_file.type or "application/octet-stream",
        filename=db_file.original_name,
    )


@app.delete("/files/{file_id}", response_model=schemas.ApiResponse)
def delete_file(
    file_id: int,
    current_user: CurrentUser,
    db: DBDep,
    store: ObjectStore = Depends(get_object_store),
):
    lifecycle.delete_file(db, store, current_user, file_id)
    return schemas.ApiResponse(message="File deleted successfully")


# ---------- Public objects ----------

@app.get("/storage/{key:path}")
def get_public_object(key: str, store: ObjectStore = Depends(get_object_store)):
    # public_url target; keys carry an unguessable suffix
    try:
        path = store.get_local_path(key)
    except ObjectStoreError:
        raise NotFound("File not found") from None
    return FileResponse(path)


# ---------- Folders ----------

@app.get("/folders", response_model=schemas.ApiResponse[List[schemas.FolderOut]])
def list_folders(principal: PrincipalDep, db: DBDep, parentId: Optional[str] = None):
    folders = directory.list_folders(db, principal, _parse_id(parentId, "parentId"))
    return schemas.ApiResponse(data=[schemas.FolderOut.model_validate(f) for f in folders])


@app.post(
    "/folders",
    response_model=schemas.ApiResponse[schemas.FolderOut],
    status_code=status.HTTP_201_CREATED,
)
def create_folder(body: schemas.FolderCreate, current_user: CurrentUser, db: DBDep):
    folder = directory.create_folder(
        db, Principal.from_user(current_user), body.name, body.parent_id
    )
    return schemas.ApiResponse(
        data=schemas.FolderOut.model_validate(folder),
        message="Folder created successfully",
    )


@app.get(
    "/folders/{folder_id}/breadcrumb",
    response_model=schemas.ApiResponse[List[schemas.BreadcrumbItem]],
)
def get_breadcrumb(folder_id: int, principal: PrincipalDep, db: DBDep):
    crumbs = directory.folder_breadcrumb(db, principal, folder_id)
    return schemas.ApiResponse(data=[schemas.BreadcrumbItem(**c) for c in crumbs])


# ---------- Admin ----------

@app.get("/admin/stats", response_model=schemas.ApiResponse[schemas.AdminStats])
def admin_stats(admin: AdminUser, db: DBDep):
    return schemas.ApiResponse(data=schemas.AdminStats(**aggregation.compute_stats(db)))


@app.get("/admin/users", response_model=schemas.PaginatedResponse[schemas.UserOut])
def admin_users(
    admin: AdminUser,
    db: DBDep,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
):
    users, pagination = aggregation.list_users(db, search=search, page=page, page_size=limit)
    return schemas.PaginatedResponse[schemas.UserOut](
        data=[schemas.UserOut.model_validate(u) for u in users],
        pagination=schemas.Pagination(**pagination),
    )
