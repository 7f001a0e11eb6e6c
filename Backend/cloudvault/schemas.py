from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, EmailStr, Field

T = TypeVar("T")


# ---------- Envelope ----------

class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None


class Pagination(BaseModel):
    page: int
    pageSize: int
    total: int
    totalPages: int
    hasNext: bool
    hasPrev: bool


class PaginatedResponse(ApiResponse[List[T]], Generic[T]):
    pagination: Pagination


# ---------- Users ----------

class UserOut(BaseModel):
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str
    storage_used: int
    storage_limit: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---------- Folders ----------

class FolderCreate(BaseModel):
    name: str = Field(..., max_length=255)
    parent_id: Optional[int] = None


class FolderOut(BaseModel):
    id: int
    user_id: str
    name: str
    parent_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BreadcrumbItem(BaseModel):
    id: Optional[int] = None
    name: str
    path: str


# ---------- Files ----------

class FileMetadata(BaseModel):
    uploadedAt: datetime
    lastModified: Optional[datetime] = None


class FileOut(BaseModel):
    id: int
    user_id: str
    name: str
    original_name: str
    size: int
    type: str
    category: str
    previewable: bool
    folder_id: Optional[int] = None
    storage_path: str
    public_url: Optional[str] = None
    metadata: FileMetadata
    created_at: datetime
    updated_at: datetime


class FileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    folder_id: Optional[int] = None


class UploadOutcomeOut(BaseModel):
    filename: str
    status: str
    error: Optional[str] = None
    file: Optional[FileOut] = None
    quota_update: str
    cleanup: str


class BatchUploadOut(BaseModel):
    completed: int
    failed: int
    results: List[UploadOutcomeOut]


# ---------- Admin ----------

class StorageUsageByType(BaseModel):
    images: int = 0
    videos: int = 0
    audio: int = 0
    documents: int = 0
    others: int = 0


class AdminStats(BaseModel):
    totalUsers: int
    totalFiles: int
    totalStorage: int
    activeUsers: int
    newUsersThisMonth: int
    storageUsageByType: StorageUsageByType
