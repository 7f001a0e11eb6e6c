from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from . import config
from .database import Base


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    """Profile row keyed by the identity provider's subject id."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    # uniqueness belongs to the identity provider; profiles are keyed by subject
    email = Column(String(255), index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    role = Column(String(16), nullable=False, default="user")

    storage_used = Column(BigInteger, nullable=False, default=0)
    storage_limit = Column(
        BigInteger, nullable=False, default=lambda: config.DEFAULT_STORAGE_LIMIT
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    folders = relationship("Folder", back_populates="user", cascade="all,delete-orphan")
    files = relationship("File", back_populates="owner", cascade="all,delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Folder(Base):
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    # no unique constraint on (user_id, parent_id, name): siblings are checked before insert
    parent_id = Column(
        Integer,
        ForeignKey("folders.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="folders")
    files = relationship("File", back_populates="folder")


class File(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    folder_id = Column(
        Integer,
        ForeignKey("folders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    type = Column(String(255), nullable=False)
    storage_path = Column(String(1024), nullable=False)
    public_url = Column(String(2048), nullable=True)

    # closed metadata record: {uploadedAt, lastModified}
    uploaded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_modified = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner = relationship("User", back_populates="files")
    folder = relationship("Folder", back_populates="files")
