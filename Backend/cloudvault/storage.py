"""Object store used for file bytes.

Keys look like `<user_id>/<storage_name>`. Every backend raises
`ObjectStoreError` on failure so callers handle one exception type.
"""
import logging
import shutil
from pathlib import Path
from typing import BinaryIO, Protocol
from urllib.parse import quote

from . import config

logger = logging.getLogger(__name__)


class ObjectStoreError(Exception):
    pass


class ObjectStore(Protocol):
    def put(self, key: str, data: BinaryIO) -> None: ...

    def delete(self, key: str) -> None: ...

    def get_public_url(self, key: str) -> str: ...

    def get_local_path(self, key: str) -> Path: ...


class LocalObjectStore:
    def __init__(self, root: str | Path, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ObjectStoreError(f"Invalid storage key: {key}")
        return path

    def put(self, key: str, data: BinaryIO) -> None:
        path = self._path(key)
        if path.exists():
            raise ObjectStoreError(f"Object already exists: {key}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as buffer:
                shutil.copyfileobj(data, buffer)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise ObjectStoreError(f"Failed to write {key}: {e}") from e
        logger.debug("Stored object %s", key)

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Object %s was already missing", key)
        except OSError as e:
            raise ObjectStoreError(f"Failed to delete {key}: {e}") from e

    def get_public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key)}"

    def get_local_path(self, key: str) -> Path:
        path = self._path(key)
        if not path.is_file():
            raise ObjectStoreError(f"Object not found: {key}")
        return path


_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    global _store
    if _store is None:
        _store = LocalObjectStore(config.UPLOAD_DIR, config.PUBLIC_BASE_URL)
    return _store
