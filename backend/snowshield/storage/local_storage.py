"""
Filesystem-backed photo storage, served by the API under /media.
"""
from pathlib import Path

from snowshield.errors import StorageError
from snowshield.logging_config import get_logger
from snowshield.storage.storage_base import PhotoStorage

logger = get_logger(__name__)


class LocalPhotoStorage(PhotoStorage):
    """Writes blobs below a root directory and hands out URLs under a base URL."""

    def __init__(self, root_dir: str, base_url: str = "/media"):
        self.root = Path(root_dir).resolve()
        self.base_url = base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Storage key escapes media root: {key}", context={"key": key})
        return path

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path_for(key)
        if path.exists():
            raise StorageError(f"Blob already exists: {key}", code="aborted", context={"key": key})
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to store {key}: {e}", context={"key": key}) from e

        logger.debug(f"Stored blob key={key} bytes={len(data)} content_type={content_type}")
        return f"{self.base_url}/{key}"

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
            logger.debug(f"Deleted blob key={key}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}", context={"key": key}) from e
