"""Local-disk blob store for listing images, served by the static /uploads mount."""

import logging
import time
import uuid
from functools import lru_cache
from pathlib import Path

from app.core.config import get_settings
from app.core.exceptions import StorageFailure

logger = logging.getLogger(__name__)

EXTENSIONS_BY_CONTENT_TYPE = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
}


class LocalBlobStore:
    """
    Writes each blob to `root` under a generated unique name and returns
    `<url_prefix>/<name>` as its stable reference.
    """

    def __init__(self, root: str | Path, url_prefix: str = "/uploads") -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _new_name(self, content_type: str, filename: str | None) -> str:
        ext = EXTENSIONS_BY_CONTENT_TYPE.get(content_type)
        if ext is None and filename:
            ext = Path(filename).suffix.lower() or None
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}{ext or ''}"

    def save(self, data: bytes, content_type: str, filename: str | None = None) -> str:
        """Persist `data` and return its reference. Raises StorageFailure on I/O errors."""
        name = self._new_name(content_type, filename)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / name).write_bytes(data)
        except OSError as e:
            logger.exception("Failed to store blob %s", name)
            raise StorageFailure("Could not store the uploaded image.") from e
        logger.info("Stored blob %s (%s bytes, %s)", name, len(data), content_type)
        return f"{self.url_prefix}/{name}"

    def path_for(self, reference: str) -> Path | None:
        """Map a reference produced by save() back to its file; None if it is not ours."""
        prefix = self.url_prefix + "/"
        if not reference.startswith(prefix):
            return None
        name = reference[len(prefix):]
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            return None
        return self.root / name

    def delete(self, reference: str) -> bool:
        """Remove a stored blob. Returns False when it was not found or could not be removed."""
        path = self.path_for(reference)
        if path is None:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError:
            logger.warning("Could not remove blob %s", path.name, exc_info=True)
            return False
        return True


@lru_cache
def get_blob_store() -> LocalBlobStore:
    """Blob store configured from settings (FastAPI dependency; override in tests)."""
    settings = get_settings()
    return LocalBlobStore(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)
