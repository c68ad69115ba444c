from __future__ import annotations

import logging
import uuid
from pathlib import Path

from applytrack.errors import FileStoreError
from applytrack.storage.base import stored_filename

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/files/"


class LocalFileStore:
    """Keeps uploads in a directory that the web app serves under ``/files``."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def upload(
        self,
        file_bytes: bytes,
        *,
        filename: str,
        mime_type: str,
        owner_name: str,
        company_name: str = "",
    ) -> str:
        name = f"{uuid.uuid4().hex[:8]}_{stored_filename(owner_name, company_name, filename)}"
        try:
            (self.root / name).write_bytes(file_bytes)
        except OSError as exc:
            raise FileStoreError(f"Failed to store {name}: {exc}") from exc
        logger.info("Stored %s (%s, %d bytes)", name, mime_type, len(file_bytes))
        return PUBLIC_PREFIX + name

    def delete_by_url(self, url: str) -> None:
        if not url.startswith(PUBLIC_PREFIX):
            logger.warning("Not a local file URL, nothing to delete: %s", url)
            return
        path = self.root / Path(url[len(PUBLIC_PREFIX):]).name
        if not path.exists():
            logger.info("File %s already deleted", path.name)
            return
        path.unlink()
