from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from applytrack.config import Settings
from applytrack.errors import FileStoreError
from applytrack.storage.base import stored_filename

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
_FILE_ID_PATTERN = re.compile(r"/d/([a-zA-Z0-9\-_]+)")


@dataclass(slots=True)
class DriveConfig:
    service_account_email: str
    private_key: str
    folder_id: str

    @classmethod
    def from_settings(cls, settings: Settings) -> DriveConfig:
        return cls(
            service_account_email=settings.google_service_account_email,
            # keys pasted into .env usually carry literal "\n" sequences
            private_key=settings.google_private_key.replace("\\n", "\n"),
            folder_id=settings.google_drive_folder_id,
        )


def build_drive_service(config: DriveConfig) -> Any:
    credentials = service_account.Credentials.from_service_account_info(
        {
            "type": "service_account",
            "client_email": config.service_account_email,
            "private_key": config.private_key,
            "token_uri": TOKEN_URI,
        },
        scopes=SCOPES,
    )
    return build("drive", "v3", credentials=credentials, cache_discovery=False)


def extract_file_id(url: str) -> str | None:
    match = _FILE_ID_PATTERN.search(url)
    return match.group(1) if match else None


def _status(exc: HttpError) -> int | None:
    return getattr(getattr(exc, "resp", None), "status", None)


class GoogleDriveStore:
    """Resume binaries in a shared Drive folder, readable by anyone with the link."""

    def __init__(self, config: DriveConfig, *, service: Any | None = None):
        self.config = config
        self.service = service if service is not None else build_drive_service(config)

    def upload(
        self,
        file_bytes: bytes,
        *,
        filename: str,
        mime_type: str,
        owner_name: str,
        company_name: str = "",
    ) -> str:
        folder_id = self.config.folder_id
        files = self.service.files()

        try:
            files.get(fileId=folder_id, fields="id", supportsAllDrives=True).execute()
        except HttpError as exc:
            logger.error("Drive folder pre-flight check failed folder=%s status=%s", folder_id, _status(exc))
            if _status(exc) == 404:
                raise FileStoreError(f"Google Drive folder '{folder_id}' not found") from exc
            raise FileStoreError(
                f"Cannot access Google Drive folder '{folder_id}'; share it with the service account as Editor"
            ) from exc

        name = stored_filename(owner_name, company_name, filename)
        media = MediaIoBaseUpload(io.BytesIO(file_bytes), mimetype=mime_type, resumable=False)
        try:
            created = files.create(
                media_body=media,
                body={"name": name, "parents": [folder_id]},
                fields="id,webViewLink",
                supportsAllDrives=True,
            ).execute()
        except HttpError as exc:
            logger.error("Drive upload failed name=%s status=%s", name, _status(exc))
            raise FileStoreError(f"Failed to create file in Google Drive: {exc}") from exc

        file_id = created.get("id")
        link = created.get("webViewLink")
        if not file_id or not link:
            raise FileStoreError("Google Drive did not return an id and webViewLink for the upload")

        try:
            self.service.permissions().create(
                fileId=file_id,
                body={"role": "reader", "type": "anyone"},
                supportsAllDrives=True,
            ).execute()
        except HttpError as exc:
            logger.error("Making %s public failed; removing the orphaned upload", file_id)
            try:
                files.delete(fileId=file_id, supportsAllDrives=True).execute()
            except HttpError:
                logger.exception("Cleanup of orphaned Drive file %s failed; delete it manually", file_id)
            raise FileStoreError(f"File was uploaded but could not be made public: {exc}") from exc

        logger.info("Uploaded %s to Drive as %s", name, file_id)
        return link

    def delete_by_url(self, url: str) -> None:
        file_id = extract_file_id(url)
        if not file_id:
            logger.warning("Could not extract a Drive file id from %s; nothing to delete", url)
            return

        try:
            self.service.files().delete(fileId=file_id, supportsAllDrives=True).execute()
        except HttpError as exc:
            if _status(exc) == 404:
                logger.info("Drive file %s not found; treating as already deleted", file_id)
                return
            logger.error("Drive delete failed file=%s status=%s", file_id, _status(exc))
            raise FileStoreError(f"Failed to delete Drive file {file_id}: {exc}") from exc
        logger.info("Deleted Drive file %s", file_id)
