"""``DriveClient`` implementation backed by the Drive v3 REST API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Any, Sequence

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from .client import DriveError
from .models import DriveFile

LOGGER = logging.getLogger(__name__)

_FILE_FIELDS = (
    "id,name,mimeType,modifiedTime,version,md5Checksum,size,parents,lastModifyingUser(displayName)"
)


class GoogleDriveClient:
    """Talk to Google Drive with a service-account credential."""

    def __init__(self, credentials_path: Path, scopes: Sequence[str]) -> None:
        self._credentials_path = Path(credentials_path).expanduser()
        self._scopes = list(scopes)
        self._service: Any = None

    @property
    def service(self) -> Any:
        if self._service is None:
            creds = service_account.Credentials.from_service_account_file(
                str(self._credentials_path), scopes=self._scopes
            )
            self._service = build("drive", "v3", credentials=creds, cache_discovery=False)
        return self._service

    def list_children(self, folder_id: str) -> list[DriveFile]:
        query = f"'{folder_id}' in parents and trashed = false"
        children: list[DriveFile] = []
        page_token: str | None = None
        while True:
            response = self._call(
                self.service.files().list(
                    q=query,
                    fields=f"nextPageToken,files({_FILE_FIELDS})",
                    pageToken=page_token,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                )
            )
            children.extend(self._to_drive_file(item, folder_id) for item in response.get("files", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return children

    def get_file(self, file_id: str) -> DriveFile:
        item = self._call(
            self.service.files().get(fileId=file_id, fields=_FILE_FIELDS, supportsAllDrives=True)
        )
        return self._to_drive_file(item)

    def download(self, file: DriveFile, stream: IO[bytes]) -> None:
        self._stream(self.service.files().get_media(fileId=file.id, supportsAllDrives=True), stream)

    def export(self, file: DriveFile, mime_type: str, stream: IO[bytes]) -> None:
        self._stream(self.service.files().export_media(fileId=file.id, mimeType=mime_type), stream)

    # Internal helpers -------------------------------------------------

    def _call(self, request: Any) -> dict:
        try:
            return request.execute()
        except HttpError as exc:
            raise DriveError(f"Drive request failed: {exc}", code=exc.resp.status) from exc

    def _stream(self, request: Any, stream: IO[bytes]) -> None:
        downloader = MediaIoBaseDownload(stream, request)
        done = False
        try:
            while not done:
                status, done = downloader.next_chunk()
                if status is not None:
                    LOGGER.debug("Downloaded %d%%", int(status.progress() * 100))
        except HttpError as exc:
            raise DriveError(f"Drive download failed: {exc}", code=exc.resp.status) from exc

    @staticmethod
    def _to_drive_file(item: dict, parent_id: str | None = None) -> DriveFile:
        data = dict(item)
        author = data.pop("lastModifyingUser", None) or {}
        parents = data.pop("parents", None) or []
        data["lastAuthor"] = author.get("displayName")
        data["parentId"] = parent_id or (parents[0] if parents else None)
        return DriveFile.model_validate(data)


__all__ = ["GoogleDriveClient"]
