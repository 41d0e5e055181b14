"""Google Drive adapter backed by the Drive v3 API."""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote, urlencode

from ..config import config
from ..exceptions import (
    AuthenticationError,
    ConfigError,
    DownloadError,
    NotFoundError,
    ProviderError,
    UploadError,
)
from ..models import DeltaEntry, DeltaKind, SyncService, Token
from ..utils import now, parse_iso_timestamp
from .base import DriveProvider, require_field

logger = logging.getLogger(__name__)

API_URL = "https://www.googleapis.com/drive/v3"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REDIRECT_URL = "http://localhost"
SCOPES = "https://www.googleapis.com/auth/drive"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
# Docs, Sheets etc. have no binary content to download
NATIVE_MIME_PREFIX = "application/vnd.google-apps."

FILE_FIELDS = "id,name,mimeType,parents,modifiedTime,trashed"
PAGE_SIZE = 1000


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveClient(DriveProvider):
    """Client for the "My Drive" space of a Google account."""

    service = SyncService.GDRIVE
    cursor_key = "page_token"

    def __init__(
        self,
        token: Token | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(token=token, **kwargs)
        self.client_id = client_id or config.gdrive_client_id
        self.client_secret = client_secret or config.gdrive_client_secret
        self._root_id: Optional[str] = None
        # folder id -> (name, parent id)
        self._folders: dict[str, tuple[str, Optional[str]]] = {}
        # folder id -> drive relative path, None when outside My Drive
        self._folder_paths: dict[str, Optional[str]] = {}

    def _require_client_id(self) -> str:
        if not self.client_id:
            raise ConfigError(
                "Google Drive client id not configured. "
                "Please set CLOUDSYNC_GDRIVE_CLIENT_ID."
            )
        return self.client_id

    # =========================
    # OAuth
    # =========================

    def get_oauth_url(self) -> str:
        params = {
            "client_id": self._require_client_id(),
            "response_type": "code",
            "redirect_uri": REDIRECT_URL,
            "scope": SCOPES,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params, quote_via=quote)}"

    def _get_token(self, data: dict[str, str], refresh_token: str | None) -> Token:
        if not self.client_secret:
            raise ConfigError(
                "Google Drive client secret not configured. "
                "Please set CLOUDSYNC_GDRIVE_CLIENT_SECRET."
            )
        data = {
            **data,
            "client_id": self._require_client_id(),
            "client_secret": self.client_secret,
        }
        try:
            response = self._request("POST", TOKEN_URL, authenticated=False, data=data)
            # Refresh responses do not repeat the refresh token
            new_refresh = response.get("refresh_token") or refresh_token
            if not new_refresh:
                raise AuthenticationError("No refresh token granted")
            return Token.from_expires_in(
                access_token=require_field(response, "access_token"),
                refresh_token=new_refresh,
                expires_in=require_field(response, "expires_in"),
                now=now(),
            )
        except ProviderError as e:
            raise AuthenticationError(
                f"Cannot obtain token ({data['grant_type']}), please login again: {e}"
            ) from e

    def exchange_code(self, code: str) -> Token:
        return self._get_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": REDIRECT_URL,
            },
            refresh_token=None,
        )

    def refresh_token(self, token: Token) -> Token:
        return self._get_token(
            {"grant_type": "refresh_token", "refresh_token": token.refresh_token},
            refresh_token=token.refresh_token,
        )

    # =========================
    # Folder resolution
    # =========================

    def _get_root_id(self) -> str:
        if self._root_id is None:
            root = self._request("GET", f"{API_URL}/files/root", params={"fields": "id"})
            self._root_id = str(require_field(root, "id"))
            self._folder_paths[self._root_id] = ""
        return self._root_id

    def _remember_folder(self, item: dict[str, Any]) -> None:
        parents = item.get("parents") or [None]
        self._folders[item["id"]] = (item.get("name", ""), parents[0])

    def _folder_path(self, folder_id: str) -> Optional[str]:
        """Return the drive relative path of a folder, walking up to the root."""
        self._get_root_id()
        chain: list[str] = []
        current: Optional[str] = folder_id

        while current is not None and current not in self._folder_paths:
            if current not in self._folders:
                try:
                    meta = self._request(
                        "GET",
                        f"{API_URL}/files/{quote(current)}",
                        params={"fields": "id,name,parents"},
                    )
                except NotFoundError:
                    meta = {"id": current}
                parents = meta.get("parents") or [None]
                self._folders[current] = (meta.get("name", ""), parents[0])
            chain.append(current)
            current = self._folders[current][1]

        base = self._folder_paths.get(current) if current is not None else None
        for folder in reversed(chain):
            if base is not None:
                base = f"{base}/{self._folders[folder][0]}"
            self._folder_paths[folder] = base
        return self._folder_paths[folder_id]

    def _file_path(self, item: dict[str, Any]) -> Optional[str]:
        parents = item.get("parents")
        if not parents or not item.get("name"):
            return None
        folder = self._folder_path(parents[0])
        if folder is None:
            return None
        return f"{folder}/{item['name']}"

    # =========================
    # File operations
    # =========================

    def fetch_delta(self, cursor: str | None) -> tuple[list[DeltaEntry], str | None]:
        """Collect all changes since ``cursor``.

        Without a cursor every file in My Drive is listed and the current
        start page token becomes the cursor for the next run.
        """
        if cursor is None:
            start = self._request("GET", f"{API_URL}/changes/startPageToken")
            next_cursor = str(require_field(start, "startPageToken"))
            changes = [
                {"fileId": require_field(item, "id"), "file": item}
                for item in self._list_all_files()
            ]
        else:
            changes, next_cursor = self._list_changes(cursor)

        folders = [
            change["file"]
            for change in changes
            if (change.get("file") or {}).get("mimeType") == FOLDER_MIME_TYPE
        ]
        for item in folders:
            self._remember_folder(item)
        if folders:
            # Moved or renamed folders invalidate cached paths
            self._folder_paths = {
                key: value for key, value in self._folder_paths.items() if value == ""
            }

        fetched_at = now()
        entries: list[DeltaEntry] = []
        for change in changes:
            entry = self._to_delta_entry(change, fetched_at)
            if entry is not None:
                entries.append(entry)
        logger.debug(f"Fetched {len(entries)} file change(s)")
        return entries, next_cursor

    def _list_all_files(self) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params = {
                "q": "trashed = false",
                "spaces": "drive",
                "pageSize": PAGE_SIZE,
                "fields": f"nextPageToken,files({FILE_FIELDS})",
            }
            if page_token:
                params["pageToken"] = page_token
            page = self._request("GET", f"{API_URL}/files", params=params)
            items.extend(page.get("files", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                return items

    def _list_changes(self, cursor: str) -> tuple[list[dict[str, Any]], str]:
        changes: list[dict[str, Any]] = []
        page_token: Optional[str] = cursor
        while page_token:
            page = self._request(
                "GET",
                f"{API_URL}/changes",
                params={
                    "pageToken": page_token,
                    "spaces": "drive",
                    "pageSize": PAGE_SIZE,
                    "fields": (
                        "nextPageToken,newStartPageToken,"
                        f"changes(fileId,removed,time,file({FILE_FIELDS}))"
                    ),
                },
            )
            changes.extend(page.get("changes", []))
            if page.get("newStartPageToken"):
                return changes, str(page["newStartPageToken"])
            page_token = page.get("nextPageToken")
        return changes, cursor

    def _to_delta_entry(
        self, change: dict[str, Any], fetched_at: int
    ) -> Optional[DeltaEntry]:
        item = change.get("file") or {}
        mime_type = item.get("mimeType", "")
        if mime_type.startswith(NATIVE_MIME_PREFIX):
            return None

        remote_id = change.get("fileId") or item.get("id")
        deleted = bool(change.get("removed") or item.get("trashed"))
        relative_path = self._file_path(item) if item else None

        try:
            if deleted:
                stamp = change.get("time")
                last_modified = parse_iso_timestamp(stamp) if stamp else fetched_at
            else:
                last_modified = parse_iso_timestamp(item.get("modifiedTime", ""))
        except ValueError as e:
            logger.warning(f"Skipping change for {remote_id}: {e}")
            return None

        if deleted:
            return DeltaEntry(
                remote_id=str(remote_id),
                relative_path=relative_path or "",
                last_modified=last_modified,
                kind=DeltaKind.DELETED,
            )
        if relative_path is None:
            logger.debug(f"Skipping file outside My Drive: {remote_id}")
            return None
        return DeltaEntry(
            remote_id=str(remote_id),
            relative_path=relative_path,
            last_modified=last_modified,
            kind=DeltaKind.CREATED_OR_MODIFIED,
        )

    def _find_child(self, parent_id: str, name: str) -> Optional[dict[str, Any]]:
        query = (
            f"name = '{_escape_query(name)}' and '{_escape_query(parent_id)}' "
            "in parents and trashed = false"
        )
        result = self._request(
            "GET",
            f"{API_URL}/files",
            params={"q": query, "spaces": "drive", "fields": "files(id,mimeType)"},
        )
        files = result.get("files") or []
        return files[0] if files else None

    def _resolve(
        self, relative_path: str, create_folders: bool = False
    ) -> tuple[str, str, Optional[str]]:
        """Resolve a path to (parent folder id, file name, file id or None)."""
        # Undecodable local names fail here, before any folder is created
        relative_path.encode("utf-8")
        *folders, name = relative_path.strip("/").split("/")
        parent_id = self._get_root_id()

        for folder in folders:
            child = self._find_child(parent_id, folder)
            if child is None:
                if not create_folders:
                    raise NotFoundError(f"Folder not found: {folder}")
                child = self._request(
                    "POST",
                    f"{API_URL}/files",
                    params={"fields": "id"},
                    json={
                        "name": folder,
                        "mimeType": FOLDER_MIME_TYPE,
                        "parents": [parent_id],
                    },
                )
                logger.debug(f"Created remote folder {folder}")
            parent_id = str(require_field(child, "id"))

        existing = self._find_child(parent_id, name)
        return parent_id, name, str(existing["id"]) if existing else None

    def download(self, relative_path: str) -> bytes:
        try:
            _, _, file_id = self._resolve(relative_path)
            if file_id is None:
                raise NotFoundError(f"File not found: {relative_path}")
            response = self._send(
                "GET", f"{API_URL}/files/{quote(file_id)}", params={"alt": "media"}
            )
        except (ProviderError, UnicodeEncodeError) as e:
            raise DownloadError(f"Download of {relative_path} failed: {e}") from e
        return response.content

    def upload(self, relative_path: str, data: bytes) -> str:
        try:
            parent_id, name, file_id = self._resolve(relative_path, create_folders=True)
        except UnicodeEncodeError as e:
            raise UploadError(f"Cannot encode path {relative_path!r}: {e}") from e
        if file_id is None:
            created = self._request(
                "POST",
                f"{API_URL}/files",
                params={"fields": "id"},
                json={"name": name, "parents": [parent_id]},
            )
            file_id = str(require_field(created, "id"))

        self._request(
            "PATCH",
            f"{UPLOAD_URL}/files/{quote(file_id)}",
            params={"uploadType": "media", "fields": "id"},
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        return file_id

    def delete(self, remote_id: str) -> None:
        self._send("DELETE", f"{API_URL}/files/{quote(remote_id)}")
