"""OneDrive adapter backed by the Microsoft Graph API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote, urlencode

from ..config import config
from ..exceptions import AuthenticationError, DownloadError, ProviderError, UploadError
from ..models import DeltaEntry, DeltaKind, SyncService, Token
from ..utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SIMPLE_UPLOAD_LIMIT,
    now,
    parse_iso_timestamp,
)
from .base import DriveProvider, require_field

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.microsoft.com/v1.0"
AUTHORIZE_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
REDIRECT_URL = "https://login.microsoftonline.com/common/oauth2/nativeclient"
SCOPES = "User.Read Files.ReadWrite.All offline_access"


def item_relative_path(item: dict[str, Any]) -> str | None:
    """Build the drive relative path of a delta item.

    Returns None when the item carries no usable parent path, which is
    the case for the root itself and for most deleted items.
    """
    parent_path = (item.get("parentReference") or {}).get("path")
    name = item.get("name")
    if not parent_path or not name:
        return None

    # "/drive/root:/docs" or "/drives/<id>/root:/docs"
    _, sep, folder = parent_path.partition("root:")
    if not sep:
        return None
    folder = folder.rstrip("/")
    return f"{folder}/{name}"


class OneDriveClient(DriveProvider):
    """Client for the OneDrive personal drive of the signed in user."""

    service = SyncService.ONEDRIVE
    cursor_key = "delta_link"

    def __init__(
        self,
        token: Token | None = None,
        client_id: str | None = None,
        simple_upload_limit: int = DEFAULT_SIMPLE_UPLOAD_LIMIT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        **kwargs: Any,
    ):
        """Initialize OneDrive client.

        Args:
            token: Access token
            client_id: Azure application id (uses config if not provided)
            simple_upload_limit: Largest file uploaded with a single PUT
            chunk_size: Chunk size for upload sessions, multiple of 320 KiB
            **kwargs: Passed to DriveProvider
        """
        super().__init__(token=token, **kwargs)
        self.client_id = client_id or config.onedrive_client_id
        self.simple_upload_limit = simple_upload_limit
        self.chunk_size = chunk_size

    # =========================
    # OAuth
    # =========================

    def get_oauth_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": REDIRECT_URL,
            "scope": SCOPES,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params, quote_via=quote)}"

    def _get_token(self, grant_type: str, value: str) -> Token:
        data = {
            "client_id": self.client_id,
            "redirect_uri": REDIRECT_URL,
            "grant_type": grant_type,
        }
        if grant_type == "authorization_code":
            data["code"] = value
        else:
            data["refresh_token"] = value

        try:
            response = self._request("POST", TOKEN_URL, authenticated=False, data=data)
            return Token.from_expires_in(
                access_token=require_field(response, "access_token"),
                refresh_token=require_field(response, "refresh_token"),
                expires_in=require_field(response, "expires_in"),
                now=now(),
            )
        except ProviderError as e:
            raise AuthenticationError(
                f"Cannot obtain token ({grant_type}), please login again: {e}"
            ) from e

    def exchange_code(self, code: str) -> Token:
        return self._get_token("authorization_code", code)

    def refresh_token(self, token: Token) -> Token:
        return self._get_token("refresh_token", token.refresh_token)

    # =========================
    # File operations
    # =========================

    def fetch_delta(self, cursor: str | None) -> tuple[list[DeltaEntry], str | None]:
        """Collect every page of the drive delta feed.

        Args:
            cursor: Delta link returned by a previous call, or None

        Returns:
            Tuple of (file changes, delta link for the next run)
        """
        url: str | None = cursor or f"{GRAPH_URL}/me/drive/root/delta"
        delta_link = cursor
        items: list[dict[str, Any]] = []

        while url:
            page = self._request("GET", url)
            items.extend(page.get("value", []))
            # The last page carries the delta link for the next sync
            if page.get("@odata.deltaLink"):
                delta_link = page["@odata.deltaLink"]
            url = page.get("@odata.nextLink")

        logger.debug(f"Fetched {len(items)} delta item(s)")
        fetched_at = now()
        entries: list[DeltaEntry] = []
        for item in items:
            entry = self._to_delta_entry(item, fetched_at)
            if entry is not None:
                entries.append(entry)
        return entries, delta_link

    def _to_delta_entry(self, item: dict[str, Any], fetched_at: int) -> DeltaEntry | None:
        if "folder" in item or "root" in item:
            return None

        deleted = "deleted" in item
        relative_path = item_relative_path(item)
        if relative_path is None and not deleted:
            logger.debug(f"Skipping delta item without path: {item.get('id')}")
            return None

        modified = item.get("lastModifiedDateTime")
        if modified:
            try:
                last_modified = parse_iso_timestamp(modified)
            except ValueError as e:
                logger.warning(f"Skipping {relative_path}: {e}")
                return None
        else:
            # No timestamp means the change happened since the cursor
            last_modified = fetched_at

        return DeltaEntry(
            remote_id=str(require_field(item, "id")),
            relative_path=relative_path or "",
            last_modified=last_modified,
            kind=DeltaKind.DELETED if deleted else DeltaKind.CREATED_OR_MODIFIED,
        )

    def _item_url(
        self, relative_path: str, error: type[ProviderError] = ProviderError
    ) -> str:
        try:
            encoded = quote(relative_path.lstrip("/"))
        except UnicodeEncodeError as e:
            raise error(f"Cannot encode path {relative_path!r}: {e}") from e
        return f"{GRAPH_URL}/me/drive/root:/{encoded}:"

    def download(self, relative_path: str) -> bytes:
        try:
            response = self._send("GET", f"{self._item_url(relative_path)}/content")
        except ProviderError as e:
            raise DownloadError(f"Download of {relative_path} failed: {e}") from e
        return response.content

    def upload(self, relative_path: str, data: bytes) -> str:
        """Upload ``data`` to ``relative_path``, replacing any existing file.

        Small files use a single PUT, larger ones an upload session.
        """
        if len(data) <= self.simple_upload_limit:
            item = self._request(
                "PUT",
                f"{self._item_url(relative_path, UploadError)}/content",
                content=data,
            )
        else:
            item = self._upload_session(relative_path, data)
        return str(require_field(item, "id"))

    def _upload_session(self, relative_path: str, data: bytes) -> Any:
        session = self._request(
            "POST",
            f"{self._item_url(relative_path, UploadError)}/createUploadSession",
            json={"item": {"@microsoft.graph.conflictBehavior": "replace"}},
        )
        upload_url = require_field(session, "uploadUrl")
        total = len(data)
        item: Any = {}

        for start in range(0, total, self.chunk_size):
            chunk = data[start : start + self.chunk_size]
            end = start + len(chunk) - 1
            logger.debug(f"Uploading bytes {start}-{end}/{total} of {relative_path}")
            # The upload URL is pre-authenticated
            item = self._request(
                "PUT",
                upload_url,
                authenticated=False,
                content=chunk,
                headers={"Content-Range": f"bytes {start}-{end}/{total}"},
            )

        if not isinstance(item, dict) or "id" not in item:
            raise UploadError(f"Upload session for {relative_path} did not complete")
        return item

    def delete(self, remote_id: str) -> None:
        self._send("DELETE", f"{GRAPH_URL}/me/drive/items/{quote(remote_id)}")
