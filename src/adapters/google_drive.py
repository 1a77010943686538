"""Google Drive v3 client adapter for read-only inbox scanning."""

import logging
from typing import Any

import requests
from requests.exceptions import RequestException

from ..common.http import request_with_retry
from ..utils.oauth import OAuthManager, OAuthToken, OAuthTokenError, google_oauth_config

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "nextPageToken, files(id, name, mimeType, parents, createdTime, modifiedTime, size)"


class DriveError(Exception):
    """Base exception for Google Drive API errors."""


class DriveAuthError(DriveError):
    """Authentication error for Google Drive API."""


class DriveNotFoundError(DriveError):
    """Folder or file missing from Google Drive."""


def _quote(value: str) -> str:
    # Drive query literals are single-quoted with backslash escapes
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveClient:
    """Google Drive API client with OAuth refresh, retries and pagination."""

    BASE_URL = "https://www.googleapis.com/drive/v3"

    def __init__(
        self,
        oauth_config: dict[str, str] | None = None,
        access_token: str | None = None,
        timeout: float = 30,
        page_size: int = 100,
    ):
        """Initialize Drive client with OAuth credentials or a direct token.

        Args:
            oauth_config: Dict with client_id, client_secret, refresh_token and
                optionally access_token
            access_token: Direct OAuth 2.0 access token
            timeout: Per-request timeout in seconds
            page_size: Files requested per listing page
        """
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.timeout = timeout
        self.page_size = page_size
        self.oauth_manager: OAuthManager | None = None
        self.oauth_token: OAuthToken | None = None

        if oauth_config and oauth_config.get("client_id") and oauth_config.get("refresh_token"):
            self.oauth_manager = OAuthManager(
                google_oauth_config(oauth_config["client_id"], oauth_config["client_secret"]),
                timeout=timeout,
            )
            # No access token yet: the first request triggers a refresh
            self.oauth_token = OAuthToken(
                access_token=oauth_config.get("access_token", ""),
                refresh_token=oauth_config["refresh_token"],
            )
        elif access_token:
            self.oauth_token = OAuthToken(access_token=access_token)
        else:
            raise DriveAuthError("No Google Drive credentials provided")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "GoogleDriveClient":
        """Build a client from ``get_drive_config()`` output."""
        if config.get("refresh_token"):
            return cls(oauth_config=config, timeout=config.get("timeout", 30))
        return cls(access_token=config.get("access_token"), timeout=config.get("timeout", 30))

    def ensure_valid_token(self) -> None:
        """Refresh the access token when it is missing or expired."""
        if not self.oauth_token:
            raise DriveAuthError("No access token available")

        if self.oauth_manager:
            try:
                self.oauth_token = self.oauth_manager.get_valid_token(self.oauth_token)
            except OAuthTokenError as e:
                raise DriveAuthError(f"Failed to refresh token: {e}") from e

        self.session.headers["Authorization"] = self.oauth_token.authorization_header

    def _make_request(self, path: str, params: dict | None = None) -> requests.Response:
        """Make an authenticated GET request.

        Raises:
            DriveAuthError: Authentication failed
            DriveNotFoundError: Resource does not exist
            DriveError: Other API or transport errors
        """
        self.ensure_valid_token()
        url = f"{self.BASE_URL}/{path.lstrip('/')}"

        try:
            response = request_with_retry(
                self.session, "GET", url, params=params, timeout=self.timeout
            )
        except RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            raise DriveError(f"Request error: {e}") from e

        if response.status_code == 401:
            raise DriveAuthError("Authentication failed - invalid or expired token")
        if response.status_code == 404:
            raise DriveNotFoundError(f"Not found: {path}")
        if response.status_code >= 400:
            raise DriveError(f"API error (HTTP {response.status_code}): {response.text}")
        return response

    def _list(self, query: str, fields: str) -> list[dict]:
        """Run a files.list query, following nextPageToken."""
        results: list[dict] = []
        params: dict[str, Any] = {"q": query, "fields": fields, "pageSize": self.page_size}

        while True:
            data = self._make_request("files", params=params).json()
            results.extend(data.get("files", []))
            token = data.get("nextPageToken")
            if not token:
                break
            params["pageToken"] = token

        return results

    def find_folder_by_name(self, name: str, parent_id: str | None = None) -> str | None:
        """Return the id of the first folder called ``name`` (under ``parent_id``)."""
        query = (
            f"name = '{_quote(name)}' and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        )
        if parent_id:
            query += f" and '{_quote(parent_id)}' in parents"

        folders = self._list(query, "nextPageToken, files(id, name)")
        if not folders:
            logger.debug(f"Folder {name!r} not found under {parent_id or 'root'}")
            return None
        return folders[0]["id"]

    def list_files_in_folder(self, folder_id: str) -> list[dict]:
        """List non-trashed entries (id, name, mimeType, size, ...) in a folder."""
        query = f"'{_quote(folder_id)}' in parents and trashed = false"
        files = self._list(query, FILE_FIELDS)
        logger.debug(f"Listed {len(files)} entries in folder {folder_id}")
        return files

    def get_file_content(self, file_id: str) -> bytes:
        """Download a file's bytes."""
        response = self._make_request(f"files/{file_id}", params={"alt": "media"})
        return response.content


def create_drive_client() -> GoogleDriveClient:
    """Create a Drive client from environment and app config."""
    from src.config.loader import get_drive_config

    return GoogleDriveClient.from_config(get_drive_config())
