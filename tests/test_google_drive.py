"""
Tests for the Google Drive adapter.

Mocks HTTP responses and validates pagination, error mapping and token
refresh.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from src.adapters.google_drive import (
    DriveAuthError,
    DriveError,
    DriveNotFoundError,
    GoogleDriveClient,
)
from src.common.http import TransientHTTPError, request_with_retry
from src.utils.oauth import OAuthToken


def _response(status=200, payload=None, content=b""):
    response = Mock()
    response.status_code = status
    response.json.return_value = payload or {}
    response.content = content
    response.text = str(payload)
    response.headers = {}
    return response


class TestGoogleDriveClient:
    """Test cases for the Drive client."""

    @pytest.fixture
    def client(self):
        return GoogleDriveClient(access_token="ya29.test")

    def test_requires_credentials(self):
        with pytest.raises(DriveAuthError):
            GoogleDriveClient()

    @patch("src.adapters.google_drive.request_with_retry")
    def test_list_follows_pagination(self, mock_request, client):
        mock_request.side_effect = [
            _response(payload={"files": [{"id": "a"}], "nextPageToken": "p2"}),
            _response(payload={"files": [{"id": "b"}]}),
        ]

        files = client.list_files_in_folder("folder-1")

        assert [f["id"] for f in files] == ["a", "b"]
        second_params = mock_request.call_args_list[1].kwargs["params"]
        assert second_params["pageToken"] == "p2"
        assert "'folder-1' in parents" in second_params["q"]
        assert client.session.headers["Authorization"] == "Bearer ya29.test"

    @patch("src.adapters.google_drive.request_with_retry")
    def test_find_folder_escapes_quotes(self, mock_request, client):
        mock_request.return_value = _response(payload={"files": [{"id": "folder-9"}]})

        folder_id = client.find_folder_by_name("Bob's Files", parent_id="root-1")

        assert folder_id == "folder-9"
        query = mock_request.call_args.kwargs["params"]["q"]
        assert "name = 'Bob\\'s Files'" in query
        assert "'root-1' in parents" in query

    @patch("src.adapters.google_drive.request_with_retry")
    def test_find_folder_missing(self, mock_request, client):
        mock_request.return_value = _response(payload={"files": []})
        assert client.find_folder_by_name("inbox") is None

    @patch("src.adapters.google_drive.request_with_retry")
    def test_error_mapping(self, mock_request, client):
        mock_request.return_value = _response(status=404)
        with pytest.raises(DriveNotFoundError):
            client.get_file_content("missing")

        mock_request.return_value = _response(status=401)
        with pytest.raises(DriveAuthError):
            client.get_file_content("file")

        mock_request.return_value = _response(status=403, payload={"error": "forbidden"})
        with pytest.raises(DriveError, match="HTTP 403"):
            client.get_file_content("file")

    @patch("src.adapters.google_drive.request_with_retry")
    def test_transport_error_wrapped(self, mock_request, client):
        mock_request.side_effect = requests.exceptions.ConnectionError("reset")
        with pytest.raises(DriveError, match="Request error"):
            client.list_files_in_folder("folder-1")

    @patch("src.adapters.google_drive.request_with_retry")
    def test_download(self, mock_request, client):
        mock_request.return_value = _response(content=b"%PDF")
        assert client.get_file_content("file-1") == b"%PDF"
        assert mock_request.call_args.kwargs["params"] == {"alt": "media"}

    @patch("src.adapters.google_drive.request_with_retry")
    def test_refresh_before_first_request(self, mock_request):
        """Test a refresh-token client fetches an access token before calling Drive."""
        client = GoogleDriveClient(
            oauth_config={"client_id": "cid", "client_secret": "secret", "refresh_token": "rt"}
        )
        mock_request.return_value = _response(payload={"files": []})
        fresh = OAuthToken(access_token="fresh", refresh_token="rt")

        with patch.object(client.oauth_manager, "refresh_token", return_value=fresh) as mock_refresh:
            client.list_files_in_folder("folder-1")

        mock_refresh.assert_called_once()
        assert client.session.headers["Authorization"] == "Bearer fresh"


class TestRequestWithRetry:
    """Retry policy for transient HTTP failures."""

    def test_retries_transient_status(self):
        session = Mock()
        session.request.side_effect = [_response(status=503), _response(status=200)]

        response = request_with_retry(
            session, "GET", "https://example.test", backoff={"multiplier": 0, "min": 0, "max": 0}
        )

        assert response.status_code == 200
        assert session.request.call_count == 2

    def test_gives_up_after_attempts(self):
        session = Mock()
        session.request.return_value = _response(status=429)

        with pytest.raises(TransientHTTPError):
            request_with_retry(
                session,
                "GET",
                "https://example.test",
                attempts=2,
                backoff={"multiplier": 0, "min": 0, "max": 0},
            )
        assert session.request.call_count == 2

    def test_client_errors_returned(self):
        session = Mock()
        session.request.return_value = _response(status=404)

        response = request_with_retry(session, "GET", "https://example.test")

        assert response.status_code == 404
        assert session.request.call_count == 1
