"""
OAuth refresh-token grant for the Google Drive integration.

Drive credentials are a long-lived refresh token plus a client id/secret; the
short-lived access token is minted on first use and re-minted when it is
within five minutes of expiry.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import requests
from requests.exceptions import RequestException

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.readonly"

EXPIRY_MARGIN = timedelta(minutes=5)


class OAuthTokenError(Exception):
    """Token could not be obtained or refreshed."""


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str
    client_secret: str
    token_url: str
    scope: str | None = None


@dataclass
class OAuthToken:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(UTC) >= self.expires_at - EXPIRY_MARGIN

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


class OAuthManager:
    """Mints access tokens from a refresh token."""

    def __init__(self, config: OAuthConfig, timeout: float = 30):
        self.config = config
        self.timeout = timeout

    def refresh_token(self, token: OAuthToken) -> OAuthToken:
        """POST the refresh-token grant and return the new token."""
        if not token.refresh_token:
            raise OAuthTokenError("No refresh token available")

        try:
            response = requests.post(
                self.config.token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": token.refresh_token,
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
            access_token = payload["access_token"]
        except (RequestException, KeyError, ValueError) as e:
            logger.error(f"Drive token refresh failed: {e}")
            raise OAuthTokenError(f"Token refresh failed: {e}") from e

        expires_in = payload.get("expires_in")
        logger.info("Refreshed Drive access token")
        return OAuthToken(
            access_token=access_token,
            # Google omits the refresh token on refresh responses
            refresh_token=payload.get("refresh_token") or token.refresh_token,
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in) if expires_in else None,
            token_type=payload.get("token_type", "Bearer"),
        )

    def get_valid_token(self, token: OAuthToken) -> OAuthToken:
        """Return ``token`` while usable, otherwise a refreshed one."""
        if token.access_token and not token.is_expired:
            return token
        if not token.refresh_token:
            raise OAuthTokenError("Token expired and no refresh token available")
        return self.refresh_token(token)


def google_oauth_config(client_id: str, client_secret: str) -> OAuthConfig:
    return OAuthConfig(
        client_id=client_id,
        client_secret=client_secret,
        token_url=GOOGLE_TOKEN_URL,
        scope=GOOGLE_DRIVE_SCOPE,
    )
