"""
Gmail API Client

Provides authenticated access to the Gmail REST API for one mailbox owner.
Credentials are the owner's OAuth access/refresh token pair; refreshing is
delegated to google-auth.
"""

import logging
from typing import Any, Dict, Optional

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials

from ..core.config import GmailAPIConfig
from ..core.exceptions import (
    AuthorizationRevoked,
    GmailAPIError,
    GmailAuthenticationError,
    GmailRateLimitError,
    MessageNotFoundError,
)


logger = logging.getLogger(__name__)

INVALID_GRANT = "invalid_grant"


def _error_detail(response: requests.Response) -> str:
    """Pull the provider's error message out of a JSON error body."""
    try:
        error_data = response.json()
        error = error_data.get("error", {})
        if isinstance(error, dict):
            return error.get("message", response.text)
        # OAuth endpoints return {"error": "invalid_grant", "error_description": ...}
        return f"{error}: {error_data.get('error_description', '')}".strip(": ")
    except ValueError:
        return response.text


class GmailAPIClient:
    """
    Gmail API client bound to one user's OAuth credentials.

    Supports:
    - Access token reuse, refresh through google-auth when missing or expired
    - A single refresh-and-retry on 401 responses
    - Typed errors for 404 / 429 / other failures (no other retries; callers
      own retry policy)

    Usage:
        client = GmailAPIClient.from_tokens(config.gmail_api, access_token, refresh_token)
        profile = client.get('/users/me/profile')
    """

    def __init__(self, config: GmailAPIConfig, credentials: Credentials, timeout: int = 30):
        """
        Initialize Gmail API client.

        Args:
            config: GmailAPIConfig with OAuth client settings
            credentials: google-auth Credentials for the mailbox owner
            timeout: Per-request timeout in seconds
        """
        self.config = config
        self.base_url = config.base_url
        self.timeout = timeout
        self._credentials = credentials

    @classmethod
    def from_tokens(
        cls,
        config: GmailAPIConfig,
        access_token: Optional[str],
        refresh_token: Optional[str],
        timeout: int = 30,
    ) -> "GmailAPIClient":
        """Build a client from an opaque access/refresh token pair."""
        credentials = Credentials(
            token=access_token or None,
            refresh_token=refresh_token or None,
            token_uri=config.token_uri,
            client_id=config.client_id,
            client_secret=config.client_secret,
            scopes=config.scopes,
        )
        return cls(config, credentials, timeout=timeout)

    @property
    def access_token(self) -> str:
        """Current bearer token, refreshed first if needed."""
        return self._authenticate()

    def _authenticate(self, force_refresh: bool = False) -> str:
        """
        Return a usable access token.

        Raises:
            AuthorizationRevoked: If the refresh token grant is invalid
            GmailAuthenticationError: If no token can be obtained
        """
        creds = self._credentials
        if creds.token and not force_refresh and not creds.expired:
            return creds.token

        if not creds.refresh_token:
            raise GmailAuthenticationError("No valid access token and no refresh token available")

        try:
            logger.info("Refreshing Gmail access token")
            creds.refresh(GoogleAuthRequest())
        except RefreshError as e:
            if INVALID_GRANT in str(e):
                raise AuthorizationRevoked(f"Token refresh failed, {INVALID_GRANT}: {e}", status_code=400)
            raise GmailAuthenticationError(f"Token refresh failed: {e}")

        return creds.token

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        retry_auth: bool = True,
    ) -> requests.Response:
        """
        Make an authenticated request to the Gmail API.

        Args:
            method: HTTP method
            endpoint: API endpoint relative to base_url (e.g. '/users/me/watch') or full URL
            params: Query parameters
            json: JSON body
            retry_auth: Refresh the token and retry once on 401

        Returns:
            requests.Response object

        Raises:
            MessageNotFoundError: 404
            GmailRateLimitError: 429
            GmailAuthenticationError: 401 after refresh
            GmailAPIError: Any other failure
        """
        token = self._authenticate()

        if endpoint.startswith("http"):
            url = endpoint
        else:
            url = f"{self.base_url}{endpoint}" if endpoint.startswith("/") else f"{self.base_url}/{endpoint}"

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        logger.debug(f"{method} {url}")
        try:
            response = requests.request(
                method=method,
                url=url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise GmailAPIError(f"Request failed: {e}")

        if response.status_code == 401:
            detail = _error_detail(response)
            if retry_auth and self._credentials.refresh_token:
                logger.warning(f"401 Unauthorized ({detail}), refreshing token and retrying")
                self._authenticate(force_refresh=True)
                return self._request(method, endpoint, params=params, json=json, retry_auth=False)
            raise GmailAuthenticationError(f"Authentication failed: {detail}", status_code=401)

        if response.status_code == 429:
            raise GmailRateLimitError(f"Rate limited: {_error_detail(response)}", status_code=429)

        if response.status_code == 404:
            raise MessageNotFoundError(f"Not found: {_error_detail(response)}", status_code=404)

        if response.status_code >= 400:
            error_msg = f"Gmail API request failed: {response.status_code} - {_error_detail(response)}"
            logger.error(f"{method} {url} failed: {error_msg}")
            raise GmailAPIError(error_msg, status_code=response.status_code)

        return response

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET request, JSON response as dictionary."""
        response = self._request("GET", endpoint, params=params)
        return response.json()

    def post(self, endpoint: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST request, JSON response as dictionary (empty for no content)."""
        response = self._request("POST", endpoint, json=json)
        return response.json() if response.content else {}
