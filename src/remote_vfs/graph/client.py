"""Microsoft Graph API client with MSAL authentication."""

from __future__ import annotations

import json
import logging
from typing import IO, TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError, URLError

import msal

if TYPE_CHECKING:
    from remote_vfs.config import VfsConfig

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]
AUTHORITY_BASE_URL = "https://login.microsoftonline.com"


class GraphAuthError(Exception):
    """Raised when MSAL token acquisition fails."""


class GraphApiError(Exception):
    """Raised when the Graph API returns a non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Graph API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class GraphClient:
    """Authenticated client for Microsoft Graph API."""

    def __init__(self, client_id: str, client_secret: str, tenant_id: str) -> None:
        """Initialise the MSAL confidential client application.

        Args:
            client_id: Azure AD application (client) ID.
            client_secret: Azure AD application client secret.
            tenant_id: Azure AD tenant ID.
        """
        authority = f"{AUTHORITY_BASE_URL}/{tenant_id}"
        self._app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=authority,
        )

    def _acquire_token(self) -> str:
        """Acquire a Bearer token using client credentials flow.

        Returns:
            Access token string.

        Raises:
            GraphAuthError: If MSAL cannot acquire a token.
        """
        result: dict[str, Any] = self._app.acquire_token_for_client(scopes=GRAPH_SCOPES) or {}
        if "access_token" not in result:
            error = result.get("error", "unknown_error")
            description = result.get("error_description", "No description provided")
            logger.error("[_acquire_token] MSAL token acquisition failed; error:%s", error)
            raise GraphAuthError(f"Token acquisition failed: {error} ({description})")
        return str(result["access_token"])

    def _open(
        self,
        method: str,
        path: str,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> IO[bytes]:
        """Send an authenticated request and return the open response.

        Args:
            method: HTTP method.
            path: URL path relative to GRAPH_BASE_URL (must start with '/'),
                or an absolute URL returned by the API.
            data: Optional request body.
            headers: Extra request headers.

        Returns:
            The open HTTP response; the caller must close it.

        Raises:
            GraphAuthError: If token acquisition fails.
            GraphApiError: If the API returns a non-2xx status code or the
                connection cannot be established.
        """
        token = self._acquire_token()
        url = path if path.startswith("https://") else f"{GRAPH_BASE_URL}{path}"
        req = urllib_request.Request(
            url,
            data=data,
            headers={"Authorization": f"Bearer {token}", **(headers or {})},
            method=method,
        )
        try:
            return urllib_request.urlopen(req)  # type: ignore[no-any-return]
        except HTTPError as exc:
            raw = exc.read()
            try:
                detail = json.loads(raw).get("error", {}).get("message", exc.reason)
            except Exception:
                detail = exc.reason
            raise GraphApiError(exc.code, detail) from exc
        except URLError as exc:
            raise GraphApiError(0, str(exc.reason)) from exc

    def _request_json(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        headers = {"Accept": "application/json"}
        if data is not None:
            headers["Content-Type"] = "application/json"
        with self._open(method, path, data=data, headers=headers) as resp:
            raw = resp.read()
        return json.loads(raw) if raw else {}  # type: ignore[no-any-return]

    def get(self, path: str) -> dict[str, Any]:
        """Perform an authenticated GET request to the Graph API.

        Args:
            path: URL path relative to BASE_URL (must start with '/').

        Returns:
            Parsed JSON response body as a dict.

        Raises:
            GraphAuthError: If token acquisition fails.
            GraphApiError: If the API returns a non-2xx status code.
        """
        return self._request_json("GET", path)

    def post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """Perform an authenticated POST request with a JSON body."""
        return self._request_json("POST", path, body)

    def delete(self, path: str) -> None:
        """Perform an authenticated DELETE request."""
        with self._open("DELETE", path):
            pass

    def open_content(self, path: str, offset: int = 0) -> IO[bytes]:
        """Open a download stream, optionally starting at a byte offset.

        Args:
            path: Content URL path (ending in ``/content``).
            offset: First byte to return; sent as an HTTP Range header.

        Returns:
            The open HTTP response body stream.
        """
        headers = {"Range": f"bytes={offset}-"} if offset > 0 else {}
        return self._open("GET", path, headers=headers)

    def put_content(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Upload content with a single PUT request (simple upload).

        Args:
            path: URL path relative to BASE_URL (must start with '/').
            content: Raw bytes to upload.
            content_type: MIME type for the Content-Type header.

        Returns:
            Parsed JSON drive item of the uploaded file.
        """
        headers = {"Content-Type": content_type, "Accept": "application/json"}
        with self._open("PUT", path, data=content, headers=headers) as resp:
            raw = resp.read()
        logger.info("[put_content] uploaded content; path:%s;size:%d", path, len(content))
        return json.loads(raw) if raw else {}  # type: ignore[no-any-return]


def graph_client_from_config(config: VfsConfig) -> GraphClient:
    """Construct a GraphClient from file system configuration.

    Args:
        config: File system configuration instance.

    Returns:
        Configured GraphClient instance.

    Raises:
        ValueError: If any of the client credentials is missing.
    """
    if not (config.client_id and config.client_secret and config.tenant_id):
        raise ValueError("Graph client requires client_id, client_secret and tenant_id")
    return GraphClient(
        client_id=config.client_id,
        client_secret=config.client_secret,
        tenant_id=config.tenant_id,
    )
