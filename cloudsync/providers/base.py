"""Provider interface consumed by the sync engine."""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..exceptions import (
    AuthenticationError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    RateLimitError,
)
from ..models import DeltaEntry, SyncService, Token
from ..utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY


class DriveProvider(ABC):
    """Base class for cloud drive adapters.

    Subclasses implement the OAuth flow and the four file operations the
    sync engine needs. HTTP transport, retries and error translation are
    shared here.
    """

    service: ClassVar[SyncService]

    cursor_key: ClassVar[str]
    """Key under which the delta cursor is kept in ``Account.attributes``"""

    def __init__(
        self,
        token: Token | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize provider.

        Args:
            token: Access token; required for everything except the OAuth flow
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        self.token = token
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    # =========================
    # OAuth
    # =========================

    @abstractmethod
    def get_oauth_url(self) -> str:
        """Return the URL the user opens to authorize cloudsync."""

    @abstractmethod
    def exchange_code(self, code: str) -> Token:
        """Exchange an authorization code for a token."""

    @abstractmethod
    def refresh_token(self, token: Token) -> Token:
        """Obtain a new token using ``token.refresh_token``."""

    # =========================
    # File operations
    # =========================

    @abstractmethod
    def fetch_delta(self, cursor: str | None) -> tuple[list[DeltaEntry], str | None]:
        """Return all file changes since ``cursor`` and the next cursor.

        A missing cursor enumerates the whole drive. Folders are never
        returned.
        """

    @abstractmethod
    def download(self, relative_path: str) -> bytes:
        """Return the content of the remote file at ``relative_path``."""

    @abstractmethod
    def upload(self, relative_path: str, data: bytes) -> str:
        """Create or overwrite a remote file and return its remote id."""

    @abstractmethod
    def delete(self, remote_id: str) -> None:
        """Delete a remote object by id."""

    # =========================
    # HTTP plumbing
    # =========================

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _auth_headers(self) -> dict[str, str]:
        if self.token is None:
            raise AuthenticationError("No access token available, please login first")
        return {"Authorization": f"Bearer {self.token.access_token}"}

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False
        return isinstance(exception, (NetworkError, RateLimitError))

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Translate an HTTP error and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise AuthenticationError("Invalid or expired access token") from e
        elif status_code == 403:
            raise PermissionDeniedError(
                "Access forbidden - check your permissions"
            ) from e
        elif status_code == 404:
            raise NotFoundError("Resource not found") from e
        elif status_code == 429:
            error = RateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = error_data.get("error_description") or error_data.get(
                        "error"
                    )
                    if isinstance(msg, dict):
                        msg = msg.get("message")
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, keep the status based message
            pass

        error = ProviderError(error_msg)
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (error, should_retry)

    def _send(
        self, method: str, url: str, authenticated: bool = True, **kwargs: Any
    ) -> httpx.Response:
        """Send a request with retry logic and return the raw response.

        Raises:
            ProviderError: If the request fails after all retries
        """
        client = self._get_client()
        if authenticated:
            kwargs["headers"] = {**kwargs.get("headers", {}), **self._auth_headers()}
        last_exception: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if retry_after and retry_after.isdigit():
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = NetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise ProviderError("Request failed after all retry attempts")

    def _request(
        self, method: str, url: str, authenticated: bool = True, **kwargs: Any
    ) -> Any:
        """Make an API request and return the decoded JSON body.

        Returns:
            Response JSON data, or an empty dict for empty responses

        Raises:
            ProviderError: If the request fails or the response is not JSON
        """
        response = self._send(method, url, authenticated=authenticated, **kwargs)
        if not response.content:
            return {}

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise InvalidResponseError(f"Unexpected response type: {content_type}")
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError("Invalid JSON response from server") from e


def require_field(data: Any, key: str) -> Any:
    """Return ``data[key]`` or raise InvalidResponseError."""
    if not isinstance(data, dict) or key not in data:
        raise InvalidResponseError(f"Missing '{key}' in provider response")
    return data[key]

