"""Authenticated JSON client for the Basket backend API."""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from .errors import ApiError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_TIMEOUT_SECONDS = 30.0

TOKEN_STATUS_HEADER = "X-Token-Status"
RETRY_AFTER_REFRESH_HEADER = "X-Retry-After-Refresh"
REFRESH_ENDPOINT = "/api/auth/refresh"


class ApiClient:
    """Issues JSON requests against the backend.

    A bearer token is attached when one is set. A 401 flagged by the server
    as an invalid token triggers one refresh-and-retry; concurrent 401s share
    a single in-flight refresh. Transport failures raise an ApiError with
    is_network_error set, HTTP rejections raise one carrying the status.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        access_token: str | None = None,
        refresh_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Backend origin, e.g. https://basket.example.com
            timeout: Total per-request timeout in seconds
            access_token: Initial bearer token
            refresh_token: Token used to obtain a new access token
            session: Existing aiohttp session; one is created lazily otherwise
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._session = session
        self._owns_session = session is None
        self._refresh_task: asyncio.Task[str] | None = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    def set_refresh_token(self, token: str | None) -> None:
        self._refresh_token = token

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    # --- Transport ---

    async def _send(
        self,
        method: str,
        endpoint: str,
        body: Any,
        headers: dict[str, str],
    ) -> tuple[int, str | None, Any]:
        """Send one request and decode the JSON body.

        Returns:
            Tuple of (status, token status header, decoded body)
        """
        kwargs: dict[str, Any] = {
            "headers": headers,
            "timeout": aiohttp.ClientTimeout(total=self.timeout),
        }
        if body is not None:
            kwargs["data"] = json.dumps(body)

        try:
            async with self._get_session().request(
                method, f"{self.base_url}{endpoint}", **kwargs
            ) as response:
                text = await response.text()
                status = response.status
                token_status = response.headers.get(TOKEN_STATUS_HEADER)
        except asyncio.TimeoutError as err:
            raise ApiError(
                f"Request to {endpoint} timed out",
                code="TIMEOUT",
                is_network_error=True,
            ) from err
        except aiohttp.ClientError as err:
            raise ApiError(
                f"Network error contacting {endpoint}: {err}",
                code="NETWORK_ERROR",
                is_network_error=True,
            ) from err

        if not text:
            return status, token_status, {}

        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            if 200 <= status < 300:
                raise ApiError(
                    f"Invalid JSON in response from {endpoint}",
                    status=status,
                    code="INVALID_RESPONSE",
                ) from None
            payload = None

        return status, token_status, payload

    @staticmethod
    def _error_from_response(status: int, payload: Any) -> ApiError:
        if isinstance(payload, dict):
            return ApiError(
                payload.get("message") or "Request failed",
                status=status,
                code=payload.get("code") or "UNKNOWN_ERROR",
            )
        return ApiError("An unknown error occurred", status=status, code="UNKNOWN_ERROR")

    # --- Token refresh ---

    async def _refresh_access_token(self) -> str:
        """Obtain a new access token, sharing one refresh among concurrent callers."""
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._do_refresh())
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> str:
        try:
            if not self._refresh_token:
                raise ApiError("No refresh token available", status=401, code="NO_REFRESH_TOKEN")

            status, _, payload = await self._send(
                "POST",
                REFRESH_ENDPOINT,
                {"refreshToken": self._refresh_token},
                {"Content-Type": "application/json"},
            )
            if not 200 <= status < 300 or not isinstance(payload, dict):
                raise ApiError("Refresh token expired or invalid", status=status, code="REFRESH_FAILED")
            if not payload.get("accessToken"):
                raise ApiError(
                    "Refresh response did not include an access token",
                    status=status,
                    code="INVALID_RESPONSE",
                )

            self._access_token = payload["accessToken"]
            if payload.get("refreshToken"):
                self._refresh_token = payload["refreshToken"]
            logger.info("Access token refreshed")
            return self._access_token
        finally:
            self._refresh_task = None

    # --- Requests ---

    async def request(self, method: str, endpoint: str, body: Any = None) -> Any:
        """Send an authenticated request and return the decoded JSON body.

        Raises:
            ApiError: On network failure, session expiry or non-2xx response
        """
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        status, token_status, payload = await self._send(method, endpoint, body, headers)

        if status == 401 and token_status == "invalid":
            self._access_token = None
            try:
                await self._refresh_access_token()
            except ApiError as err:
                if err.is_network_error:
                    raise
                self._access_token = None
                self._refresh_token = None
                raise ApiError(
                    "Session expired, please log in again",
                    status=401,
                    code="SESSION_EXPIRED",
                ) from err

            headers["Authorization"] = f"Bearer {self._access_token}"
            headers[RETRY_AFTER_REFRESH_HEADER] = "true"
            status, _, payload = await self._send(method, endpoint, body, headers)

        if not 200 <= status < 300:
            raise self._error_from_response(status, payload)

        return payload

    async def get(self, endpoint: str) -> Any:
        return await self.request("GET", endpoint)

    async def post(self, endpoint: str, body: Any = None) -> Any:
        return await self.request("POST", endpoint, {} if body is None else body)

    async def put(self, endpoint: str, body: Any = None) -> Any:
        return await self.request("PUT", endpoint, {} if body is None else body)

    async def patch(self, endpoint: str, body: Any = None) -> Any:
        return await self.request("PATCH", endpoint, {} if body is None else body)

    async def delete(self, endpoint: str, body: Any = None) -> Any:
        return await self.request("DELETE", endpoint, body)
