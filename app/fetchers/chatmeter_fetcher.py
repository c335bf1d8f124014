"""Chatmeter fetcher for retrieving review data."""

from typing import Any, Dict, List, Optional
from urllib.parse import quote
import httpx
import structlog

from app.config import Settings, settings as default_settings
from app.monitoring.metrics import chatmeter_requests_total

logger = structlog.get_logger(__name__)

AUTH_STYLE_FALLBACKS = ("raw", "xauth", "token", "token_eq", "bearer")
SCOPE_PARAMS = ("clientId", "accountId", "groupId")


class ChatmeterAPIError(Exception):
    """Base exception for Chatmeter API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChatmeterAuthError(ChatmeterAPIError):
    """Authentication/authorization error (401, 403) with every auth style."""
    pass


class ChatmeterRateLimitError(ChatmeterAPIError):
    """Rate limit exceeded (429)."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ChatmeterServerError(ChatmeterAPIError):
    """Server error (5xx)."""
    pass


class ChatmeterTransportError(ChatmeterAPIError):
    """Network failure or timeout before a response was received."""
    pass


TRANSIENT_CHATMETER_ERRORS = (ChatmeterServerError, ChatmeterRateLimitError, ChatmeterTransportError)


def build_auth_headers(style: str, token: str) -> Dict[str, str]:
    """
    Build auth headers for one of the supported Chatmeter auth styles.

    Args:
        style: raw, xauth, xapikey, token, token_eq or bearer
        token: API token

    Returns:
        Request headers
    """
    headers = {"Accept": "application/json"}
    style = (style or "bearer").lower()

    if style == "raw":
        headers["Authorization"] = token
    elif style == "xauth":
        headers["X-Auth-Token"] = token
    elif style == "xapikey":
        headers["X-API-Key"] = token
    elif style == "token":
        headers["Authorization"] = f"Token {token}"
    elif style == "token_eq":
        headers["Authorization"] = f"Token token={token}"
    else:
        headers["Authorization"] = f"Bearer {token}"

    return headers


def extract_review_list(data: Any) -> List[Dict[str, Any]]:
    """Reviews from a list response: a bare array or wrapped in reviews/results/data."""
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        for key in ("reviews", "results", "data"):
            if isinstance(data.get(key), list):
                return [item for item in data[key] if isinstance(item, dict)]
    return []


class ChatmeterFetcher:
    """Fetcher for Chatmeter v5 review data."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Chatmeter fetcher.

        Args:
            settings: Application settings
            token: API token (defaults to settings)
            transport: Optional httpx transport (tests)
        """
        self.settings = settings or default_settings
        self.base_url = self.settings.chatmeter_base_url.rstrip("/")
        self.token = token or self.settings.chatmeter_token
        self.auth_style = (self.settings.chatmeter_auth_style or "raw").lower()
        self.timeout = self.settings.http_timeout_seconds
        self._transport = transport

    def _style_sequence(self) -> List[str]:
        return list(dict.fromkeys([self.auth_style, *AUTH_STYLE_FALLBACKS]))

    async def _make_request(
        self,
        path: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make authenticated GET request, trying the next auth style on 401/403.

        Args:
            path: API path
            operation: Operation name for logs and metrics
            params: Query parameters

        Returns:
            Response JSON

        Raises:
            ChatmeterAPIError: On API errors
        """
        if not self.token:
            raise ChatmeterAuthError("Missing Chatmeter API token")

        url = f"{self.base_url}{path}"
        tried: List[str] = []

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for style in self._style_sequence():
                tried.append(style)
                logger.debug("making_chatmeter_request", operation=operation, path=path, auth_style=style)

                try:
                    response = await client.get(url, headers=build_auth_headers(style, self.token), params=params)
                except httpx.TimeoutException as e:
                    chatmeter_requests_total.labels(operation=operation, status="timeout").inc()
                    raise ChatmeterTransportError(f"Timeout during {operation}: {e}")
                except httpx.TransportError as e:
                    chatmeter_requests_total.labels(operation=operation, status="transport_error").inc()
                    raise ChatmeterTransportError(f"Transport error during {operation}: {e}")

                chatmeter_requests_total.labels(operation=operation, status=str(response.status_code)).inc()

                if response.status_code in (401, 403):
                    logger.info("chatmeter_auth_style_rejected", operation=operation, auth_style=style)
                    continue

                if response.status_code == 429:
                    retry_after = response.headers.get("Retry-After")
                    retry_after_int = int(retry_after) if retry_after and retry_after.isdigit() else None
                    logger.warning("chatmeter_rate_limit", operation=operation, retry_after=retry_after)
                    raise ChatmeterRateLimitError(f"Rate limit exceeded. Retry after: {retry_after}", retry_after=retry_after_int)

                if response.status_code >= 500:
                    logger.error("chatmeter_server_error", operation=operation, status=response.status_code)
                    raise ChatmeterServerError(f"Server error: {response.status_code}", response.status_code)

                if response.status_code != 200:
                    logger.error("chatmeter_request_failed", operation=operation, status=response.status_code, response=response.text[:400])
                    raise ChatmeterAPIError(f"{operation} failed: {response.status_code}", response.status_code)

                if style != self.auth_style:
                    logger.info("chatmeter_auth_style_fallback_used", configured=self.auth_style, used=style)

                try:
                    return response.json()
                except ValueError:
                    raise ChatmeterAPIError(f"{operation} returned non-JSON body (len={len(response.text)})")

        logger.error("chatmeter_unauthorized", operation=operation, styles=tried)
        raise ChatmeterAuthError(f"Unauthorized with styles: {', '.join(tried)}")

    def _scope_params(self, overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Account scoping query params from settings; non-empty overrides win."""
        params = {}
        if self.settings.chatmeter_client_id:
            params["clientId"] = self.settings.chatmeter_client_id
        if self.settings.chatmeter_account_id:
            params["accountId"] = self.settings.chatmeter_account_id
        if self.settings.chatmeter_group_id:
            params["groupId"] = self.settings.chatmeter_group_id
        for name, value in (overrides or {}).items():
            if name in SCOPE_PARAMS and value:
                params[name] = value
        return params

    async def list_reviews_since(
        self,
        since_iso: str,
        limit: int = 50,
        until_iso: Optional[str] = None,
        scope: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        List reviews updated since a timestamp, most recent first (best effort).

        Falls back to a reviewDate range query when the updatedSince query is empty.

        Args:
            since_iso: Lower bound (ISO 8601)
            limit: Maximum number of reviews
            until_iso: Upper bound for the range fallback
            scope: Per-call clientId/accountId/groupId overrides

        Returns:
            Raw review payloads
        """
        base_params = {
            "limit": limit,
            "sortField": "reviewDate",
            "sortOrder": "DESC",
            **self._scope_params(scope),
        }

        data = await self._make_request(
            "/reviews",
            operation="list_reviews",
            params={**base_params, "updatedSince": since_iso},
        )
        reviews = extract_review_list(data)

        if not reviews and until_iso:
            data = await self._make_request(
                "/reviews",
                operation="list_reviews",
                params={**base_params, "startDate": since_iso, "endDate": until_iso},
            )
            reviews = extract_review_list(data)

        logger.info("chatmeter_reviews_listed", since=since_iso, count=len(reviews))
        return reviews[:limit]

    async def get_review_detail(self, review_id: str) -> Dict[str, Any]:
        """Get a single review payload by id."""
        data = await self._make_request(f"/reviews/{quote(str(review_id), safe='')}", operation="get_review")
        if isinstance(data, dict) and isinstance(data.get("review"), dict):
            return data["review"]
        return data if isinstance(data, dict) else {}
