import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from .errors import NoTokenError, TransportError, UpstreamError
from .models import ClientIdentity, ClientState
from .retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"


class Endpoint(str, Enum):
    API = "api"
    ACCOUNTS = "accounts"


BASE_URLS = {
    Endpoint.API: SPOTIFY_API_BASE_URL,
    Endpoint.ACCOUNTS: SPOTIFY_ACCOUNTS_BASE_URL,
}

Response = Union[Dict[str, Any], list, httpx.Response]


class RequestDispatcher:
    """Sends requests to the accounts/api endpoint families with the right auth.

    Retry behavior comes from ``policy``:
    - 401 on api calls: refresh via ``refresh`` and retry
    - 403: retry as-is (Spotify uses it for transient rate limiting too)
    - anything else: UpstreamError, no retry
    Transport errors are never retried.
    """

    def __init__(
        self,
        identity: ClientIdentity,
        state: ClientState,
        *,
        auth_link: Callable[[], str],
        refresh: Optional[Callable[[], Awaitable[Any]]] = None,
        http: Optional[httpx.AsyncClient] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.identity = identity
        self.state = state
        self.auth_link = auth_link
        self.refresh = refresh
        self.policy = policy or RetryPolicy()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    def _headers(self, endpoint: Endpoint, extra: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers = dict(extra or {})
        has_own_auth = any(k.lower() == "authorization" for k in headers)

        if endpoint is Endpoint.API:
            # Rebuilt on every attempt so a refreshed token is picked up.
            headers["Authorization"] = self.state.token.authorization_header
        elif not has_own_auth:
            headers["Authorization"] = f"Basic {self.identity.basic_credential}"
        return headers

    async def _send_once(self, endpoint: Endpoint, method: str, url: str, **kwargs: Any) -> Response:
        headers = self._headers(endpoint, kwargs.pop("headers", None))
        try:
            resp = await self.http.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise TransportError(e) from e

        content_type = resp.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            return resp

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(
                f"Spotify response was not valid JSON (HTTP {resp.status_code}): {resp.text[:200]}",
                status=resp.status_code,
            ) from e

    async def send(
        self,
        endpoint: Union[Endpoint, str],
        path: str,
        method: str = "GET",
        *,
        query: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        """Send a request and return parsed JSON, or the raw response for non-JSON bodies."""

        endpoint = Endpoint(endpoint)
        method = method.upper()

        if endpoint is Endpoint.API and self.state.token is None:
            raise NoTokenError(self.auth_link())

        url = f"{BASE_URLS[endpoint]}{path}"
        logger.info("%s - %s", method, url)

        kwargs: Dict[str, Any] = {}
        if query:
            kwargs["params"] = {k: str(v) for k, v in query.items() if v is not None}
        if json is not None:
            kwargs["json"] = json
        if data is not None:
            kwargs["data"] = {k: str(v) for k, v in data.items() if v is not None}

        async def send_once() -> Response:
            return await self._send_once(endpoint, method, url, headers=headers, **kwargs)

        return await call_with_retry(
            send_once,
            self.policy,
            refresh=self.refresh if endpoint is Endpoint.API else None,
            description=f"{method} {path}",
        )
