import logging
import secrets
import urllib.parse
from typing import Dict, Iterable, Optional

from .dispatcher import SPOTIFY_ACCOUNTS_BASE_URL, Endpoint, RequestDispatcher
from .errors import NoTokenError, UpstreamError
from .models import ClientIdentity
from .token_manager import TokenInfo

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = ("playlist-modify-public", "playlist-read-collaborative")


def redirect_uri_for(service_url: str) -> str:
    """The callback the Spotify app must whitelist: <service_url>/authorize/."""

    return f"{str(service_url or '').strip().rstrip('/')}/authorize/"


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code": ..., "state": ...} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    for key in ("code", "state", "error"):
        if qs.get(key):
            out[key] = str(qs[key][0])
    return out


class SpotifyAuth:
    """Spotify OAuth (Authorization Code with client secret) helper.

    Token requests go through the dispatcher's accounts family, which
    authenticates them with the Basic client credential.
    """

    def __init__(
        self,
        identity: ClientIdentity,
        service_url: str,
        dispatcher: RequestDispatcher,
        *,
        scopes: Optional[Iterable[str]] = None,
    ):
        self.identity = identity
        self.redirect_uri = redirect_uri_for(service_url)
        self.dispatcher = dispatcher
        scope_list = list(scopes if scopes is not None else DEFAULT_SCOPES)
        self.scope = " ".join(str(s).strip() for s in scope_list if str(s).strip())

    def build_authorization_link(self, *, state: Optional[str] = None, show_dialog: bool = False) -> str:
        params: Dict[str, str] = {
            "response_type": "code",
            "client_id": self.identity.client_id,
            "scope": self.scope,
            "redirect_uri": self.redirect_uri,
            "state": state or secrets.token_hex(8),
        }
        if show_dialog:
            params["show_dialog"] = "true"

        return f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize?{urllib.parse.urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenInfo:
        if not code:
            raise ValueError("Required parameter missing: 'code'")

        payload = await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )
        token = TokenInfo.from_spotify_token_response(payload)
        if not token.access_token:
            raise UpstreamError(f"Spotify token exchange failed: {payload}")
        return token

    async def refresh(self, current: TokenInfo) -> TokenInfo:
        if not current.has_refresh_token:
            logger.warning("Access token rejected and no refresh_token is stored; re-authorization required")
            raise NoTokenError(self.build_authorization_link())

        payload = await self._request_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": current.refresh_token,
            }
        )
        token = TokenInfo.from_spotify_token_response(payload)
        if not token.access_token:
            raise UpstreamError(f"Spotify token refresh failed: {payload}")

        # Spotify usually omits refresh_token on refresh; keep the existing one.
        return token.carry_forward(current)

    async def _request_token(self, form: Dict[str, str]) -> dict:
        logger.info("Requesting token (grant_type=%s)", form.get("grant_type"))
        payload = await self.dispatcher.send(
            Endpoint.ACCOUNTS,
            "/api/token",
            "POST",
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if not isinstance(payload, dict):
            raise UpstreamError(
                f"Spotify token response was not JSON (HTTP {getattr(payload, 'status_code', '?')})",
                status=getattr(payload, "status_code", None),
            )
        return payload
