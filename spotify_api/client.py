import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .auth import SpotifyAuth
from .dispatcher import Endpoint, RequestDispatcher, Response
from .errors import NoTokenError, UpstreamError
from .models import ClientIdentity, ClientState, ClientStatus, Track
from .playlist_cache import PlaylistCache
from .retry import RetryPolicy
from .token_manager import DEFAULT_TOKEN_CACHE_PATH, TokenInfo, TokenManager

logger = logging.getLogger(__name__)


class SpotifyClient:
    """Spotify Web API client for a single playlist.

    Construct one per process and hand it to whoever needs it (route
    handlers, the setup console). Call ``restore()`` once at startup to pick
    up a previously persisted token.

    Design goals:
    - Keep the token alive (exchange, refresh on 401, persist every change)
    - Never add a track the playlist already has
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        token_manager: Optional[TokenManager] = None,
        http: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = config or {}

        client_id = str(self.config.get("spotify_client_id") or "").strip()
        client_secret = str(self.config.get("spotify_client_secret") or "").strip()
        if not (client_id and client_secret):
            raise ValueError("Spotify credentials missing: set spotify_client_id and spotify_client_secret")

        self.identity = ClientIdentity(client_id=client_id, client_secret=client_secret)
        self.token_manager = token_manager or TokenManager(
            cache_path=str(self.config.get("token_file") or DEFAULT_TOKEN_CACHE_PATH)
        )
        self.state = ClientState(playlist_id=str(self.config.get("spotify_playlist_id") or "").strip() or None)
        self._restored = False

        self.dispatcher = RequestDispatcher(
            self.identity,
            self.state,
            auth_link=self.get_authorization_link,
            refresh=self.refresh_token,
            http=http,
            policy=retry_policy or RetryPolicy.from_config(self.config),
        )
        self.auth = SpotifyAuth(
            self.identity,
            str(self.config.get("service_url") or ""),
            self.dispatcher,
            scopes=self.config.get("spotify_scopes"),
        )
        self.playlist = PlaylistCache(
            self.dispatcher,
            lambda: self.state.playlist_id,
            max_age=float(self.config.get("playlist_cache_max_age") or 0),
        )

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.dispatcher.aclose()

    # -----------------
    # State
    # -----------------

    @property
    def status(self) -> ClientStatus:
        if self.state.token is not None:
            return ClientStatus.AUTHORIZED
        if not self._restored:
            return ClientStatus.UNINITIALIZED
        return ClientStatus.AWAITING_AUTHORIZATION

    async def restore(self) -> Optional[TokenInfo]:
        """Load the persisted token (and playlist id, unless configured)."""

        persisted = await asyncio.to_thread(self.token_manager.load)
        self._restored = True
        if persisted is None:
            logger.info("No stored Spotify token; authorization required")
            return None

        if persisted.playlist_id and not self.state.playlist_id:
            self.state.playlist_id = persisted.playlist_id
        self.state.token = persisted.token
        logger.info("Restored Spotify token from %s", self.token_manager.cache_path)
        return persisted.token

    def get_token(self) -> Optional[TokenInfo]:
        return self.state.token

    async def _set_token(self, token: TokenInfo) -> None:
        self.state.token = token
        await asyncio.to_thread(self.token_manager.save, token, self.state.playlist_id)

    async def set_playlist_id(self, playlist_id: str) -> None:
        playlist_id = str(playlist_id or "").strip()
        if not playlist_id:
            raise ValueError("playlist_id must not be empty")

        if playlist_id != self.state.playlist_id:
            self.playlist.invalidate()
            self.state.playlist_name = None
        self.state.playlist_id = playlist_id

        if self.state.token is not None:
            await asyncio.to_thread(self.token_manager.save, self.state.token, playlist_id)

    def get_playlist_name(self) -> Optional[str]:
        return self.state.playlist_name

    # -----------------
    # Authorization
    # -----------------

    def get_authorization_link(self) -> str:
        return self.auth.build_authorization_link()

    async def exchange_code(self, code: Optional[str] = None) -> TokenInfo:
        """Exchange an authorization code, or refresh the stored token when no code is given."""

        if code:
            token = await self.auth.exchange_code(code)
        elif self.state.token is None:
            raise ValueError("Required parameter missing: 'code'")
        else:
            token = await self.auth.refresh(self.state.token)

        await self._set_token(token)
        logger.info("Spotify token stored (expires in %ss)", token.expires_in)
        return token

    async def refresh_token(self) -> TokenInfo:
        if self.state.token is None:
            raise NoTokenError(self.get_authorization_link())

        token = await self.auth.refresh(self.state.token)
        await self._set_token(token)
        return token

    async def refresh_if_needed(self) -> bool:
        token = self.state.token
        if token is None or not token.is_expired() or not token.has_refresh_token:
            return False
        await self.refresh_token()
        return True

    # -----------------
    # Endpoints
    # -----------------

    async def send(self, endpoint: Endpoint, path: str, method: str = "GET", **kwargs: Any) -> Response:
        return await self.dispatcher.send(endpoint, path, method, **kwargs)

    async def fetch_playlist_info(self) -> Optional[str]:
        playlist_id = self.playlist.playlist_id
        info = await self.dispatcher.send(
            Endpoint.API,
            f"/playlists/{playlist_id}",
            query={"fields": "name"},
        )
        if not isinstance(info, dict):
            raise UpstreamError(f"Unexpected response fetching playlist {playlist_id}")

        self.state.playlist_name = info.get("name")
        return self.state.playlist_name

    async def search_track(self, query: str, *, limit: Optional[int] = None) -> List[Track]:
        result = await self.dispatcher.send(
            Endpoint.API,
            "/search",
            query={"q": query, "type": "track", "limit": limit},
        )
        if not isinstance(result, dict):
            raise UpstreamError("Unexpected response from Spotify search")

        items = (result.get("tracks") or {}).get("items") or []
        tracks = [Track.from_api(item) for item in items]
        return [t for t in tracks if t is not None]

    async def add_track_to_playlist(self, track_id: str) -> None:
        track_id = str(track_id or "").strip()
        if not track_id:
            raise ValueError("track_id must not be empty")

        logger.info("Adding track %s", track_id)
        await self.playlist.add(track_id)

    def invalidate_playlist_cache(self) -> None:
        self.playlist.invalidate()
