"""Spotify Web API client for appending tracks to one playlist.

Owns the OAuth token lifecycle (exchange, refresh, persistence), a
bounded-retry request dispatcher and a playlist-membership cache that keeps
duplicate submissions out.

Integration points:
- menus/setup_menu.py (one-time authorization + playlist selection)
- any web front end: catch SpotifyError and switch on ``err.kind``
"""

from .auth import SpotifyAuth
from .client import SpotifyClient
from .dispatcher import Endpoint, RequestDispatcher
from .errors import (
    AlreadyAddedError,
    ErrorKind,
    NoTokenError,
    RetriesExhaustedError,
    SpotifyError,
    TransportError,
    UpstreamError,
)
from .models import ClientIdentity, ClientState, ClientStatus, Track
from .playlist_cache import PlaylistCache
from .retry import RetryPolicy, call_with_retry
from .token_manager import PersistedToken, TokenInfo, TokenManager

__all__ = [
    "SpotifyAuth",
    "SpotifyClient",
    "Endpoint",
    "RequestDispatcher",
    "AlreadyAddedError",
    "ErrorKind",
    "NoTokenError",
    "RetriesExhaustedError",
    "SpotifyError",
    "TransportError",
    "UpstreamError",
    "ClientIdentity",
    "ClientState",
    "ClientStatus",
    "Track",
    "PlaylistCache",
    "RetryPolicy",
    "call_with_retry",
    "PersistedToken",
    "TokenInfo",
    "TokenManager",
]
