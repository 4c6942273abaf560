import base64
import binascii
import json
import logging
import os
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_CACHE_PATH = "spotify.token"


@dataclass(frozen=True)
class TokenInfo:
    """Canonical token payload stored by TokenManager."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    obtained_at: float = 0.0

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional; usually omitted on refresh)
        - scope (space-delimited string)
        """

        return TokenInfo(
            access_token=str(payload.get("access_token") or ""),
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_in=int(payload.get("expires_in") or 0),
            refresh_token=payload.get("refresh_token") or None,
            scope=payload.get("scope") or None,
            obtained_at=float(time.time() if now is None else now),
        )

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"

    @property
    def expires_at(self) -> float:
        return self.obtained_at + self.expires_in

    def carry_forward(self, previous: "TokenInfo") -> "TokenInfo":
        """Keep the previous refresh token/scope when a refresh response omits them."""

        return replace(
            self,
            refresh_token=self.refresh_token or previous.refresh_token,
            scope=self.scope or previous.scope,
        )

    def is_expired(self, *, skew_seconds: int = 60, now: Optional[float] = None) -> bool:
        now_ts = time.time() if now is None else now
        return now_ts >= self.expires_at - float(skew_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_type": self.token_type,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
            "expires_in": self.expires_in,
            "obtained_at": self.obtained_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TokenInfo":
        if not isinstance(data, dict):
            raise TypeError(f"token payload must be an object, got {type(data).__name__}")
        access_token = data.get("access_token")
        if not access_token:
            raise KeyError("access_token")
        return TokenInfo(
            access_token=str(access_token),
            token_type=str(data.get("token_type") or "Bearer"),
            expires_in=int(data.get("expires_in") or 0),
            refresh_token=data.get("refresh_token") or None,
            scope=data.get("scope") or None,
            obtained_at=float(data.get("obtained_at") or 0),
        )


class PersistedToken(NamedTuple):
    token: TokenInfo
    playlist_id: Optional[str] = None


class TokenManager:
    """Reads and writes the base64-encoded JSON token file."""

    def __init__(self, *, cache_path: str = DEFAULT_TOKEN_CACHE_PATH):
        self.cache_path = cache_path

    def ensure_cache_dir(self) -> None:
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def load(self) -> Optional[PersistedToken]:
        """Load the persisted token; a corrupt file is deleted and reported as absent."""
        if not os.path.exists(self.cache_path):
            return None

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            logger.warning("Could not read token file %s: %s", self.cache_path, e)
            return None

        try:
            data = json.loads(base64.b64decode(raw.strip(), validate=True).decode("utf-8"))
            token = TokenInfo.from_dict(data)
            playlist_id = data.get("playlistId") or None
        except (binascii.Error, ValueError, TypeError, KeyError) as e:
            logger.warning("Token file %s is corrupt (%s); removing it", self.cache_path, e)
            self.clear()
            return None

        return PersistedToken(token=token, playlist_id=playlist_id)

    def save(self, token: TokenInfo, playlist_id: Optional[str] = None) -> None:
        """Overwrite the token file with ``token`` (and ``playlist_id`` when given)."""
        payload = token.to_dict()
        if playlist_id:
            payload["playlistId"] = playlist_id

        encoded = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")

        self.ensure_cache_dir()
        with open(self.cache_path, "w", encoding="utf-8") as f:
            f.write(encoded)

    def clear(self) -> bool:
        try:
            if os.path.exists(self.cache_path):
                os.remove(self.cache_path)
            return True
        except OSError as e:
            logger.warning("Could not remove token file %s: %s", self.cache_path, e)
            return False
