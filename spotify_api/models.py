import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .token_manager import TokenInfo


@dataclass(frozen=True)
class ClientIdentity:
    client_id: str
    client_secret: str

    @property
    def basic_credential(self) -> str:
        """base64(client_id:client_secret), only ever sent to the accounts endpoint."""

        raw = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")


class ClientStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    AUTHORIZED = "authorized"


@dataclass
class ClientState:
    """Mutable state owned by SpotifyClient; fields are replaced, never patched."""

    token: Optional[TokenInfo] = None
    playlist_id: Optional[str] = None
    playlist_name: Optional[str] = None


@dataclass(frozen=True)
class Track:
    id: str
    name: str
    uri: str
    artists: List[str] = field(default_factory=list)
    album: Optional[str] = None
    external_url: Optional[str] = None

    @property
    def artist(self) -> str:
        return ", ".join(self.artists)

    @staticmethod
    def _artist_names(artists: Any) -> List[str]:
        if not isinstance(artists, list):
            return []
        names = []
        seen = set()
        for a in artists:
            if not isinstance(a, dict) or not a.get("name"):
                continue
            name = str(a.get("name")).strip()
            if not name or name.casefold() in seen:
                continue
            seen.add(name.casefold())
            names.append(name)
        return names

    @classmethod
    def from_api(cls, track_obj: Dict[str, Any]) -> Optional["Track"]:
        """Build a Track from a Spotify track object; None for local/id-less entries."""

        if not isinstance(track_obj, dict) or track_obj.get("is_local"):
            return None

        track_id = track_obj.get("id")
        if not track_id:
            return None

        album = track_obj.get("album")
        urls = track_obj.get("external_urls")
        return cls(
            id=str(track_id),
            name=str(track_obj.get("name") or ""),
            uri=str(track_obj.get("uri") or f"spotify:track:{track_id}"),
            artists=cls._artist_names(track_obj.get("artists")),
            album=album.get("name") if isinstance(album, dict) else None,
            external_url=urls.get("spotify") if isinstance(urls, dict) else None,
        )
