import re
from typing import Optional

_OPEN_LINK = re.compile(r"^https?://open\.spotify\.com/(?:intl-[a-z-]+/)?(?P<kind>track|playlist)/(?P<id>[A-Za-z0-9]+)")
_URI = re.compile(r"^spotify:(?P<kind>track|playlist):(?P<id>[A-Za-z0-9]+)$")
_BARE_ID = re.compile(r"^[A-Za-z0-9]{22}$")


def _parse(value: str, kind: str) -> Optional[str]:
    value = str(value or "").strip()
    for pattern in (_OPEN_LINK, _URI):
        m = pattern.match(value)
        if m:
            return m.group("id") if m.group("kind") == kind else None
    if _BARE_ID.match(value):
        return value
    return None


def parse_track_id(value: str) -> Optional[str]:
    """Track id from an open.spotify.com link, a spotify:track: URI or a bare id."""
    return _parse(value, "track")


def parse_playlist_id(value: str) -> Optional[str]:
    """Playlist id from an open.spotify.com link, a spotify:playlist: URI or a bare id."""
    return _parse(value, "playlist")
