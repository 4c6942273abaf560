"""Error taxonomy raised by the Spotify client.

Callers (route handlers, the setup console) switch on ``err.kind`` to decide
what to show a user:

- NO_TOKEN: redirect the user to ``err.auth_link``
- ALREADY_ADDED: tell the user the track is already in the playlist
- UPSTREAM / EXHAUSTED / TRANSPORT: server-side failure for this request
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NO_TOKEN = "no_token"
    ALREADY_ADDED = "already_added"
    UPSTREAM = "upstream"
    EXHAUSTED = "exhausted"
    TRANSPORT = "transport"


class SpotifyError(Exception):
    """Base class for every error the client raises on purpose."""

    kind: ErrorKind


class NoTokenError(SpotifyError):
    """No usable credential; the user has to (re-)authorize."""

    kind = ErrorKind.NO_TOKEN

    def __init__(self, auth_link: str):
        super().__init__("Spotify authorization required")
        self.auth_link = auth_link


class AlreadyAddedError(SpotifyError):
    kind = ErrorKind.ALREADY_ADDED

    def __init__(self, track_id: str):
        super().__init__(f"Track {track_id} is already in the playlist")
        self.track_id = track_id


class UpstreamError(SpotifyError):
    """The API answered with an error that is not worth retrying."""

    kind = ErrorKind.UPSTREAM

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class RetriesExhaustedError(SpotifyError):
    kind = ErrorKind.EXHAUSTED

    def __init__(self, attempts: int, last_message: Optional[str] = None):
        super().__init__(last_message or f"Did not get a valid response with {attempts} tries.")
        self.attempts = attempts
        self.last_message = last_message


class TransportError(SpotifyError):
    kind = ErrorKind.TRANSPORT

    def __init__(self, cause: BaseException):
        super().__init__(f"Spotify request failed: {cause}")
        self.cause = cause
