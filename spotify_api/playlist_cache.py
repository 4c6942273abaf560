import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

from .dispatcher import Endpoint, RequestDispatcher
from .errors import AlreadyAddedError, UpstreamError
from .retry import extract_api_error

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class PlaylistCache:
    """In-memory mirror of which track ids are already in the playlist.

    The first add loads the whole playlist (sequential pages of PAGE_SIZE).
    After that, membership checks never hit the network; confirmed adds are
    appended locally. ``invalidate()`` or ``max_age`` force a reload.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        playlist_id: Callable[[], Optional[str]],
        *,
        max_age: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.dispatcher = dispatcher
        self._playlist_id = playlist_id
        self.max_age = max_age or None
        self._clock = clock

        self._tracks: List[str] = []
        self._loaded_at: Optional[float] = None
        self._loading: Optional["asyncio.Task[None]"] = None
        self._generation = 0
        self._add_lock = asyncio.Lock()

    @property
    def playlist_id(self) -> str:
        playlist_id = self._playlist_id()
        if not playlist_id:
            raise ValueError("No playlist configured. Set spotify_playlist_id or run the setup flow.")
        return playlist_id

    @property
    def tracks(self) -> Tuple[str, ...]:
        return tuple(self._tracks)

    @property
    def loaded(self) -> bool:
        if self._loaded_at is None:
            return False
        if self.max_age is not None and self._clock() - self._loaded_at >= self.max_age:
            return False
        return True

    def invalidate(self) -> None:
        # A load still in flight belongs to the old generation and will not commit.
        self._generation += 1
        self._loading = None
        self._tracks = []
        self._loaded_at = None

    def contains(self, track_id: str) -> bool:
        return track_id in self._tracks

    async def ensure_loaded(self) -> None:
        # Loops when an invalidate() discarded the load this caller was waiting on.
        while not self.loaded:
            if self._loading is None:
                self._loading = asyncio.ensure_future(self._load())
                self._loading.add_done_callback(self._clear_latch)

            # Shielded so one cancelled waiter does not cancel the load for the others.
            await asyncio.shield(self._loading)

    def _clear_latch(self, task: "asyncio.Task[None]") -> None:
        if self._loading is task:
            self._loading = None

    async def _load(self) -> None:
        generation = self._generation
        playlist_id = self.playlist_id
        logger.info("Loading playlist %s...", playlist_id)

        tracks: List[str] = []
        offset = 0
        while True:
            page = await self.dispatcher.send(
                Endpoint.API,
                f"/playlists/{playlist_id}/tracks",
                "GET",
                query={"offset": offset, "limit": PAGE_SIZE},
            )
            if not isinstance(page, dict):
                raise UpstreamError(f"Unexpected response loading playlist {playlist_id}")

            items = page.get("items") or []
            for item in items:
                track = item.get("track") if isinstance(item, dict) else None
                if isinstance(track, dict) and track.get("id"):
                    tracks.append(str(track["id"]))

            total = int(page.get("total") or 0)
            offset += len(items)
            if not items or offset >= total:
                break

        if generation != self._generation or playlist_id != self._playlist_id():
            logger.info("Discarding stale load of playlist %s", playlist_id)
            return

        self._tracks = tracks
        self._loaded_at = self._clock()
        logger.info("Fetched %d tracks", len(tracks))

    async def add(self, track_id: str) -> None:
        async with self._add_lock:
            await self.ensure_loaded()

            if self.contains(track_id):
                raise AlreadyAddedError(track_id)

            result = await self.dispatcher.send(
                Endpoint.API,
                f"/playlists/{self.playlist_id}/tracks",
                "POST",
                json={"uris": [f"spotify:track:{track_id}"]},
            )

            error = extract_api_error(result)
            if error is not None:
                raise UpstreamError(error.message, status=error.status)
            if not isinstance(result, dict):
                status = getattr(result, "status_code", None)
                raise UpstreamError(f"Adding track {track_id} failed (HTTP {status})", status=status)

            self._tracks.append(track_id)
            logger.info("Added track %s to playlist %s", track_id, self.playlist_id)
