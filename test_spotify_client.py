import asyncio
import base64
import json
import os
import tempfile
import unittest
import urllib.parse
from unittest import mock

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

import httpx

from spotify_api import AlreadyAddedError, ClientStatus, NoTokenError, SpotifyClient, TokenInfo, TokenManager


class FakeSpotify:
    """Accounts + Web API fake: issues numbered access tokens and checks them."""

    def __init__(self):
        self.token_requests = []
        self.api_requests = []
        self.issued = 0
        self.valid_tokens = set()
        self.rotate_refresh_token = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            form = {k: v[0] for k, v in urllib.parse.parse_qs(request.content.decode("utf-8")).items()}
            self.token_requests.append((request, form))
            self.issued += 1
            access_token = f"at{self.issued}"
            self.valid_tokens = {access_token}
            payload = {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": 3600,
                "scope": "playlist-modify-public",
            }
            if form.get("grant_type") == "authorization_code" or self.rotate_refresh_token:
                payload["refresh_token"] = f"rt{self.issued}"
            return httpx.Response(200, json=payload)

        self.api_requests.append(request)
        token = request.headers.get("Authorization", "").split(" ", 1)[-1]
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"error": {"status": 401, "message": "The access token expired"}})

        if request.url.path == "/v1/search":
            return httpx.Response(
                200,
                json={
                    "tracks": {
                        "items": [
                            {"id": "t1", "name": "Song", "uri": "spotify:track:t1", "artists": [{"name": "Artist"}]},
                            {"id": None, "name": "Local", "is_local": True},
                        ]
                    }
                },
            )
        if request.url.path.endswith("/tracks") and request.method == "GET":
            return httpx.Response(200, json={"items": [{"track": {"id": "t0"}}], "total": 1})
        if request.url.path.endswith("/tracks"):
            return httpx.Response(201, json={"snapshot_id": "snap"})
        if request.url.path.startswith("/v1/playlists/"):
            return httpx.Response(200, json={"name": "Party Playlist"})
        return httpx.Response(404, json={"error": {"status": 404, "message": "Not found"}})


class SpotifyClientTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.token_path = os.path.join(self._tmp.name, "spotify.token")
        self.fake = FakeSpotify()
        self.config = {
            "spotify_client_id": "cid",
            "spotify_client_secret": "secret",
            "service_url": "http://localhost:8888",
            "spotify_playlist_id": "p1",
            "token_file": self.token_path,
        }

    async def asyncSetUp(self):
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(self.fake.handler))

    async def asyncTearDown(self):
        await self.http.aclose()
        self._tmp.cleanup()

    def make_client(self, **overrides) -> SpotifyClient:
        return SpotifyClient({**self.config, **overrides}, http=self.http)

    def read_token_file(self) -> dict:
        with open(self.token_path, "r", encoding="utf-8") as f:
            return json.loads(base64.b64decode(f.read()))


class TestSpotifyClient(SpotifyClientTestCase):
    def test_missing_credentials(self):
        with self.assertRaises(ValueError):
            SpotifyClient({"spotify_client_id": "cid"}, http=self.http)

    async def test_exchange_code_stores_token(self):
        client = self.make_client()
        self.assertEqual(client.status, ClientStatus.UNINITIALIZED)
        await client.restore()
        self.assertEqual(client.status, ClientStatus.AWAITING_AUTHORIZATION)

        token = await client.exchange_code("the-code")

        _, form = self.fake.token_requests[0]
        self.assertEqual(form["grant_type"], "authorization_code")
        self.assertEqual(form["code"], "the-code")
        self.assertEqual(form["redirect_uri"], "http://localhost:8888/authorize/")
        self.assertEqual(token.access_token, "at1")
        self.assertEqual(token.refresh_token, "rt1")
        self.assertEqual(client.status, ClientStatus.AUTHORIZED)

        stored = self.read_token_file()
        self.assertEqual(stored["access_token"], "at1")
        self.assertEqual(stored["playlistId"], "p1")

        restored = self.make_client()
        self.assertEqual(await restored.restore(), token)

    async def test_exchange_without_code_or_token_fails(self):
        client = self.make_client()
        await client.restore()

        with self.assertRaises(ValueError):
            await client.exchange_code()
        self.assertEqual(self.fake.token_requests, [])

    async def test_exchange_without_code_refreshes_and_keeps_refresh_token(self):
        client = self.make_client()
        await client.exchange_code("the-code")

        token = await client.exchange_code()

        _, form = self.fake.token_requests[-1]
        self.assertEqual(form["grant_type"], "refresh_token")
        self.assertEqual(form["refresh_token"], "rt1")
        self.assertEqual(token.access_token, "at2")
        self.assertEqual(token.refresh_token, "rt1")
        self.assertEqual(self.read_token_file()["refresh_token"], "rt1")

    async def test_rotated_refresh_token_replaces_old_one(self):
        self.fake.rotate_refresh_token = True
        client = self.make_client()
        await client.exchange_code("the-code")

        token = await client.refresh_token()
        self.assertEqual(token.refresh_token, "rt2")

    async def test_exchange_without_code_and_no_refresh_token(self):
        TokenManager(cache_path=self.token_path).save(TokenInfo(access_token="old"))
        client = self.make_client()
        await client.restore()

        with self.assertRaises(NoTokenError) as ctx:
            await client.exchange_code()

        self.assertIn("accounts.spotify.com/authorize", ctx.exception.auth_link)

    async def test_search_without_token_raises_no_token(self):
        client = self.make_client()
        await client.restore()

        with self.assertRaises(NoTokenError) as ctx:
            await client.search_track("song")

        self.assertIn("client_id=cid", ctx.exception.auth_link)
        self.assertEqual(self.fake.api_requests, [])

    async def test_expired_token_is_refreshed_on_401(self):
        TokenManager(cache_path=self.token_path).save(
            TokenInfo(access_token="stale", refresh_token="rt0", obtained_at=1.0), "p1"
        )
        client = self.make_client()
        await client.restore()

        tracks = await client.search_track("song")

        self.assertEqual([t.id for t in tracks], ["t1"])
        self.assertEqual(tracks[0].artist, "Artist")
        self.assertEqual(len(self.fake.api_requests), 2)
        self.assertEqual(self.fake.token_requests[0][1]["refresh_token"], "rt0")
        stored = self.read_token_file()
        self.assertEqual(stored["access_token"], "at1")
        self.assertEqual(stored["refresh_token"], "rt0")

    async def test_refresh_if_needed(self):
        client = self.make_client()
        await client.exchange_code("the-code")
        self.assertFalse(await client.refresh_if_needed())

        client.state.token = TokenInfo(access_token="at1", refresh_token="rt1", expires_in=3600, obtained_at=1.0)
        self.assertTrue(await client.refresh_if_needed())
        self.assertEqual(client.get_token().access_token, "at2")

    async def test_add_track_and_duplicate(self):
        client = self.make_client()
        await client.exchange_code("the-code")

        await client.add_track_to_playlist("t1")
        self.assertIn("t1", client.playlist.tracks)

        posts = [r for r in self.fake.api_requests if r.method == "POST"]
        self.assertEqual(len(posts), 1)
        self.assertEqual(json.loads(posts[0].content), {"uris": ["spotify:track:t1"]})

        with self.assertRaises(AlreadyAddedError):
            await client.add_track_to_playlist("t0")

    async def test_playlist_name(self):
        client = self.make_client()
        await client.exchange_code("the-code")
        self.assertIsNone(client.get_playlist_name())

        self.assertEqual(await client.fetch_playlist_info(), "Party Playlist")
        self.assertEqual(client.get_playlist_name(), "Party Playlist")
        self.assertEqual(self.fake.api_requests[-1].url.params["fields"], "name")

    async def test_set_playlist_id_persists_and_invalidates(self):
        client = self.make_client(spotify_playlist_id="")
        await client.exchange_code("the-code")
        await client.set_playlist_id("p1")
        await client.playlist.ensure_loaded()
        self.assertTrue(client.playlist.loaded)

        await client.set_playlist_id("p2")

        self.assertFalse(client.playlist.loaded)
        self.assertEqual(self.read_token_file()["playlistId"], "p2")

        restored = self.make_client(spotify_playlist_id="")
        await restored.restore()
        self.assertEqual(restored.state.playlist_id, "p2")

    async def test_set_playlist_id_writes_token_file_off_the_event_loop(self):
        client = self.make_client()
        await client.exchange_code("the-code")

        with mock.patch("spotify_api.client.asyncio.to_thread", wraps=asyncio.to_thread) as to_thread:
            await client.set_playlist_id("p9")

        to_thread.assert_called_once_with(client.token_manager.save, client.get_token(), "p9")
        self.assertEqual(self.read_token_file()["playlistId"], "p9")

    async def test_configured_playlist_wins_over_stored_one(self):
        TokenManager(cache_path=self.token_path).save(TokenInfo(access_token="at"), "stored")
        client = self.make_client(spotify_playlist_id="configured")
        await client.restore()
        self.assertEqual(client.state.playlist_id, "configured")

    async def test_corrupt_token_file_means_no_token(self):
        with open(self.token_path, "w", encoding="utf-8") as f:
            f.write("garbage!!")

        client = self.make_client()
        self.assertIsNone(await client.restore())
        self.assertEqual(client.status, ClientStatus.AWAITING_AUTHORIZATION)
        self.assertFalse(os.path.exists(self.token_path))


if __name__ == "__main__":
    unittest.main(verbosity=2)
