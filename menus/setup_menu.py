import questionary

from spotify_api import ErrorKind, SpotifyClient, SpotifyError
from spotify_api.auth import extract_code_from_redirect_url
from spotify_api.links import parse_playlist_id, parse_track_id
from utils.logger import log_error, log_info, log_success, log_warning


def report_error(e: SpotifyError) -> None:
    """Translate a client error into a user-facing message."""
    if e.kind is ErrorKind.NO_TOKEN:
        log_warning("Spotify authorization required. Open this link and approve access:")
        print(f"\n  {e.auth_link}\n")
    elif e.kind is ErrorKind.ALREADY_ADDED:
        log_warning("That track is already in the playlist.")
    elif e.kind is ErrorKind.TRANSPORT:
        log_error(f"Could not reach Spotify: {e}")
    else:
        log_error(f"Spotify request failed: {e}")


async def authorize(client: SpotifyClient) -> None:
    if client.get_token() is not None:
        confirm = await questionary.confirm(
            "A Spotify token is already stored. Authorize again?", default=False
        ).ask_async()
        if not confirm:
            return

    print(f"\nOpen this link, approve access, then paste the URL you are redirected to:\n\n  {client.get_authorization_link()}\n")
    redirect_url = await questionary.text("Redirect URL:").ask_async()
    if not redirect_url:
        return

    parsed = extract_code_from_redirect_url(redirect_url)
    if parsed.get("error"):
        log_error(f"Authorization was denied: {parsed['error']}")
        return
    if not parsed.get("code"):
        log_error("No 'code' parameter found in that URL.")
        return

    await client.exchange_code(parsed["code"])
    log_success("Spotify authorization complete.")


async def select_playlist(client: SpotifyClient) -> None:
    value = await questionary.text("Playlist link or id:").ask_async()
    if not value:
        return

    playlist_id = parse_playlist_id(value)
    if not playlist_id:
        log_error("That does not look like a Spotify playlist link.")
        return

    await client.set_playlist_id(playlist_id)
    name = await client.fetch_playlist_info()
    log_success(f"Playlist set to '{name}' ({playlist_id}).")


async def show_playlist(client: SpotifyClient) -> None:
    name = client.get_playlist_name() or await client.fetch_playlist_info()
    cached = len(client.playlist.tracks) if client.playlist.loaded else "not loaded"
    log_info(f"Playlist: {name} ({client.state.playlist_id}), cached tracks: {cached}")


async def search_and_add(client: SpotifyClient) -> None:
    query = await questionary.text("Search for a track:").ask_async()
    if not query:
        return

    tracks = await client.search_track(query)
    if not tracks:
        log_warning("No tracks found.")
        return

    choices = [questionary.Choice(f"{t.artist} - {t.name}", value=t.id) for t in tracks]
    choices.append(questionary.Choice("Back", value=None))
    track_id = await questionary.select("Add which track?", choices=choices).ask_async()
    if not track_id:
        return

    await client.add_track_to_playlist(track_id)
    log_success("Track added.")


async def add_by_link(client: SpotifyClient) -> None:
    link = await questionary.text("Track link:").ask_async()
    track_id = parse_track_id(link or "")
    if not track_id:
        log_error("That does not look like a Spotify track link.")
        return

    await client.add_track_to_playlist(track_id)
    log_success("Track added.")


async def reload_cache(client: SpotifyClient) -> None:
    client.invalidate_playlist_cache()
    await client.playlist.ensure_loaded()
    log_success(f"Playlist cache reloaded ({len(client.playlist.tracks)} tracks).")


ACTIONS = {
    "Authorize with Spotify": authorize,
    "Set playlist": select_playlist,
    "Show playlist": show_playlist,
    "Search and add a track": search_and_add,
    "Add a track by link": add_by_link,
    "Reload playlist cache": reload_cache,
}


async def setup_menu(client: SpotifyClient) -> None:
    """
    Interactive loop for authorizing, choosing the playlist and submitting tracks.
    Client errors are reported and the loop continues.
    """
    while True:
        choice = await questionary.select(
            "🎵 Playlist Menu — What would you like to do?",
            choices=list(ACTIONS) + ["Exit"],
        ).ask_async()

        if choice is None or choice == "Exit":
            break

        action = ACTIONS[choice]
        try:
            await action(client)
        except SpotifyError as e:
            report_error(e)
        except ValueError as e:
            log_error(str(e))
