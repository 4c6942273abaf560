import asyncio
import json

from config import load_config, missing_credentials, validate_config
from menus.setup_menu import report_error, setup_menu
from spotify_api import SpotifyClient, SpotifyError
from utils.logger import log_error, log_info, log_warning, setup_logging


async def run(config: dict) -> None:
    async with SpotifyClient(config) as client:
        await client.restore()

        if client.get_token() is None:
            log_warning("No Spotify token stored yet. Choose 'Authorize with Spotify' first.")
        else:
            try:
                await client.refresh_if_needed()
                if client.state.playlist_id:
                    name = await client.fetch_playlist_info()
                    log_info(f"Target playlist: {name}")
            except SpotifyError as e:
                report_error(e)

        await setup_menu(client)


def main() -> int:
    try:
        config = load_config()
    except json.JSONDecodeError as e:
        setup_logging()
        log_error(f"Config file contains invalid JSON: {e}")
        return 1
    except ValueError as e:
        setup_logging()
        log_error(f"Error loading config: {e}")
        return 1

    setup_logging(config.get("log_level", "INFO"), config.get("log_file") or None)

    missing = missing_credentials(config)
    if missing:
        log_error(f"Missing configuration: {', '.join(missing)} (config.json or CLIENT_ID/CLIENT_SECRET/URL)")
        return 1

    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_error(error)
        return 1

    asyncio.run(run(config))
    log_info("Exiting program...")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
