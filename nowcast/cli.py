"""CLI: print popularity of the Spotify track that is playing.

Waits until the token cache holds credentials (log in through the server's
/api/spotify/login), then prints one line per track change:

    <track> - Track: 71/100, Album: 65/100, Artist: 80/100
"""
import asyncio
import logging
from typing import Optional

from nowcast.config import Settings, validate_settings
from nowcast.core.spotify_auth import SpotifyAuth
from nowcast.core.spotify_client import SpotifyTrackClient
from nowcast.models.track import TrackSnapshot

logger = logging.getLogger(__name__)


def _score(value: Optional[int]) -> str:
    return "Unknown" if value is None else str(value)


def format_popularity(snapshot: TrackSnapshot) -> str:
    return (
        f"{snapshot.track_name} - Track: {_score(snapshot.popularity)}/100, "
        f"Album: {_score(snapshot.album_popularity)}/100, "
        f"Artist: {_score(snapshot.artist_popularity)}/100"
    )


async def wait_for_login(auth: SpotifyAuth, interval_sec: float) -> None:
    """Re-read the token cache until another process has written credentials."""
    auth.reload_tokens()
    while not auth.is_authenticated:
        await asyncio.sleep(interval_sec)
        auth.reload_tokens()


async def run(settings: Settings) -> None:
    auth = SpotifyAuth(settings)
    client = SpotifyTrackClient(auth, settings)
    interval_sec = settings.polling_interval_ms / 1000.0

    if not auth.is_authenticated:
        logger.info("Waiting for Spotify login (token cache: %s)", settings.token_cache_path)
    await wait_for_login(auth, interval_sec)

    last_track_name = ""
    while True:
        snapshot = await client.fetch_current()
        if snapshot is not None and snapshot.track_name != last_track_name:
            last_track_name = snapshot.track_name
            print(format_popularity(snapshot), flush=True)
        await asyncio.sleep(interval_sec)


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    settings = Settings.from_env()
    validate_settings(settings)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
