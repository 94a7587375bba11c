"""Shared fixtures: fake clock, settings, snapshot factory, scripted sources."""
from typing import Optional

import pytest

from nowcast.config import Settings
from nowcast.models.track import SourceKind, TrackSnapshot


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ScriptedSource:
    """Track source returning a fixed value, or the next value of a script."""

    def __init__(self, value: Optional[TrackSnapshot] = None, script=None) -> None:
        self.value = value
        self.script = list(script) if script is not None else None
        self.calls = 0

    async def fetch_current(self) -> Optional[TrackSnapshot]:
        self.calls += 1
        if self.script:
            return self.script.pop(0)
        return self.value


def make_track(
    name: str = "Song A",
    artist: str = "Artist A",
    playing: bool = True,
    source: SourceKind = SourceKind.PRIMARY,
    progress_ms: int = 0,
    duration_ms: int = 0,
    **kwargs,
) -> TrackSnapshot:
    return TrackSnapshot(
        track_name=name,
        artist_name=artist,
        is_playing=playing,
        source=source,
        progress_ms=progress_ms,
        duration_ms=duration_ms,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        spotify_client_id="client-id",
        spotify_client_secret="client-secret",
        spotify_redirect_uri="http://127.0.0.1:8081/api/spotify/callback",
        token_cache_path=tmp_path / ".spotify-token",
        vlc_enabled=True,
        vlc_host="127.0.0.1",
        vlc_port=8080,
        vlc_password="vlc",
        vlc_connection_timeout_ms=3000,
        vlc_fallback_delay_ms=10000,
        spotify_api_limit=3,
        spotify_rate_limit_window_ms=60000,
        login_warning_interval_ms=120000,
        login_warning_max_count=2,
        long_polling_threshold_ms=30000,
        spotify_short_interval_ms=10000,
        spotify_long_interval_ms=30000,
        vlc_short_interval_ms=5000,
        vlc_long_interval_ms=10000,
        track_end_window_ms=30000,
        track_end_buffer_ms=3000,
    )
