"""Shared application state (injected into routes)."""
from typing import Optional

from nowcast.config import Settings
from nowcast.core.arbitrator import SourceArbitrator
from nowcast.core.broadcaster import TrackBroadcaster
from nowcast.core.login_warning import LoginWarningLimiter
from nowcast.core.spotify_auth import SpotifyAuth
from nowcast.core.spotify_client import SpotifyTrackClient
from nowcast.core.vlc_client import VLCClient


class AppState:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings.from_env()
        self.spotify_auth = SpotifyAuth(self.settings)
        self.login_warning = LoginWarningLimiter(
            self.settings.login_warning_max_count,
            self.settings.login_warning_interval_ms,
            login_url=f"http://127.0.0.1:{self.settings.api_port}/api/spotify/login",
        )
        self.spotify_client = SpotifyTrackClient(
            self.spotify_auth, self.settings, login_warning=self.login_warning
        )
        self.vlc_client = VLCClient(self.settings)
        self.arbitrator = SourceArbitrator(self.spotify_client, self.vlc_client, self.settings)
        self.broadcaster = TrackBroadcaster(self.arbitrator, self.settings)


_state: Optional[AppState] = None


def get_state() -> AppState:
    global _state
    if _state is None:
        _state = AppState()
    return _state
