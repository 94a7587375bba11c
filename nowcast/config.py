"""Configuration: env, Spotify credentials, VLC connection, polling and rate limits."""
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Base paths (project root = parent of nowcast package)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from project root so SPOTIFY_CLIENT_ID etc. are set
load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


DATA_DIR = BASE_DIR / "data"
SPOTIFY_TOKEN_CACHE = Path(os.getenv("NOWCAST_TOKEN_CACHE", str(DATA_DIR / ".spotify-token")))

# API
API_HOST = os.getenv("NOWCAST_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("NOWCAST_API_PORT", "8081"))

# Spotify (OAuth; tokens stored in the cache file after first login)
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI = os.getenv(
    "SPOTIFY_REDIRECT_URI", f"http://127.0.0.1:{API_PORT}/api/spotify/callback"
)
SPOTIFY_SCOPES = "user-read-currently-playing user-read-playback-state"
SPOTIFY_REQUEST_TIMEOUT = float(os.getenv("NOWCAST_SPOTIFY_REQUEST_TIMEOUT", "5"))

# VLC HTTP interface (vlc --intf http --http-password <pw> --http-port <port>)
VLC_ENABLED = _env_bool("NOWCAST_VLC_ENABLED", "0")
VLC_HOST = os.getenv("NOWCAST_VLC_HOST", "127.0.0.1")
VLC_PORT = int(os.getenv("NOWCAST_VLC_PORT", "8080"))
VLC_PASSWORD = os.getenv("NOWCAST_VLC_PASSWORD", "vlc")
VLC_CONNECTION_TIMEOUT_MS = int(os.getenv("NOWCAST_VLC_CONNECTION_TIMEOUT_MS", "3000"))
# How long VLC may stay paused before Spotify is allowed to take over
VLC_FALLBACK_DELAY_MS = int(os.getenv("NOWCAST_VLC_FALLBACK_DELAY_MS", "10000"))

# Spotify call budget: at most LIMIT currently-playing calls per WINDOW
SPOTIFY_API_LIMIT = int(os.getenv("NOWCAST_SPOTIFY_API_LIMIT", "30"))
SPOTIFY_RATE_LIMIT_WINDOW_MS = int(os.getenv("NOWCAST_SPOTIFY_RATE_LIMIT_WINDOW_MS", "60000"))

# "Not logged in" reminders
LOGIN_WARNING_INTERVAL_MS = int(os.getenv("NOWCAST_LOGIN_WARNING_INTERVAL_MS", "120000"))
LOGIN_WARNING_MAX_COUNT = int(os.getenv("NOWCAST_LOGIN_WARNING_MAX_COUNT", "2"))

# Adaptive polling. Spotify intervals are longer because calls are metered.
LONG_POLLING_THRESHOLD_MS = int(os.getenv("NOWCAST_LONG_POLLING_THRESHOLD_MS", "30000"))
SPOTIFY_SHORT_INTERVAL_MS = int(os.getenv("NOWCAST_SPOTIFY_SHORT_INTERVAL_MS", "10000"))
SPOTIFY_LONG_INTERVAL_MS = int(os.getenv("NOWCAST_SPOTIFY_LONG_INTERVAL_MS", "30000"))
VLC_SHORT_INTERVAL_MS = int(os.getenv("NOWCAST_VLC_SHORT_INTERVAL_MS", "5000"))
VLC_LONG_INTERVAL_MS = int(os.getenv("NOWCAST_VLC_LONG_INTERVAL_MS", "10000"))
TRACK_END_WINDOW_MS = int(os.getenv("NOWCAST_TRACK_END_WINDOW_MS", "30000"))
TRACK_END_BUFFER_MS = int(os.getenv("NOWCAST_TRACK_END_BUFFER_MS", "3000"))

# CLI popularity printer
POLLING_INTERVAL_MS = int(os.getenv("NOWCAST_POLLING_INTERVAL_MS", "5000"))


@dataclass(frozen=True)
class Settings:
    """Values the core components read. Defaults come from the environment."""
    spotify_client_id: str = SPOTIFY_CLIENT_ID
    spotify_client_secret: str = SPOTIFY_CLIENT_SECRET
    spotify_redirect_uri: str = SPOTIFY_REDIRECT_URI
    spotify_scopes: str = SPOTIFY_SCOPES
    spotify_request_timeout: float = SPOTIFY_REQUEST_TIMEOUT
    token_cache_path: Path = SPOTIFY_TOKEN_CACHE
    api_port: int = API_PORT
    vlc_enabled: bool = VLC_ENABLED
    vlc_host: str = VLC_HOST
    vlc_port: int = VLC_PORT
    vlc_password: str = VLC_PASSWORD
    vlc_connection_timeout_ms: int = VLC_CONNECTION_TIMEOUT_MS
    vlc_fallback_delay_ms: int = VLC_FALLBACK_DELAY_MS
    spotify_api_limit: int = SPOTIFY_API_LIMIT
    spotify_rate_limit_window_ms: int = SPOTIFY_RATE_LIMIT_WINDOW_MS
    login_warning_interval_ms: int = LOGIN_WARNING_INTERVAL_MS
    login_warning_max_count: int = LOGIN_WARNING_MAX_COUNT
    long_polling_threshold_ms: int = LONG_POLLING_THRESHOLD_MS
    spotify_short_interval_ms: int = SPOTIFY_SHORT_INTERVAL_MS
    spotify_long_interval_ms: int = SPOTIFY_LONG_INTERVAL_MS
    vlc_short_interval_ms: int = VLC_SHORT_INTERVAL_MS
    vlc_long_interval_ms: int = VLC_LONG_INTERVAL_MS
    track_end_window_ms: int = TRACK_END_WINDOW_MS
    track_end_buffer_ms: int = TRACK_END_BUFFER_MS
    polling_interval_ms: int = POLLING_INTERVAL_MS

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()


def validate_settings(settings: Settings) -> None:
    """Raise ValueError when the configuration cannot work. Called at startup."""
    # Spotify credentials are only mandatory when Spotify is the sole source
    if not settings.vlc_enabled:
        if not settings.spotify_client_id:
            raise ValueError("SPOTIFY_CLIENT_ID environment variable is required")
        if not settings.spotify_client_secret:
            raise ValueError("SPOTIFY_CLIENT_SECRET environment variable is required")
    else:
        if not settings.vlc_host:
            raise ValueError("NOWCAST_VLC_HOST is required when VLC is enabled")
        if settings.vlc_port <= 0:
            raise ValueError("NOWCAST_VLC_PORT must be a valid port number when VLC is enabled")


def ensure_data_dir(path: Path = DATA_DIR) -> None:
    path.mkdir(parents=True, exist_ok=True)
