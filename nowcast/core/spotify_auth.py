"""Spotify OAuth credentials: code exchange, refresh, and the on-disk token cache."""
import asyncio
import logging
import time
from typing import Optional

import requests
from spotipy import Spotify
from spotipy.cache_handler import CacheFileHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from nowcast.config import Settings

logger = logging.getLogger(__name__)


def build_oauth(settings: Settings) -> SpotifyOAuth:
    """SpotifyOAuth persisting tokens to the cache file (read at startup, written on refresh)."""
    cache = CacheFileHandler(cache_path=str(settings.token_cache_path))
    return SpotifyOAuth(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        redirect_uri=settings.spotify_redirect_uri,
        scope=settings.spotify_scopes,
        cache_handler=cache,
        open_browser=False,
    )


class SpotifyAuth:
    """Holds the current access/refresh token pair in memory.

    The pair is loaded from the cache file and written back by spotipy after
    every successful exchange or refresh. A failed refresh clears both tokens,
    after which is_authenticated is False until the user logs in again.
    """

    def __init__(self, settings: Settings, oauth: Optional[SpotifyOAuth] = None) -> None:
        self._settings = settings
        self._oauth = oauth if oauth is not None else build_oauth(settings)
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.expires_at: Optional[float] = None  # epoch seconds
        self._client: Optional[Spotify] = None
        self._client_token: Optional[str] = None
        self.reload_tokens()

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def reload_tokens(self) -> None:
        """Re-read tokens from the cache (startup, or after an external change)."""
        token_info = self._oauth.cache_handler.get_cached_token()
        self._apply(token_info)

    def _apply(self, token_info: Optional[dict]) -> None:
        if not token_info or not token_info.get("access_token"):
            self._clear()
            return
        self.access_token = token_info["access_token"]
        self.refresh_token = token_info.get("refresh_token") or self.refresh_token
        self.expires_at = token_info.get("expires_at")

    def _clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.expires_at = None

    def is_token_expired(self) -> bool:
        return self.expires_at is not None and time.time() >= self.expires_at

    def auth_url(self) -> str:
        return self._oauth.get_authorize_url()

    async def exchange_code(self, code: str) -> bool:
        """Exchange an OAuth authorization code for tokens. Returns True on success."""
        try:
            await asyncio.to_thread(
                self._oauth.get_access_token, code=code, as_dict=False, check_cache=False
            )
        except (SpotifyOauthError, requests.RequestException) as e:
            logger.warning("Spotify code exchange failed: %s", e)
            return False
        self.reload_tokens()
        if not self.is_authenticated:
            logger.warning("Spotify code exchange succeeded but the token cache is empty")
            return False
        logger.info("Spotify authentication succeeded")
        return True

    async def refresh(self) -> bool:
        """Trade the refresh token for a new access token.

        On success spotipy has already saved the new pair to the cache file.
        On failure both tokens are dropped from memory.
        """
        if not self.refresh_token:
            logger.warning("No Spotify refresh token available; log in again")
            self._clear()
            return False
        try:
            token_info = await asyncio.to_thread(
                self._oauth.refresh_access_token, self.refresh_token
            )
        except (SpotifyOauthError, requests.RequestException) as e:
            logger.warning("Spotify token refresh failed: %s", e)
            self._clear()
            return False
        self._apply(token_info)
        logger.info("Spotify access token refreshed")
        return self.is_authenticated

    async def ensure_fresh(self) -> None:
        """Refresh ahead of a call when the access token has expired."""
        if self.is_authenticated and self.is_token_expired():
            await self.refresh()

    def client(self) -> Spotify:
        """Spotipy client bound to the current access token.

        Retries are disabled so 401/429 reach the caller instead of being
        retried or slept on inside spotipy.
        """
        if self._client is None or self._client_token != self.access_token:
            self._client = Spotify(
                auth=self.access_token,
                requests_timeout=self._settings.spotify_request_timeout,
                retries=0,
                status_retries=0,
            )
            self._client_token = self.access_token
        return self._client

    def logout(self) -> None:
        """Forget the tokens and delete the cache file."""
        self._clear()
        path = self._settings.token_cache_path
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.warning("Could not delete token cache %s: %s", path, e)
