"""Spotify "currently playing" client via Spotipy: call budget, cache, token refresh."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests
from spotipy import SpotifyException

from nowcast.config import Settings
from nowcast.core.clock import Clock, monotonic_ms
from nowcast.core.login_warning import LoginWarningLimiter
from nowcast.core.spotify_auth import SpotifyAuth
from nowcast.models.track import PlaylistMembership, SourceKind, TrackSnapshot

logger = logging.getLogger(__name__)

PLAYLIST_PAGE_SIZE = 100
# Context types whose tracks may sit in some playlist we do not check
_OTHER_CONTEXT_TYPES = ("album", "artist", "show")


@dataclass
class ApiCallBudget:
    """Rolling currently-playing call budget."""
    count: int
    window_reset_at: int  # ms, same clock as the client

    def roll(self, now: int, window_ms: int) -> None:
        if now > self.window_reset_at:
            self.count = 0
            self.window_reset_at = now + window_ms

    def exhausted(self, limit: int) -> bool:
        return self.count >= limit


def _ms(value: Any) -> int:
    """Non-negative integer milliseconds; anything unusable counts as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


def _split_uri(uri: Optional[str]) -> Optional[tuple[str, str]]:
    """spotify:playlist:abc -> ("playlist", "abc")."""
    if not isinstance(uri, str) or ":" not in uri:
        return None
    parts = uri.split(":")
    if len(parts) < 3:
        return None
    return parts[1].lower(), parts[2]


class SpotifyTrackClient:
    """Primary source. fetch_current() never raises for ordinary conditions.

    Throttling (own budget or HTTP 429) and transient failures return the last
    cached snapshot. A 401 triggers one refresh and one retry.
    """

    def __init__(
        self,
        auth: SpotifyAuth,
        settings: Settings,
        login_warning: Optional[LoginWarningLimiter] = None,
        clock: Clock = monotonic_ms,
    ) -> None:
        self._auth = auth
        self._settings = settings
        self._clock = clock
        self._login_warning = login_warning or LoginWarningLimiter(
            settings.login_warning_max_count, settings.login_warning_interval_ms, clock=clock
        )
        self.budget = ApiCallBudget(
            count=0, window_reset_at=clock() + settings.spotify_rate_limit_window_ms
        )
        self.last_snapshot: Optional[TrackSnapshot] = None

    @property
    def is_authenticated(self) -> bool:
        return self._auth.is_authenticated

    async def _call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        # Spotipy is blocking; keep the event loop free while it runs
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def fetch_current(self) -> Optional[TrackSnapshot]:
        if not self._auth.is_authenticated:
            self._login_warning.maybe_warn()
            return None

        self.budget.roll(self._clock(), self._settings.spotify_rate_limit_window_ms)
        if self.budget.exhausted(self._settings.spotify_api_limit):
            logger.debug("Spotify call budget exhausted, serving cache")
            return self.last_snapshot

        await self._auth.ensure_fresh()
        if not self._auth.is_authenticated:
            self._login_warning.maybe_warn()
            return None

        payload = None
        # One retry, only after a successful refresh on 401
        for attempt in range(2):
            self.budget.count += 1
            try:
                payload = await self._call(self._auth.client().currently_playing)
            except SpotifyException as e:
                if e.http_status == 401 and attempt == 0:
                    logger.info("Spotify returned 401, refreshing token")
                    if await self._auth.refresh():
                        continue
                    self._login_warning.maybe_warn()
                    return None
                if e.http_status == 429:
                    logger.info("Spotify rate limited the request, serving cache")
                else:
                    logger.debug("Spotify currently-playing failed (%s), serving cache", e.http_status)
                return self.last_snapshot
            except requests.RequestException as e:
                logger.debug("Spotify currently-playing request error: %s", e)
                return self.last_snapshot
            break

        # 204 No Content: spotipy returns None
        snapshot = await self._build_snapshot(payload) if payload else None
        self.last_snapshot = snapshot
        return snapshot

    async def _build_snapshot(self, data: Any) -> Optional[TrackSnapshot]:
        """Map the currently-playing payload; missing or malformed fields mean "no track"."""
        if not isinstance(data, dict):
            return None
        item = data.get("item")
        if not isinstance(item, dict):
            return None
        track_name = item.get("name")
        raw_artists = item.get("artists")
        if not isinstance(raw_artists, list):
            raw_artists = []
        artists = [a for a in raw_artists if isinstance(a, dict)]
        artist_name = ", ".join(
            a["name"] for a in artists if isinstance(a.get("name"), str) and a["name"]
        )
        if not isinstance(track_name, str) or not track_name or not artist_name:
            return None

        album = item.get("album")
        if not isinstance(album, dict):
            album = {}
        album_id = album.get("id")
        artist_id = artists[0].get("id") if artists else None
        album_popularity = await self._popularity("album", album_id) if album_id else None
        artist_popularity = await self._popularity("artist", artist_id) if artist_id else None
        membership = await self._playlist_membership(data.get("context"), item)

        popularity = item.get("popularity")
        return TrackSnapshot(
            track_name=track_name,
            artist_name=artist_name,
            is_playing=bool(data.get("is_playing", False)),
            source=SourceKind.PRIMARY,
            progress_ms=_ms(data.get("progress_ms")),
            duration_ms=_ms(item.get("duration_ms")),
            album_name=album.get("name") or None,
            album_type=album.get("album_type") or None,
            popularity=popularity if isinstance(popularity, int) else None,
            album_popularity=album_popularity,
            artist_popularity=artist_popularity,
            playlist_membership=membership,
        )

    async def _popularity(self, kind: str, id_: str) -> Optional[int]:
        """Album or artist popularity (0-100); None on any failure."""
        sp = self._auth.client()
        lookup = sp.album if kind == "album" else sp.artist
        try:
            obj = await self._call(lookup, id_)
        except (SpotifyException, requests.RequestException) as e:
            logger.debug("Spotify %s lookup failed for %s: %s", kind, id_, e)
            return None
        value = obj.get("popularity") if isinstance(obj, dict) else None
        return value if isinstance(value, int) else None

    async def _playlist_membership(
        self, context: Optional[dict], item: dict
    ) -> Optional[PlaylistMembership]:
        """Classify the playback context. None means the check itself failed."""
        if not isinstance(context, dict):
            return PlaylistMembership.NONE
        context_type = context.get("type")
        context_type = context_type.lower() if isinstance(context_type, str) else ""
        if context_type in _OTHER_CONTEXT_TYPES:
            return PlaylistMembership.OTHER
        if context_type != "playlist":
            return PlaylistMembership.NONE
        parsed = _split_uri(context.get("uri"))
        if parsed is None:
            return PlaylistMembership.NONE
        try:
            found = await self.playlist_contains(parsed[1], item)
        except (SpotifyException, requests.RequestException) as e:
            logger.debug("Playlist scan failed for %s: %s", parsed[1], e)
            return None
        return PlaylistMembership.CURRENT if found else PlaylistMembership.NONE

    async def playlist_contains(self, playlist_id: str, item: dict) -> bool:
        """Page through the playlist until the track is found or the list ends."""
        track_id = item.get("id")
        track_uri = item.get("uri")
        sp = self._auth.client()
        offset = 0
        while True:
            page = await self._call(
                sp.playlist_items,
                playlist_id,
                fields="items(track(id,uri)),next",
                limit=PLAYLIST_PAGE_SIZE,
                offset=offset,
            )
            if not isinstance(page, dict):
                return False
            entries = page.get("items")
            if not isinstance(entries, list):
                return False
            for entry in entries:
                track = entry.get("track") if isinstance(entry, dict) else None
                if not isinstance(track, dict):
                    continue
                if (track_id and track.get("id") == track_id) or (
                    track_uri and track.get("uri") == track_uri
                ):
                    return True
            if not entries or not page.get("next"):
                return False
            offset += PLAYLIST_PAGE_SIZE
