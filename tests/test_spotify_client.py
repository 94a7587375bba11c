import pytest
import requests
from spotipy import SpotifyException

from conftest import FakeClock
from nowcast.core.login_warning import LoginWarningLimiter
from nowcast.core.spotify_client import SpotifyTrackClient
from nowcast.models.track import PlaylistMembership, SourceKind


def _payload(name="Song A", is_playing=True, context=None, progress_ms=1000):
    return {
        "is_playing": is_playing,
        "progress_ms": progress_ms,
        "context": context,
        "item": {
            "id": "track-1",
            "uri": "spotify:track:track-1",
            "name": name,
            "duration_ms": 200000,
            "popularity": 71,
            "album": {"id": "album-1", "name": "Album A", "album_type": "album"},
            "artists": [{"id": "artist-1", "name": "Artist A"}, {"id": "artist-2", "name": "Artist B"}],
        },
    }


class FakeSpotify:
    def __init__(self, responses=None):
        # Each entry is a payload dict, None (204) or an exception to raise
        self.responses = list(responses or [])
        self.currently_playing_calls = 0
        self.album_error = None
        self.playlist_pages = {}
        self.playlist_calls = []

    def currently_playing(self):
        self.currently_playing_calls += 1
        result = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(result, Exception):
            raise result
        return result

    def album(self, album_id):
        if self.album_error is not None:
            raise self.album_error
        return {"id": album_id, "popularity": 65}

    def artist(self, artist_id):
        return {"id": artist_id, "popularity": 80}

    def playlist_items(self, playlist_id, fields=None, limit=100, offset=0):
        self.playlist_calls.append(offset)
        return self.playlist_pages[offset]


class FakeAuth:
    def __init__(self, sp, authenticated=True, refresh_ok=True):
        self.sp = sp
        self.authenticated = authenticated
        self.refresh_ok = refresh_ok
        self.refresh_calls = 0

    @property
    def is_authenticated(self):
        return self.authenticated

    async def ensure_fresh(self):
        return None

    async def refresh(self):
        self.refresh_calls += 1
        self.authenticated = self.refresh_ok
        return self.refresh_ok

    def client(self):
        return self.sp


def _client(settings, sp, clock=None, **auth_kwargs):
    clock = clock or FakeClock()
    auth = FakeAuth(sp, **auth_kwargs)
    warn = LoginWarningLimiter(2, 120000, clock=clock)
    return SpotifyTrackClient(auth, settings, login_warning=warn, clock=clock), auth, warn


@pytest.mark.anyio
async def test_builds_snapshot_from_payload(settings):
    client, _, _ = _client(settings, FakeSpotify([_payload()]))

    snapshot = await client.fetch_current()

    assert snapshot.track_name == "Song A"
    assert snapshot.artist_name == "Artist A, Artist B"
    assert snapshot.source is SourceKind.PRIMARY
    assert snapshot.is_playing
    assert snapshot.progress_ms == 1000
    assert snapshot.duration_ms == 200000
    assert snapshot.album_name == "Album A"
    assert snapshot.album_type == "album"
    assert snapshot.popularity == 71
    assert snapshot.album_popularity == 65
    assert snapshot.artist_popularity == 80
    assert snapshot.playlist_membership is PlaylistMembership.NONE


@pytest.mark.anyio
async def test_no_content_means_nothing_playing(settings):
    client, _, _ = _client(settings, FakeSpotify([None]))

    assert await client.fetch_current() is None


@pytest.mark.anyio
async def test_payload_without_artists_is_no_track(settings):
    payload = _payload()
    payload["item"]["artists"] = []
    client, _, _ = _client(settings, FakeSpotify([payload]))

    assert await client.fetch_current() is None


@pytest.mark.anyio
async def test_unauthenticated_returns_none_and_warns(settings):
    sp = FakeSpotify([_payload()])
    client, _, warn = _client(settings, sp, authenticated=False)

    assert await client.fetch_current() is None
    assert sp.currently_playing_calls == 0
    assert warn.count == 1


@pytest.mark.anyio
async def test_budget_exhaustion_serves_cache(settings):
    # settings.spotify_api_limit == 3
    sp = FakeSpotify([_payload()])
    client, _, _ = _client(settings, sp)

    results = [await client.fetch_current() for _ in range(5)]

    assert sp.currently_playing_calls == 3
    assert all(r is not None and r.track_name == "Song A" for r in results)


@pytest.mark.anyio
async def test_budget_resets_after_window(settings):
    clock = FakeClock()
    sp = FakeSpotify([_payload()])
    client, _, _ = _client(settings, sp, clock=clock)
    for _ in range(4):
        await client.fetch_current()
    assert sp.currently_playing_calls == 3

    clock.advance(60001)
    await client.fetch_current()

    assert sp.currently_playing_calls == 4
    assert client.budget.count == 1


@pytest.mark.anyio
async def test_rate_limited_serves_cache_twice(settings):
    sp = FakeSpotify([_payload(), SpotifyException(429, -1, "rate limited")])
    client, _, _ = _client(settings, sp)
    first = await client.fetch_current()

    second = await client.fetch_current()
    third = await client.fetch_current()

    assert second == first
    assert third == first


@pytest.mark.anyio
async def test_server_error_and_network_error_serve_cache(settings):
    sp = FakeSpotify([
        _payload(),
        SpotifyException(500, -1, "server error"),
        requests.ConnectionError("down"),
    ])
    client, _, _ = _client(settings, sp)
    first = await client.fetch_current()

    assert await client.fetch_current() == first
    assert await client.fetch_current() == first


@pytest.mark.anyio
async def test_unauthorized_refreshes_and_retries_once(settings):
    sp = FakeSpotify([SpotifyException(401, -1, "expired"), _payload()])
    client, auth, _ = _client(settings, sp)

    snapshot = await client.fetch_current()

    assert snapshot.track_name == "Song A"
    assert auth.refresh_calls == 1
    assert sp.currently_playing_calls == 2
    assert client.budget.count == 2


@pytest.mark.anyio
async def test_unauthorized_with_failed_refresh_returns_none(settings):
    sp = FakeSpotify([_payload(), SpotifyException(401, -1, "expired")])
    client, auth, warn = _client(settings, sp, refresh_ok=False)
    await client.fetch_current()

    assert await client.fetch_current() is None
    assert auth.refresh_calls == 1
    assert not client.is_authenticated
    assert warn.count == 1


@pytest.mark.anyio
async def test_second_unauthorized_serves_cache(settings):
    sp = FakeSpotify([
        _payload(),
        SpotifyException(401, -1, "expired"),
        SpotifyException(401, -1, "still expired"),
    ])
    client, auth, _ = _client(settings, sp)
    first = await client.fetch_current()

    assert await client.fetch_current() == first
    assert auth.refresh_calls == 1


@pytest.mark.anyio
async def test_album_lookup_failure_only_drops_that_field(settings):
    sp = FakeSpotify([_payload()])
    sp.album_error = SpotifyException(500, -1, "boom")
    client, _, _ = _client(settings, sp)

    snapshot = await client.fetch_current()

    assert snapshot.album_popularity is None
    assert snapshot.artist_popularity == 80


@pytest.mark.anyio
async def test_album_context_is_other(settings):
    context = {"type": "album", "uri": "spotify:album:album-1"}
    client, _, _ = _client(settings, FakeSpotify([_payload(context=context)]))

    snapshot = await client.fetch_current()

    assert snapshot.playlist_membership is PlaylistMembership.OTHER


@pytest.mark.anyio
async def test_playlist_membership_found_on_second_page(settings):
    sp = FakeSpotify([_payload(context={"type": "playlist", "uri": "spotify:playlist:pl-1"})])
    sp.playlist_pages = {
        0: {"items": [{"track": {"id": "other", "uri": "spotify:track:other"}}], "next": "page-2"},
        100: {"items": [{"track": {"id": "track-1", "uri": "spotify:track:track-1"}}], "next": None},
    }
    client, _, _ = _client(settings, sp)

    snapshot = await client.fetch_current()

    assert snapshot.playlist_membership is PlaylistMembership.CURRENT
    assert sp.playlist_calls == [0, 100]


@pytest.mark.anyio
async def test_playlist_without_track_is_none(settings):
    sp = FakeSpotify([_payload(context={"type": "playlist", "uri": "spotify:playlist:pl-1"})])
    sp.playlist_pages = {0: {"items": [{"track": None}], "next": None}}
    client, _, _ = _client(settings, sp)

    snapshot = await client.fetch_current()

    assert snapshot.playlist_membership is PlaylistMembership.NONE


@pytest.mark.anyio
async def test_playlist_scan_failure_is_unknown(settings):
    sp = FakeSpotify([_payload(context={"type": "playlist", "uri": "spotify:playlist:pl-1"})])
    client, _, _ = _client(settings, sp)

    async def failing(playlist_id, item):
        raise SpotifyException(404, -1, "not found")

    client.playlist_contains = failing

    snapshot = await client.fetch_current()

    assert snapshot is not None
    assert snapshot.playlist_membership is None


@pytest.mark.anyio
async def test_non_object_artist_entries_are_skipped(settings):
    payload = _payload()
    payload["item"]["artists"] = [None, "Artist X", {"id": "artist-1", "name": "Artist A"}]
    client, _, _ = _client(settings, FakeSpotify([payload]))

    snapshot = await client.fetch_current()

    assert snapshot.artist_name == "Artist A"
    assert snapshot.artist_popularity == 80


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p.update(item="oops"),
        lambda p: p["item"].update(artists=[None]),
        lambda p: p["item"].update(artists=7),
        lambda p: p["item"].update(name=["Song A"]),
    ],
)
@pytest.mark.anyio
async def test_malformed_payload_is_no_track(settings, mutate):
    payload = _payload()
    mutate(payload)
    client, _, _ = _client(settings, FakeSpotify([payload]))

    assert await client.fetch_current() is None


@pytest.mark.anyio
async def test_non_object_payload_is_no_track(settings):
    client, _, _ = _client(settings, FakeSpotify([["not", "a", "dict"]]))

    assert await client.fetch_current() is None


@pytest.mark.anyio
async def test_malformed_optional_fields_degrade(settings):
    payload = _payload(context="oops", progress_ms="soon")
    payload["item"]["album"] = "Album A"
    payload["item"]["duration_ms"] = None
    client, _, _ = _client(settings, FakeSpotify([payload]))

    snapshot = await client.fetch_current()

    assert snapshot.track_name == "Song A"
    assert snapshot.progress_ms == 0
    assert snapshot.duration_ms == 0
    assert snapshot.album_name is None
    assert snapshot.album_popularity is None
    assert snapshot.playlist_membership is PlaylistMembership.NONE


@pytest.mark.anyio
async def test_playlist_scan_skips_malformed_entries(settings):
    sp = FakeSpotify([_payload(context={"type": "playlist", "uri": "spotify:playlist:pl-1"})])
    sp.playlist_pages = {
        0: {"items": [None, "x", {"track": "y"}, {"track": {"id": "track-1"}}], "next": None},
    }
    client, _, _ = _client(settings, sp)

    snapshot = await client.fetch_current()

    assert snapshot.playlist_membership is PlaylistMembership.CURRENT
