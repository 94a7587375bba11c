import pytest

from conftest import make_track
from nowcast.cli import format_popularity, wait_for_login


def test_format_popularity():
    snapshot = make_track(name="Song A", popularity=71, album_popularity=65, artist_popularity=80)

    assert format_popularity(snapshot) == "Song A - Track: 71/100, Album: 65/100, Artist: 80/100"


def test_format_popularity_unknown_values():
    snapshot = make_track(name="Song A", popularity=None)

    assert format_popularity(snapshot) == (
        "Song A - Track: Unknown/100, Album: Unknown/100, Artist: Unknown/100"
    )


class _PollingAuth:
    def __init__(self, logged_in_after):
        self.reloads = 0
        self.logged_in_after = logged_in_after

    @property
    def is_authenticated(self):
        return self.reloads >= self.logged_in_after

    def reload_tokens(self):
        self.reloads += 1


@pytest.mark.anyio
async def test_wait_for_login_rereads_cache_until_logged_in():
    auth = _PollingAuth(logged_in_after=3)

    await wait_for_login(auth, 0)

    assert auth.reloads == 3
