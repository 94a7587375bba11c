"""Guess an artist from a media filename when the file carries no artist tag."""
import re
from typing import Callable, Optional

from nowcast.models.track import UNKNOWN_ARTIST

# Tag fields tried before looking at the filename, in order
ARTIST_TAGS = ("artist", "album_artist", "albumartist", "composer", "performer", "album")

_EXTENSION = re.compile(r"\.[^.]+$")
_DASH = r"\s*[-–—]\s*"


def _left_unless_title(title: str) -> Callable[[re.Match], Optional[str]]:
    # "Artist - Title", unless the left part is the title itself ("Title - Artist")
    def pick(match: re.Match) -> Optional[str]:
        left, right = match.group(1).strip(), match.group(2).strip()
        return right if left == title else left
    return pick


def _heuristics(title: str):
    """(pattern, extractor) pairs, most specific first."""
    core_title = re.sub(r"\s*-.*$", "", title)
    return [
        # "012 Artist - Title"
        (
            re.compile(r"^\d+\s+(.+?)" + _DASH + r"(.+)"),
            lambda m: m.group(1).strip() if m.group(1).strip() != core_title else None,
        ),
        # "Artist - Title"
        (re.compile(r"^(.+?)" + _DASH + r"(.+)"), _left_unless_title(title)),
        # "Artist_Title"
        (re.compile(r"^(.+?)_(.+)"), _left_unless_title(title)),
        # "[Artist] Title"
        (re.compile(r"^\[(.+?)\]\s*(.+)"), lambda m: m.group(1).strip()),
        # "Title by Artist"
        (re.compile(r"^(.+?)\s+by\s+(.+)", re.IGNORECASE), lambda m: m.group(2).strip()),
    ]


def artist_from_filename(filename: str, title: str) -> Optional[str]:
    """First heuristic whose artist is non-trivial and differs from the title, or None."""
    stem = _EXTENSION.sub("", filename or "").strip()
    if not stem:
        return None
    for pattern, extract in _heuristics(title):
        match = pattern.match(stem)
        if not match:
            continue
        artist = extract(match)
        if artist and len(artist) > 1 and artist != title:
            return artist
    return None


def resolve_artist(meta: dict, title: str) -> str:
    """Artist from tags, else from the filename, else the unknown-artist sentinel."""
    for tag in ARTIST_TAGS:
        value = meta.get(tag)
        if isinstance(value, str) and value.strip() and value != UNKNOWN_ARTIST:
            return value.strip()
    filename = meta.get("filename")
    if not isinstance(filename, str):
        return UNKNOWN_ARTIST
    return artist_from_filename(filename, title) or UNKNOWN_ARTIST
