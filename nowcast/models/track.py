"""Now-playing snapshot shared by the Spotify and VLC sources."""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional, Tuple

UNKNOWN_TRACK = "Unknown Track"
UNKNOWN_ARTIST = "Unknown Artist"


class SourceKind(str, Enum):
    """Which client produced a snapshot."""
    PRIMARY = "primary"  # Spotify Web API
    LOCAL = "local"  # VLC HTTP interface


class PlaylistMembership(str, Enum):
    """Whether the playing track belongs to the playlist it is played from.

    CURRENT: verified by scanning the context playlist.
    OTHER: context is an album/artist/show; membership not checked.
    NONE: radio/mix/no context, or the context playlist lacks the track.
    """
    CURRENT = "current"
    OTHER = "other"
    NONE = "none"


@dataclass(frozen=True)
class TrackSnapshot:
    """What is playing right now according to one source.

    A snapshot always has a non-empty track and artist name; "nothing playing"
    is represented by None, never by an empty snapshot.
    """
    track_name: str
    artist_name: str
    is_playing: bool
    source: SourceKind
    progress_ms: int = 0
    duration_ms: int = 0  # 0 = unknown
    # Display-only qualifier, e.g. "VLC (paused)"; set by the arbitrator
    source_label: str = ""
    album_name: Optional[str] = None
    album_type: Optional[str] = None
    popularity: Optional[int] = None
    album_popularity: Optional[int] = None
    artist_popularity: Optional[int] = None
    playlist_membership: Optional[PlaylistMembership] = None

    def __post_init__(self) -> None:
        if not self.track_name or not self.artist_name:
            raise ValueError("TrackSnapshot requires track_name and artist_name")
        if self.progress_ms < 0 or self.duration_ms < 0:
            raise ValueError("progress_ms and duration_ms must be >= 0")

    def identity_key(self) -> Tuple[str, str, bool]:
        """Key used to decide whether viewers need an update."""
        return (self.track_name, self.artist_name, self.is_playing)

    def remaining_ms(self) -> Optional[int]:
        """Playback time left, or None when the duration is unknown."""
        if self.duration_ms <= 0:
            return None
        return max(0, self.duration_ms - self.progress_ms)

    def with_label(self, label: str) -> "TrackSnapshot":
        return replace(self, source_label=label)

    def to_message(self) -> dict[str, Any]:
        """Flat JSON-ready dict sent to websocket subscribers."""
        return {
            "trackName": self.track_name,
            "artistName": self.artist_name,
            "albumName": self.album_name,
            "albumType": self.album_type,
            "isPlaying": self.is_playing,
            "progressMs": self.progress_ms,
            "durationMs": self.duration_ms,
            "source": self.source_label or _default_label(self.source),
            "sourceKind": self.source.value,
            "popularity": self.popularity,
            "albumPopularity": self.album_popularity,
            "artistPopularity": self.artist_popularity,
            "playlistMembership": (
                self.playlist_membership.value if self.playlist_membership else None
            ),
        }


def _default_label(source: SourceKind) -> str:
    return "Spotify" if source is SourceKind.PRIMARY else "VLC"


def identity_key(snapshot: Optional[TrackSnapshot]) -> Optional[Tuple[str, str, bool]]:
    return snapshot.identity_key() if snapshot is not None else None


def snapshot_message(snapshot: Optional[TrackSnapshot]) -> Optional[dict[str, Any]]:
    """Message for a snapshot; None serializes to JSON null ("nothing playing")."""
    return snapshot.to_message() if snapshot is not None else None
