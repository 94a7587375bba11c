"""Data models for now-playing snapshots."""
from nowcast.models.track import PlaylistMembership, SourceKind, TrackSnapshot

__all__ = [
    "PlaylistMembership",
    "SourceKind",
    "TrackSnapshot",
]
