"""Core services: Spotify and VLC clients, source arbitration, broadcasting."""
from nowcast.core.arbitrator import SourceArbitrator
from nowcast.core.broadcaster import TrackBroadcaster
from nowcast.core.spotify_client import SpotifyTrackClient
from nowcast.core.vlc_client import VLCClient

__all__ = ["SourceArbitrator", "SpotifyTrackClient", "TrackBroadcaster", "VLCClient"]
