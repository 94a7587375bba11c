"""Choose between VLC and Spotify on every call.

States:
  Normal       VLC is asked first and wins whenever it is playing.
  LocalPaused  VLC is paused; its snapshot is kept until the grace delay runs out.
  Fallback     VLC stayed quiet past the delay and Spotify is playing; Spotify is
               asked first. VLC is re-checked whenever Spotify is not playing and
               regains authority at once (no grace period on the way back).
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from nowcast.config import Settings
from nowcast.core.clock import Clock, monotonic_ms
from nowcast.models.track import TrackSnapshot

logger = logging.getLogger(__name__)


class TrackSource(Protocol):
    async def fetch_current(self) -> Optional[TrackSnapshot]: ...


@dataclass
class ArbitrationState:
    local_quiet_since: Optional[int] = None  # ms; set when VLC is first seen paused
    in_fallback: bool = False

    @property
    def name(self) -> str:
        if self.in_fallback:
            return "Fallback"
        if self.local_quiet_since is not None:
            return "LocalPaused"
        return "Normal"

    def reset(self) -> None:
        self.local_quiet_since = None
        self.in_fallback = False


def _is_playing(snapshot: Optional[TrackSnapshot]) -> bool:
    return snapshot is not None and snapshot.is_playing


class SourceArbitrator:
    """Produces one canonical snapshot per call from the two sources."""

    def __init__(
        self,
        primary: TrackSource,
        local: TrackSource,
        settings: Settings,
        clock: Clock = monotonic_ms,
    ) -> None:
        self._primary = primary
        self._local = local
        self._settings = settings
        self._clock = clock
        self.state = ArbitrationState()
        self.current_source = ""

    async def get_current(self) -> Optional[TrackSnapshot]:
        if not self._settings.vlc_enabled:
            snapshot = await self._primary.fetch_current()
            return self._label(snapshot, "Spotify", "None")
        if self.state.in_fallback:
            return await self._fallback()
        return await self._normal()

    def _label(
        self, snapshot: Optional[TrackSnapshot], label: str, none_label: str = "None"
    ) -> Optional[TrackSnapshot]:
        if snapshot is None:
            self.current_source = none_label
            return None
        self.current_source = label
        return snapshot.with_label(label)

    async def _normal(self) -> Optional[TrackSnapshot]:
        local = await self._local.fetch_current()
        if _is_playing(local):
            self.state.reset()
            return self._label(local, "VLC")
        if local is not None:
            return await self._local_paused(local)
        # Unreachable is not "paused": the grace timer is left alone
        primary = await self._primary.fetch_current()
        return self._label(primary, "Spotify (VLC unavailable)", "None (all unavailable)")

    async def _local_paused(self, local: TrackSnapshot) -> Optional[TrackSnapshot]:
        now = self._clock()
        if self.state.local_quiet_since is None:
            self.state.local_quiet_since = now
            logger.debug("VLC paused, grace period started")
        elapsed = now - self.state.local_quiet_since
        if elapsed < self._settings.vlc_fallback_delay_ms:
            return self._label(local, "VLC (paused)")

        primary = await self._primary.fetch_current()
        if _is_playing(primary):
            self.state.in_fallback = True
            logger.info("VLC paused for %d ms, falling back to Spotify", elapsed)
            return self._label(primary, "Spotify (VLC paused, fallback)")
        status = "available" if primary is not None else "unavailable"
        return self._label(local, f"VLC (paused, Spotify {status})")

    async def _fallback(self) -> Optional[TrackSnapshot]:
        primary = await self._primary.fetch_current()
        if _is_playing(primary):
            return self._label(primary, "Spotify (VLC paused, fallback)")
        local = await self._local.fetch_current()
        if _is_playing(local):
            logger.info("VLC resumed, leaving Spotify fallback")
            self.state.reset()
            return self._label(local, "VLC")
        return self._label(primary, "Spotify (VLC paused, fallback)", "None (both unavailable)")
