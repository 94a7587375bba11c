"""Adaptive now-playing poller and websocket fan-out.

Each tick asks the arbitrator for the current snapshot, broadcasts it only
when its identity changed, and then computes its own next delay: just past the
expected end of the track when fewer than TRACK_END_WINDOW_MS remain,
otherwise a short or long interval depending on how long the track has been
unchanged and on which source produced it.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket

from nowcast.config import Settings
from nowcast.core.arbitrator import SourceArbitrator
from nowcast.core.clock import Clock, monotonic_ms
from nowcast.models.track import SourceKind, TrackSnapshot, identity_key, snapshot_message

logger = logging.getLogger(__name__)

FIRST_TICK_DELAY_MS = 100
_UNSET = object()


@dataclass
class BroadcastState:
    last_snapshot: Optional[TrackSnapshot] = None
    last_key: Any = _UNSET  # nothing broadcast yet
    last_change_at: int = 0
    current_interval_ms: int = 0
    consecutive_no_changes: int = 0


class TrackBroadcaster:
    """Self-rescheduling poller. Ticks never overlap: the next sleep starts
    only after the previous tick (including its broadcast) has finished."""

    def __init__(
        self,
        arbitrator: SourceArbitrator,
        settings: Settings,
        clock: Clock = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._arbitrator = arbitrator
        self._settings = settings
        self._clock = clock
        self._sleep = sleep
        self.state = BroadcastState(last_change_at=clock())
        self.connections: list[WebSocket] = []
        # Serializes ticks and on-connect fetches; both mutate source state
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def current_source(self) -> str:
        return self._arbitrator.current_source

    async def connect(self, ws: WebSocket) -> None:
        """Accept a subscriber and send it the current track right away."""
        await ws.accept()
        self.connections.append(ws)
        await self.send_current(ws)

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self.connections:
            self.connections.remove(ws)

    async def send_current(self, ws: WebSocket) -> None:
        async with self._lock:
            snapshot = await self._arbitrator.get_current()
        try:
            await ws.send_json(snapshot_message(snapshot))
        except Exception as e:
            logger.debug("Initial send failed, dropping subscriber: %s", e)
            self.disconnect(ws)

    async def broadcast(self, message: Optional[dict]) -> None:
        """Send to every subscriber; ones that fail are pruned."""
        dead: list[WebSocket] = []
        # Copy: subscribers may disconnect while a send is awaited
        for conn in list(self.connections):
            try:
                await conn.send_json(message)
            except Exception:
                dead.append(conn)
        for conn in dead:
            self.disconnect(conn)
        if dead:
            logger.info("Cleaned up %d closed connections", len(dead))

    async def tick(self) -> int:
        """One poll. Returns the delay in ms until the next tick."""
        async with self._lock:
            snapshot = await self._arbitrator.get_current()
            now = self._clock()
            key = identity_key(snapshot)
            changed = key != self.state.last_key
            if changed:
                self.state.last_key = key
                self.state.last_snapshot = snapshot
                self.state.last_change_at = now
                self.state.consecutive_no_changes = 0
                logger.info("Track changed, broadcasting: %s", key)
                await self.broadcast(snapshot_message(snapshot))
            else:
                self.state.consecutive_no_changes += 1
            delay = self.next_delay(snapshot, now)
            self.state.current_interval_ms = delay
        logger.debug(
            "Next check in %dms (%s, consecutive no changes: %d, source: %s)",
            delay,
            "changed" if changed else "no change",
            self.state.consecutive_no_changes,
            self.current_source,
        )
        return delay

    def next_delay(self, snapshot: Optional[TrackSnapshot], now: int) -> int:
        s = self._settings
        if snapshot is not None and snapshot.is_playing:
            remaining = snapshot.remaining_ms()
            if remaining is not None and remaining <= s.track_end_window_ms:
                return remaining + s.track_end_buffer_ms
        local = snapshot is not None and snapshot.source is SourceKind.LOCAL
        long_poll = now - self.state.last_change_at > s.long_polling_threshold_ms
        if local:
            return s.vlc_long_interval_ms if long_poll else s.vlc_short_interval_ms
        return s.spotify_long_interval_ms if long_poll else s.spotify_short_interval_ms

    def current_message(self) -> Optional[dict]:
        return snapshot_message(self.state.last_snapshot)

    async def run(self) -> None:
        delay = FIRST_TICK_DELAY_MS
        while True:
            await self._sleep(delay / 1000.0)
            try:
                delay = await self.tick()
            except Exception:
                # A broken tick must not stop polling
                logger.exception("Now-playing tick failed")
                delay = self._settings.spotify_short_interval_ms

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            logger.info("Now-playing broadcaster started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

