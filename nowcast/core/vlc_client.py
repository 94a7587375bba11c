"""VLC HTTP interface client (requests/status.json) with a short timeout."""
import logging
from typing import Any, Optional

import httpx

from nowcast.config import Settings
from nowcast.core.filename_artist import resolve_artist
from nowcast.models.track import UNKNOWN_TRACK, SourceKind, TrackSnapshot

logger = logging.getLogger(__name__)

STATUS_PATH = "/requests/status.json"


def _meta(data: Any) -> Optional[dict]:
    """information.category.meta, or None when any level is missing or not an object."""
    node = data
    for key in ("information", "category", "meta"):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, dict) else None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def parse_status(data: Any) -> Optional[TrackSnapshot]:
    """Map a status.json payload to a snapshot; no metadata means no track."""
    if not isinstance(data, dict):
        return None
    meta = _meta(data)
    if meta is None:
        return None
    track_name = _text(meta.get("title")) or _text(meta.get("filename")) or UNKNOWN_TRACK
    artist_name = resolve_artist(meta, track_name)
    try:
        elapsed = float(data.get("time") or 0)
        length = float(data.get("length") or 0)
    except (TypeError, ValueError):
        elapsed, length = 0.0, 0.0
    return TrackSnapshot(
        track_name=track_name,
        artist_name=artist_name,
        is_playing=data.get("state") == "playing",
        source=SourceKind.LOCAL,
        # VLC reports seconds
        progress_ms=max(0, int(elapsed * 1000)),
        duration_ms=max(0, int(length * 1000)),
    )


class VLCClient:
    """Local source. fetch_current() never raises.

    No rate limit: the call is attempted on every tick. Connection errors,
    timeouts and non-2xx answers all return the last cached snapshot.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=f"http://{settings.vlc_host}:{settings.vlc_port}",
            auth=httpx.BasicAuth("", settings.vlc_password),
            timeout=settings.vlc_connection_timeout_ms / 1000.0,
            transport=transport,
        )
        self.last_snapshot: Optional[TrackSnapshot] = None
        # Hints are logged once per outage, not on every tick
        self._hint_logged = False

    @property
    def status_url(self) -> str:
        return f"http://{self._settings.vlc_host}:{self._settings.vlc_port}{STATUS_PATH}"

    async def fetch_current(self) -> Optional[TrackSnapshot]:
        if not self._settings.vlc_enabled:
            return None
        try:
            resp = await self._client.get(STATUS_PATH)
        except httpx.HTTPError as e:
            self._hint(
                "VLC connection failed (%s). Is VLC running with the HTTP interface enabled?", e
            )
            return self.last_snapshot
        if resp.status_code == 404:
            self._hint("VLC web interface not found. Enable the HTTP interface in VLC.")
            return self.last_snapshot
        if resp.status_code == 401:
            self._hint("VLC authentication failed. Check NOWCAST_VLC_PASSWORD.")
            return self.last_snapshot
        if not resp.is_success:
            self._hint("VLC returned HTTP %d", resp.status_code)
            return self.last_snapshot
        try:
            data = resp.json()
        except ValueError:
            logger.debug("VLC returned a non-JSON status body")
            return self.last_snapshot
        self._hint_logged = False
        snapshot = parse_status(data)
        self.last_snapshot = snapshot
        return snapshot

    def _hint(self, msg: str, *args: Any) -> None:
        if self._hint_logged:
            logger.debug(msg, *args)
            return
        self._hint_logged = True
        logger.warning(msg, *args)

    async def diagnose(self) -> dict[str, Any]:
        """One raw status request, summarized for the diagnostic endpoint."""
        config = {
            "vlc_enabled": self._settings.vlc_enabled,
            "vlc_host": self._settings.vlc_host,
            "vlc_port": self._settings.vlc_port,
            "vlc_password": "***" if self._settings.vlc_password else "NOT SET",
        }
        try:
            resp = await self._client.get(STATUS_PATH)
        except httpx.HTTPError as e:
            return {"vlc_url": self.status_url, "error": str(e) or type(e).__name__, "config": config}
        result: dict[str, Any] = {
            "vlc_url": self.status_url,
            "status": resp.status_code,
            "status_text": resp.reason_phrase,
            "ok": resp.is_success,
            "config": config,
        }
        if resp.is_success:
            try:
                data = resp.json()
            except ValueError:
                data = None
            if not isinstance(data, dict):
                data = {}
            meta = _meta(data) or {}
            result["data"] = {
                "state": data.get("state"),
                "time": data.get("time"),
                "length": data.get("length"),
                "title": meta.get("title"),
                "artist": meta.get("artist"),
                "filename": meta.get("filename"),
            }
            snapshot = parse_status(data)
            result["snapshot"] = snapshot.to_message() if snapshot else None
        return result

    async def aclose(self) -> None:
        await self._client.aclose()
