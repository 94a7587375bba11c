"""Current track: REST snapshot and the websocket subscriber channel."""
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from nowcast.api.state import AppState, get_state
from nowcast.core.source_analyzer import analysis_response, analyze_source, compare_results

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/now-playing")
def get_now_playing(state: AppState = Depends(get_state)):
    """Return the last broadcast track (null when nothing is playing)."""
    return {
        "track": state.broadcaster.current_message(),
        "source": state.broadcaster.current_source,
    }


@router.websocket("/ws")
async def now_playing_websocket(websocket: WebSocket, state: AppState = Depends(get_state)):
    """Push the current track on connect and on every change after that."""
    broadcaster = state.broadcaster
    await broadcaster.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON from WebSocket: %s", raw)
                continue
            if isinstance(message, dict) and message.get("type") == "sourceAnalysis":
                await _handle_source_analysis(websocket, state, message)
    except WebSocketDisconnect:
        broadcaster.disconnect(websocket)


async def _handle_source_analysis(websocket: WebSocket, state: AppState, request: dict) -> None:
    track_name = request.get("trackName")
    artist_name = request.get("artistName")
    if not (isinstance(track_name, str) and track_name and isinstance(artist_name, str) and artist_name):
        logger.info("Invalid source analysis request: missing trackName or artistName")
        return
    source = state.broadcaster.current_source
    current = state.broadcaster.state.last_snapshot
    results = [
        analyze_source(
            track_name,
            artist_name,
            source=source,
            duration_ms=current.duration_ms if current else None,
        )
    ]
    # The broadcast snapshot of the same track adds its album as a second opinion
    if current is not None and (current.track_name, current.artist_name) == (track_name, artist_name):
        results.append(
            analyze_source(
                current.track_name,
                current.artist_name,
                source=source,
                duration_ms=current.duration_ms,
                album_name=current.album_name,
            )
        )
    analysis = compare_results(results)
    await websocket.send_json(analysis_response(track_name, artist_name, analysis))
