"""VLC HTTP interface diagnostics."""
from fastapi import APIRouter, Depends, HTTPException

from nowcast.api.state import AppState, get_state

router = APIRouter()


@router.get("/diagnostic")
async def vlc_diagnostic(state: AppState = Depends(get_state)):
    """One raw status.json request: HTTP status, parsed metadata, masked config."""
    if not state.settings.vlc_enabled:
        raise HTTPException(
            status_code=400,
            detail="VLC mode is not enabled. Set NOWCAST_VLC_ENABLED=1",
        )
    return await state.vlc_client.diagnose()
