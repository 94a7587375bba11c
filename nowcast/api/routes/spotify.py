"""Spotify OAuth: auth URL, login redirect, callback, manual code entry, token reload and logout."""
import urllib.parse
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from nowcast.api.state import AppState, get_state

router = APIRouter()


class CompleteLoginBody(BaseModel):
    """Either the full redirect URL (with ?code=...) or the code alone."""
    redirect_url: Optional[str] = None
    code: Optional[str] = None


@router.get("/auth-url")
def get_auth_url(state: AppState = Depends(get_state)):
    """Return Spotify OAuth authorization URL and whether the user is logged in."""
    if not state.settings.spotify_client_id:
        return {"auth_url": None, "error": "SPOTIFY_CLIENT_ID not set", "logged_in": False}
    return {
        "auth_url": state.spotify_auth.auth_url(),
        "logged_in": state.spotify_auth.is_authenticated,
    }


@router.get("/login")
def login(state: AppState = Depends(get_state)):
    """Redirect the browser to the Spotify authorization page."""
    if not state.settings.spotify_client_id:
        raise HTTPException(status_code=503, detail="SPOTIFY_CLIENT_ID not set")
    return RedirectResponse(url=state.spotify_auth.auth_url(), status_code=302)


@router.get("/callback")
async def spotify_callback(code: str | None = None, state: AppState = Depends(get_state)):
    """Exchange code for tokens (saved to the token cache), then go back to the root page."""
    if not code:
        raise HTTPException(status_code=400, detail="No code provided")
    if not await state.spotify_auth.exchange_code(code):
        raise HTTPException(status_code=400, detail="Authentication failed")
    state.login_warning.reset()
    return RedirectResponse(url="/api/now-playing", status_code=302)


@router.post("/reload")
def reload_tokens(state: AppState = Depends(get_state)):
    """Re-read the token cache after it was changed by another process (e.g. the CLI)."""
    state.spotify_auth.reload_tokens()
    if state.spotify_auth.is_authenticated:
        state.login_warning.reset()
    return {"logged_in": state.spotify_auth.is_authenticated}


@router.post("/logout")
def logout(state: AppState = Depends(get_state)):
    """Clear the Spotify token so the user is logged out."""
    state.spotify_auth.logout()
    return {"ok": True}


def _code_from_body(body: CompleteLoginBody) -> str:
    """The authorization code, taken as-is or from the redirect URL's query string."""
    if body.code and body.code.strip():
        return body.code.strip()
    if not body.redirect_url:
        raise HTTPException(status_code=400, detail="Send either 'redirect_url' or 'code'.")
    query = urllib.parse.urlparse(body.redirect_url.strip()).query
    codes = urllib.parse.parse_qs(query).get("code")
    if not codes:
        raise HTTPException(status_code=400, detail="The redirect URL carries no 'code' parameter.")
    return codes[0]


@router.post("/complete-login")
async def complete_login(body: CompleteLoginBody, state: AppState = Depends(get_state)):
    """Finish login on a host whose browser cannot reach the callback.

    The user pastes the URL Spotify redirected to (or just its code).
    """
    code = _code_from_body(body)
    if not await state.spotify_auth.exchange_code(code):
        raise HTTPException(status_code=502, detail="Spotify rejected the authorization code")
    state.login_warning.reset()
    return {"logged_in": True}
