"""FastAPI app, lifespan (broadcaster task), and route registration."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure logging in the worker process (so core INFO logs are visible with uvicorn --reload)
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(name)s: %(message)s",
)

from nowcast.api.state import AppState, get_state
from nowcast.config import ensure_data_dir, validate_settings

# Import routes after state to avoid circular imports
from nowcast.api.routes import now_playing, spotify, vlc

__all__ = ["app", "AppState", "get_state"]

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = get_state()
    # Misconfiguration is fatal: raising here aborts startup
    validate_settings(state.settings)
    ensure_data_dir(state.settings.token_cache_path.parent)
    state.broadcaster.start()
    logger.info(
        "Now-playing server ready (VLC %s, Spotify %s)",
        "enabled" if state.settings.vlc_enabled else "disabled",
        "logged in" if state.spotify_auth.is_authenticated else "not logged in",
    )

    yield

    await state.broadcaster.stop()
    await state.vlc_client.aclose()


app = FastAPI(
    title="Nowcast API",
    description="Now-playing overlay server for Spotify and VLC",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(now_playing.router, tags=["now-playing"])
app.include_router(spotify.router, prefix="/api/spotify", tags=["spotify"])
app.include_router(vlc.router, prefix="/api/vlc", tags=["vlc"])
