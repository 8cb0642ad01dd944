from __future__ import annotations

import asyncio
import os
import secrets
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import (
    FastAPI,
    HTTPException,
    Query,
    Form,
    Request,
    Response,
)
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware
from pydantic import BaseModel, Field

from core import (
    build_authorize_url,
    consume_redirect_fragment,
    get_spotify_client,
    get_spotify_market,
)
from html_renderer import render_page
from lib.cache_manager import (
    SESSION_SWEEP_INTERVAL_S,
    SESSION_TTL_S,
    close_evicted_sessions,
    drain_sessions,
    get_session,
    pop_session,
    put_session,
)
from lib.meditation import MeditationSession, SearchInProgress, SessionClosed
from lib.meditation.models import DEFAULT_MINUTES, MAX_MINUTES, MIN_MINUTES, ErrorKind, SessionState
import logging

# Basic logging configuration to ensure logger outputs appear in the terminal
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

SESSION_COOKIE = "session_id"
MAX_REQUEST_BODY_BYTES = int(os.getenv("MAX_REQUEST_BODY_BYTES", 64 * 1024))


# =========================
# Pydantic models
# =========================

class EpisodeModel(BaseModel):
    id: str
    name: str
    duration_ms: int
    release_date: Optional[str] = None
    spotify_url: Optional[str] = None
    embed_url: str


class SessionStateModel(BaseModel):
    authenticated: bool
    phase: str
    is_loading: bool
    error: Optional[str] = None
    current_episode: Optional[EpisodeModel] = None
    has_found: bool


class SessionBody(BaseModel):
    url: str  # window.location.href after the Spotify redirect


class SessionResponse(BaseModel):
    authenticated: bool
    location: str


class MeditationBody(BaseModel):
    minutes: int = Field(DEFAULT_MINUTES, ge=MIN_MINUTES, le=MAX_MINUTES)


# =========================
# FastAPI app & CORS
# =========================

app = FastAPI(
    title="Tara Brach Meditation Player",
    version="1.0.0",
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_length = request.headers.get("content-length")
            if content_length and int(content_length) > MAX_REQUEST_BODY_BYTES:
                logger.warning(f"[RequestSizeLimit] Rejected oversized request: {content_length} bytes from {request.client}")
                return JSONResponse(
                    status_code=413,
                    content={"detail": f"Request body too large (max {MAX_REQUEST_BODY_BYTES} bytes)"}
                )
        return await call_next(request)

app.add_middleware(RequestSizeLimitMiddleware)


@app.on_event("startup")
def _log_startup():
    logger.info("meditation-player: startup event triggered")


async def _sweep_sessions_periodically():
    while True:
        await asyncio.sleep(SESSION_SWEEP_INTERVAL_S)
        closed = await close_evicted_sessions()
        if closed:
            logger.info(f"[Session] closed {closed} expired session(s)")


@app.on_event("startup")
async def _start_session_sweeper():
    app.state.session_sweeper = asyncio.create_task(_sweep_sessions_periodically())


@app.on_event("shutdown")
async def _close_sessions():
    sweeper = getattr(app.state, "session_sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)
    sessions = drain_sessions()
    for session in sessions:
        await session.close()
    logger.info(f"[Session] closed {len(sessions)} session(s) on shutdown")


default_origins = [
    "http://localhost:3000",
    "http://localhost:8000",
]

# ALLOWED_ORIGINS (comma separated) overrides the defaults
env_origins = os.getenv("ALLOWED_ORIGINS")
if env_origins:
    origins = [o.strip() for o in env_origins.split(",") if o.strip()]
else:
    origins = default_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================
# Health check
# =========================

@app.get("/health", tags=["system"])
def health() -> Dict[str, Any]:
    return {
        "ok": True,
        "status": "ok",
        "build_commit": os.getenv("RENDER_GIT_COMMIT", "local")[:7],
    }


# =========================
# Core helpers
# =========================

def _current_session(request: Request) -> Optional[MeditationSession]:
    session = get_session(request.cookies.get(SESSION_COOKIE))
    if session is None or session.closed:
        return None
    return session


async def _run_search(request: Request, minutes: int) -> SessionState:
    session = _current_session(request)
    if session is None:
        raise HTTPException(status_code=401, detail=ErrorKind.AUTH_EXPIRED.message())
    try:
        return await session.run_search(minutes)
    except SearchInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SessionClosed as e:
        raise HTTPException(status_code=410, detail=str(e))


# =========================
# Endpoints
# =========================

@app.get("/", response_class=HTMLResponse)
def index(
    request: Request,
    minutes: int = Query(DEFAULT_MINUTES, ge=MIN_MINUTES, le=MAX_MINUTES, description="Slider position"),
):
    session = _current_session(request)
    state = session.state().to_dict() if session is not None else None
    return HTMLResponse(render_page(state, minutes))


@app.get("/login")
def login(request: Request):
    """Send the browser to the Spotify authorize page (implicit grant)."""
    try:
        url = build_authorize_url(str(request.url))
    except RuntimeError as e:
        logger.error(f"[api/login] {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return RedirectResponse(url=url, status_code=307)


@app.post("/api/session", response_model=SessionResponse)
async def create_session(body: SessionBody, request: Request, response: Response):
    """
    Takes the post-redirect location, keeps the access token from its fragment
    and returns the same location without the fragment.
    """
    credential, clean_url = consume_redirect_fragment(body.url)
    location = clean_url or "/"
    if credential is None:
        return {"authenticated": False, "location": location}

    previous = pop_session(request.cookies.get(SESSION_COOKIE))
    if previous is not None:
        await previous.close()

    session = MeditationSession(credential, get_spotify_client, market=get_spotify_market())
    session.start()
    session_id = secrets.token_urlsafe(32)
    put_session(session_id, session)
    await close_evicted_sessions()

    max_age = min(SESSION_TTL_S, credential.expires_in or SESSION_TTL_S)
    response.set_cookie(SESSION_COOKIE, session_id, max_age=max_age, httponly=True, samesite="lax")
    logger.info(f"[Session] created (max_age={max_age})")
    return {"authenticated": True, "location": location}


@app.get("/api/session", response_model=SessionResponse)
async def session_status(request: Request):
    session = _current_session(request)
    valid = await session.validate_credential() if session is not None else False
    return {"authenticated": valid, "location": "/"}


@app.delete("/api/session", response_model=SessionResponse)
async def delete_session(request: Request, response: Response):
    session = pop_session(request.cookies.get(SESSION_COOKIE))
    if session is not None:
        await session.close()
        logger.info("[Session] closed by client")
    response.delete_cookie(SESSION_COOKIE)
    return {"authenticated": False, "location": "/"}


@app.post("/api/meditation", response_model=SessionStateModel)
async def find_meditation(body: MeditationBody, request: Request):
    state = await _run_search(request, body.minutes)
    return state.to_dict()


@app.post("/meditation")
async def find_meditation_form(
    request: Request,
    minutes: int = Form(DEFAULT_MINUTES, ge=MIN_MINUTES, le=MAX_MINUTES),
):
    """Form version of /api/meditation; the page re-renders with the new state."""
    try:
        await _run_search(request, minutes)
    except HTTPException as e:
        logger.info(f"[meditation] form search skipped ({e.status_code}): {e.detail}")
    return RedirectResponse(url=f"/?minutes={minutes}", status_code=303)


# =========================
# Local dev entrypoint
# =========================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
