# src/moodify/main.py
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import configure_logging, load_settings
from .errors import AuthError, MoodifyError, PlayerConnectionError
from .moods import list_moods
from .session import MoodifySession
from .tokens import token_from_redirect

SessionFactory = Callable[[], MoodifySession]


# ---------- Pydantic models ----------

class TokenIn(BaseModel):
    access_token: str


class QueueIn(BaseModel):
    """
    Request body for queueing tracks for a detected mood.
    """
    mood: str
    genres: List[str]
    supersede: Optional[bool] = None


class QueueOut(BaseModel):
    ok: bool
    mood: str
    batch_id: Optional[int]
    count: int


class PlayerOut(BaseModel):
    connected: bool
    track_uri: Optional[str]
    track_name: str
    album_name: str
    is_paused: bool
    has_album_art: bool


def _default_session() -> MoodifySession:
    settings = load_settings()
    configure_logging(settings.log_level)
    return MoodifySession(settings)


def get_session(request: Request) -> MoodifySession:
    return request.app.state.session


def _player_out(session: MoodifySession) -> PlayerOut:
    state = session.state
    return PlayerOut(
        connected=session.sync.is_connected,
        track_uri=state.track_uri,
        track_name=state.track_name,
        album_name=state.album_name,
        is_paused=state.is_paused,
        has_album_art=state.album_art is not None,
    )


async def _player_command(command: Awaitable):
    try:
        return await command
    except PlayerConnectionError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except MoodifyError as e:
        raise HTTPException(status_code=502, detail=str(e))


def create_app(session_factory: SessionFactory = _default_session) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session = session_factory()
        await session.start()
        app.state.session = session
        try:
            yield
        finally:
            await session.close()

    app = FastAPI(title="Moodify – Spotify Mood Queue", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Simple root + health ----------

    @app.get("/")
    def root():
        return {"message": "Backend is live!", "service": "moodify"}

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "moodify"}

    @app.get("/moods")
    def get_moods():
        return {"moods": list_moods()}

    # ---------- Auth handoff ----------

    @app.post("/token")
    async def post_token(body: TokenIn, session: MoodifySession = Depends(get_session)):
        if not body.access_token:
            raise HTTPException(status_code=400, detail="access_token must not be empty")
        await session.set_token(body.access_token)
        return {"ok": True}

    @app.get("/callback", response_model=PlayerOut)
    async def callback(request: Request, session: MoodifySession = Depends(get_session)):
        """
        Redirect target of the authorization flow. The token may arrive in the
        query string; fragment tokens have to be forwarded by the client.
        """
        try:
            token = token_from_redirect(str(request.url))
        except AuthError as e:
            raise HTTPException(status_code=401, detail=str(e))
        await session.set_token(token)
        if not await session.connect():
            raise HTTPException(status_code=503, detail="Failed to connect to Spotify player")
        return _player_out(session)

    # ---------- Player connection ----------

    @app.post("/connect", response_model=PlayerOut)
    async def connect(session: MoodifySession = Depends(get_session)):
        if session.tokens.get() is None:
            raise HTTPException(status_code=401, detail="Spotify access token missing. Please reconnect.")
        if not await session.connect():
            raise HTTPException(status_code=503, detail="Failed to connect to Spotify player")
        return _player_out(session)

    @app.post("/disconnect", response_model=PlayerOut)
    async def disconnect(session: MoodifySession = Depends(get_session)):
        await session.disconnect()
        return _player_out(session)

    # ---------- Mood queue ----------

    @app.post("/queue", response_model=QueueOut)
    async def queue(body: QueueIn, session: MoodifySession = Depends(get_session)):
        try:
            batch = await session.queue_for_mood(body.mood, body.genres, supersede=body.supersede)
        except AuthError as e:
            raise HTTPException(status_code=401, detail=str(e))
        except MoodifyError as e:
            raise HTTPException(status_code=502, detail=f"Failed to fetch recommendations from Spotify: {e}")
        return QueueOut(ok=True, mood=body.mood, batch_id=batch.id, count=len(batch.uris))

    # ---------- Playback ----------

    @app.get("/player", response_model=PlayerOut)
    def player_state(session: MoodifySession = Depends(get_session)):
        return _player_out(session)

    @app.get("/player/art")
    def player_art(session: MoodifySession = Depends(get_session)):
        art = session.state.album_art
        if art is None:
            raise HTTPException(status_code=404, detail="No album art for the current track")
        return Response(content=art.content, media_type=art.content_type)

    @app.post("/player/toggle")
    async def toggle(session: MoodifySession = Depends(get_session)):
        command = await _player_command(session.toggle_play_pause())
        return {"ok": True, "command": command}

    @app.post("/player/next")
    async def skip_next(session: MoodifySession = Depends(get_session)):
        await _player_command(session.skip_to_next())
        return {"ok": True}

    @app.post("/player/previous")
    async def skip_previous(session: MoodifySession = Depends(get_session)):
        await _player_command(session.skip_to_previous())
        return {"ok": True}

    return app


app = create_app()
