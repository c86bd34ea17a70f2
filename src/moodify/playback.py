# src/moodify/playback.py

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set

from .errors import MoodifyError, PlayerConnectionError
from .models import AlbumArt, PlaybackState, PlayerStateSnapshot, PlayerTrack
from .player import RemotePlayer
from .tokens import TokenStore

logger = logging.getLogger(__name__)

StateListener = Callable[[PlaybackState], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# ---------- events applied by the state-owning task ----------

@dataclass(frozen=True)
class TokenReceived:
    token: str


@dataclass(frozen=True)
class ConnectRequested:
    pass


@dataclass(frozen=True)
class ConnectionEstablished:
    pass


@dataclass(frozen=True)
class ConnectionFailed:
    error: Exception


@dataclass(frozen=True)
class Disconnected:
    reason: str


@dataclass(frozen=True)
class PlayerStateChanged:
    snapshot: PlayerStateSnapshot


@dataclass(frozen=True)
class AlbumArtFetched:
    track_uri: str
    art: AlbumArt


@dataclass(frozen=True)
class _Flush:
    pass


class PlaybackSynchronizer:
    """
    Keeps PlaybackState and the access token in step with the remote player.

    Every write goes through one task that drains an event queue, so player
    pushes, auth handoff, disconnects and album art completions never
    interleave. Pushes may be posted from any thread; they are marshalled
    onto the loop the synchronizer was started on.

    The paused flag follows the player's pushed state only. toggle_play_pause
    sends a command and waits for the player to report back.
    """

    def __init__(self, player: RemotePlayer, tokens: TokenStore, art_size: int = 200):
        self.player = player
        self.tokens = tokens
        self.art_size = art_size
        self.connection = ConnectionState.DISCONNECTED
        self._state = PlaybackState()
        self._listeners: List[StateListener] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._actor: Optional[asyncio.Task] = None
        self._art_tasks: Set[asyncio.Task] = set()
        self._art_uri: Optional[str] = None
        self._subscribed = False

    @property
    def state(self) -> PlaybackState:
        return self._state.model_copy()

    @property
    def is_connected(self) -> bool:
        return self.connection is ConnectionState.CONNECTED

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    # ---------- lifecycle ----------

    async def start(self) -> None:
        if self._actor is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._actor = asyncio.create_task(self._run())

    async def stop(self) -> None:
        tasks = list(self._art_tasks)
        if self._actor is not None:
            tasks.append(self._actor)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._actor = None
        self._queue = None
        self._loop = None
        self._art_tasks.clear()

    def submit(self, event) -> asyncio.Future:
        """Queue an event from the loop thread; the future resolves once it is applied."""
        if self._queue is None or self._loop is None:
            raise RuntimeError("PlaybackSynchronizer has not been started")
        future = self._loop.create_future()
        self._queue.put_nowait((event, future))
        return future

    def post(self, event) -> None:
        """Queue an event from any thread, without waiting for it."""
        loop = self._loop
        if loop is None:
            logger.warning("Dropping %s: synchronizer not started", type(event).__name__)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._deliver(event)
            return
        try:
            loop.call_soon_threadsafe(self._deliver, event)
        except RuntimeError:
            logger.warning("Dropping %s: event loop is closed", type(event).__name__)

    def _deliver(self, event) -> None:
        if self._queue is None:
            logger.warning("Dropping %s: synchronizer stopped", type(event).__name__)
            return
        self.submit(event)

    async def flush(self) -> None:
        """Wait for in-flight album art fetches and every event queued so far."""
        if self._art_tasks:
            await asyncio.gather(*list(self._art_tasks), return_exceptions=True)
        await self.submit(_Flush())

    # ---------- operations ----------

    async def set_token(self, token: str) -> None:
        await self.submit(TokenReceived(token))

    async def connect(self) -> None:
        """
        Handshake with the player, subscribe to its pushes and load its
        current state. Raises AuthError without a token and
        PlayerConnectionError when the handshake fails.
        """
        token = self.tokens.require()
        if self.connection is not ConnectionState.DISCONNECTED:
            logger.info("Player connection already %s", self.connection.value)
            return

        await self.submit(ConnectRequested())
        try:
            await self.player.connect(token)
        except PlayerConnectionError as e:
            await self.submit(ConnectionFailed(e))
            raise
        except MoodifyError as e:
            await self.submit(ConnectionFailed(e))
            raise PlayerConnectionError(f"Player handshake failed: {e}") from e
        except Exception as e:
            await self.submit(ConnectionFailed(e))
            raise

        if not self._subscribed:
            self.player.subscribe(self._on_player_state)
            self.player.on_connection_lost(self._on_connection_lost)
            self._subscribed = True

        if not await self.submit(ConnectionEstablished()):
            # disconnected while the handshake was in flight
            await self.player.disconnect()
            return

        try:
            snapshot = await self.player.get_player_state()
        except MoodifyError as e:
            logger.warning("Error fetching player state: %s", e)
            return
        if snapshot is not None:
            await self.submit(PlayerStateChanged(snapshot))

    async def disconnect(self) -> None:
        if self.player.is_connected:
            try:
                await self.player.disconnect()
            except MoodifyError as e:
                logger.warning("Error while disconnecting from player: %s", e)
        else:
            logger.info("Player is not connected, no need to disconnect")
        await self.submit(Disconnected("requested"))

    async def toggle_play_pause(self) -> str:
        self._require_connection()
        if self._state.is_paused:
            await self.player.resume()
            return "resume"
        await self.player.pause()
        return "pause"

    async def skip_to_next(self) -> None:
        self._require_connection()
        await self.player.skip_next()

    async def skip_to_previous(self) -> None:
        self._require_connection()
        await self.player.skip_previous()

    def _require_connection(self) -> None:
        if not self.is_connected:
            raise PlayerConnectionError("Spotify player is not connected")

    # ---------- player callbacks (any thread) ----------

    def _on_player_state(self, snapshot: PlayerStateSnapshot) -> None:
        self.post(PlayerStateChanged(snapshot))

    def _on_connection_lost(self, error: Optional[Exception]) -> None:
        logger.warning("Disconnected from player: %s", error)
        self.post(Disconnected("connection lost"))

    # ---------- state-owning task ----------

    async def _run(self) -> None:
        while True:
            event, future = await self._queue.get()
            before = self._state
            try:
                result = self._apply(event)
            except Exception as e:
                logger.exception("Failed to apply %s", type(event).__name__)
                if not future.done():
                    future.set_exception(e)
                continue
            if not future.done():
                future.set_result(result)
            if self._state != before:
                self._notify()

    def _apply(self, event) -> bool:
        if isinstance(event, TokenReceived):
            self.tokens.set(event.token)
            return True

        if isinstance(event, ConnectRequested):
            self.connection = ConnectionState.CONNECTING
            return True

        if isinstance(event, ConnectionEstablished):
            if self.connection is not ConnectionState.CONNECTING:
                return False
            self.connection = ConnectionState.CONNECTED
            logger.info("Player connection established")
            return True

        if isinstance(event, ConnectionFailed):
            self.connection = ConnectionState.DISCONNECTED
            logger.warning("Failed to connect to player: %s", event.error)
            return True

        if isinstance(event, Disconnected):
            self.connection = ConnectionState.DISCONNECTED
            self._state = PlaybackState()
            self.tokens.clear()
            self._art_uri = None
            for task in self._art_tasks:
                task.cancel()
            logger.info("Playback state reset (%s)", event.reason)
            return True

        if isinstance(event, PlayerStateChanged):
            return self._apply_snapshot(event.snapshot)

        if isinstance(event, AlbumArtFetched):
            if not self.is_connected or self._state.track_uri != event.track_uri:
                return False
            self._state = self._state.model_copy(update={"album_art": event.art})
            return True

        if isinstance(event, _Flush):
            return False

        raise TypeError(f"Unknown playback event: {event!r}")

    def _apply_snapshot(self, snapshot: PlayerStateSnapshot) -> bool:
        if not self.is_connected:
            logger.debug("Ignoring player state while %s", self.connection.value)
            return False

        track = snapshot.track
        if track is None:
            self._state = PlaybackState(is_paused=snapshot.is_paused)
            self._art_uri = None
            return True

        self._state = self._state.model_copy(update={
            "track_uri": track.uri,
            "track_name": track.name,
            "album_name": track.album_name,
            "is_paused": snapshot.is_paused,
        })
        if track.uri != self._art_uri:
            self._art_uri = track.uri
            self._start_art_fetch(track)
        return True

    def _start_art_fetch(self, track: PlayerTrack) -> None:
        task = asyncio.create_task(self._fetch_album_art(track))
        self._art_tasks.add(task)
        task.add_done_callback(self._art_tasks.discard)

    async def _fetch_album_art(self, track: PlayerTrack) -> None:
        try:
            art = await self.player.fetch_image(track, self.art_size)
        except MoodifyError as e:
            logger.warning("Failed to fetch album cover for %s: %s", track.uri, e)
            return
        logger.debug("Fetched album cover for %s", track.uri)
        self.post(AlbumArtFetched(track.uri, art))

    def _notify(self) -> None:
        snapshot = self._state.model_copy()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Playback state listener failed")
