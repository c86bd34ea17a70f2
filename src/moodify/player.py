# src/moodify/player.py

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx

from .config import SPOTIFY_API
from .errors import AuthError, EnqueueError, NetworkError, ParseError, PlayerConnectionError
from .models import AlbumArt, AlbumImage, PlayerStateSnapshot, PlayerTrack
from .spotify import auth_header

logger = logging.getLogger(__name__)

StateCallback = Callable[[PlayerStateSnapshot], None]
LostCallback = Callable[[Optional[Exception]], None]


class RemotePlayer(Protocol):
    """
    The playback primitives the engine relies on. Every call is a coroutine;
    state pushes and connection loss arrive through the registered callbacks,
    possibly from another thread.
    """

    @property
    def is_connected(self) -> bool: ...

    async def connect(self, token: str) -> None: ...

    async def disconnect(self) -> None: ...

    def subscribe(self, callback: StateCallback) -> None: ...

    def on_connection_lost(self, callback: LostCallback) -> None: ...

    async def get_player_state(self) -> Optional[PlayerStateSnapshot]: ...

    async def play(self, uri: Optional[str] = None) -> None: ...

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    async def skip_next(self) -> None: ...

    async def skip_previous(self) -> None: ...

    async def enqueue(self, uri: str) -> None: ...

    async def fetch_image(self, track: PlayerTrack, size: int) -> AlbumArt: ...


def snapshot_from_api(payload: Optional[Dict[str, Any]]) -> PlayerStateSnapshot:
    """
    Convert a GET /me/player body into a snapshot. Non-track items
    (podcast episodes, ads) are reported as no track.
    """
    if not payload:
        return PlayerStateSnapshot()

    is_paused = not payload.get("is_playing", False)
    item = payload.get("item") or {}
    if not item.get("uri") or item.get("type", "track") != "track":
        return PlayerStateSnapshot(is_paused=is_paused)

    album = item.get("album") or {}
    images = tuple(
        AlbumImage(url=img["url"], width=img.get("width"), height=img.get("height"))
        for img in (album.get("images") or [])
        if isinstance(img, dict) and img.get("url")
    )
    track = PlayerTrack(
        uri=item["uri"],
        name=item.get("name", ""),
        album_name=album.get("name", ""),
        images=images,
    )
    return PlayerStateSnapshot(track=track, is_paused=is_paused)


def pick_image(images: List[AlbumImage], size: int) -> Optional[AlbumImage]:
    """Image whose width is closest to the requested size (unknown widths rank last)."""
    if not images:
        return None
    return min(images, key=lambda img: abs((img.width or 10_000) - size))


class SpotifyWebPlayer:
    """
    RemotePlayer backed by the Spotify Web API /me/player endpoints.

    The Web API has no push channel, so a polling task stands in for the
    subscription: listeners hear about every change in the observed state,
    and connection-lost listeners fire once when polling hits an auth or
    transport failure.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_base: str = SPOTIFY_API,
        poll_interval: float = 1.0,
    ):
        self._client = client
        self._api = api_base.rstrip("/")
        self._poll_interval = poll_interval
        self._token: Optional[str] = None
        self._state_listeners: List[StateCallback] = []
        self._lost_listeners: List[LostCallback] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._last_snapshot: Optional[PlayerStateSnapshot] = None

    @property
    def is_connected(self) -> bool:
        return self._token is not None

    # ---------- connection ----------

    async def connect(self, token: str) -> None:
        self._token = token
        try:
            await self.get_player_state()
        except (AuthError, NetworkError, ParseError) as e:
            self._token = None
            raise PlayerConnectionError(f"Spotify player handshake failed: {e}") from e
        self._last_snapshot = None
        self._poll_task = asyncio.create_task(self._poll())
        logger.info("Connected to Spotify player")

    async def disconnect(self) -> None:
        self._token = None
        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Disconnected from Spotify player")

    def subscribe(self, callback: StateCallback) -> None:
        self._state_listeners.append(callback)

    def on_connection_lost(self, callback: LostCallback) -> None:
        self._lost_listeners.append(callback)

    async def _poll(self) -> None:
        while self._token is not None:
            try:
                snapshot = await self.get_player_state()
            except (AuthError, PlayerConnectionError) as e:
                self._connection_lost(e)
                return
            except NetworkError as e:
                if e.status_code is None:
                    self._connection_lost(e)
                    return
                logger.warning("Player state poll failed: %s", e)
            except ParseError as e:
                logger.warning("Ignoring malformed player state: %s", e)
            else:
                if snapshot is not None and snapshot != self._last_snapshot:
                    self._last_snapshot = snapshot
                    for cb in list(self._state_listeners):
                        cb(snapshot)
            await asyncio.sleep(self._poll_interval)

    def _connection_lost(self, error: Exception) -> None:
        logger.warning("Lost connection to Spotify player: %s", error)
        self._token = None
        self._poll_task = None
        for cb in list(self._lost_listeners):
            cb(error)

    # ---------- requests ----------

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if self._token is None:
            raise PlayerConnectionError("Spotify player is not connected")
        try:
            r = await self._client.request(
                method, f"{self._api}{path}", headers=auth_header(self._token), **kwargs
            )
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                raise AuthError("Spotify rejected the access token (401)") from e
            raise NetworkError(f"{method} {path} failed with HTTP {status}", status_code=status) from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e!r}") from e
        return r

    async def get_player_state(self) -> Optional[PlayerStateSnapshot]:
        r = await self._request("GET", "/me/player")
        if r.status_code == 204 or not r.content:
            return PlayerStateSnapshot()
        try:
            payload = r.json()
        except ValueError as e:
            raise ParseError(f"Player state is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ParseError("Unexpected player state: expected an object")
        try:
            return snapshot_from_api(payload)
        except (AttributeError, TypeError, ValueError) as e:
            raise ParseError(f"Unexpected player state structure: {e}") from e

    async def play(self, uri: Optional[str] = None) -> None:
        body = {"uris": [uri]} if uri else None
        await self._request("PUT", "/me/player/play", json=body)

    async def pause(self) -> None:
        await self._request("PUT", "/me/player/pause")

    async def resume(self) -> None:
        await self._request("PUT", "/me/player/play")

    async def skip_next(self) -> None:
        await self._request("POST", "/me/player/next")

    async def skip_previous(self) -> None:
        await self._request("POST", "/me/player/previous")

    async def enqueue(self, uri: str) -> None:
        try:
            await self._request("POST", "/me/player/queue", params={"uri": uri})
        except (AuthError, NetworkError) as e:
            raise EnqueueError(uri, str(e)) from e

    async def fetch_image(self, track: PlayerTrack, size: int) -> AlbumArt:
        image = pick_image(list(track.images), size)
        if image is None:
            raise NetworkError(f"No album images for {track.uri}")
        try:
            r = await self._client.get(image.url)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(f"Album art download failed for {track.uri}: {e!r}") from e
        return AlbumArt(
            content=r.content,
            content_type=r.headers.get("content-type", "image/jpeg"),
            url=image.url,
        )
