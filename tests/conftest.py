"""Test configuration and fixtures."""

import asyncio
from typing import Dict, List, Optional

import pytest

from moodify.config import Settings
from moodify.errors import EnqueueError, NetworkError, PlayerConnectionError
from moodify.models import AlbumArt, AlbumImage, PlayerStateSnapshot, PlayerTrack


def make_track(n: int, album: str = "Album") -> PlayerTrack:
    return PlayerTrack(
        uri=f"spotify:track:{n}",
        name=f"Song {n}",
        album_name=f"{album} {n}",
        images=(AlbumImage(url=f"https://img.test/{n}.jpg", width=300, height=300),),
    )


def make_snapshot(n: Optional[int], paused: bool = False) -> PlayerStateSnapshot:
    return PlayerStateSnapshot(track=make_track(n) if n is not None else None, is_paused=paused)


class FakePlayer:
    """In-memory RemotePlayer that records every call."""

    def __init__(self):
        self.connected = False
        self.fail_connect = False
        self.connect_error: Optional[Exception] = None
        self.current: Optional[PlayerStateSnapshot] = None
        self.enqueued: List[str] = []
        self.reject: set = set()
        self.commands: List[str] = []
        self.art_failures: set = set()
        self.art_calls: List[str] = []
        self.art_gate: Dict[str, asyncio.Event] = {}
        self.state_listeners = []
        self.lost_listeners = []
        self.tokens: List[str] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self, token: str) -> None:
        self.tokens.append(token)
        if self.connect_error is not None:
            raise self.connect_error
        if self.fail_connect:
            raise PlayerConnectionError("handshake failed")
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    def subscribe(self, callback) -> None:
        self.state_listeners.append(callback)

    def on_connection_lost(self, callback) -> None:
        self.lost_listeners.append(callback)

    def push(self, snapshot: PlayerStateSnapshot) -> None:
        for cb in self.state_listeners:
            cb(snapshot)

    def lose_connection(self) -> None:
        self.connected = False
        for cb in self.lost_listeners:
            cb(NetworkError("socket closed"))

    async def get_player_state(self) -> Optional[PlayerStateSnapshot]:
        return self.current

    async def play(self, uri: Optional[str] = None) -> None:
        self.commands.append(f"play:{uri}" if uri else "play")

    async def pause(self) -> None:
        self.commands.append("pause")

    async def resume(self) -> None:
        self.commands.append("resume")

    async def skip_next(self) -> None:
        self.commands.append("next")

    async def skip_previous(self) -> None:
        self.commands.append("previous")

    async def enqueue(self, uri: str) -> None:
        if uri in self.reject:
            raise EnqueueError(uri, "rejected")
        self.enqueued.append(uri)

    async def fetch_image(self, track: PlayerTrack, size: int) -> AlbumArt:
        self.art_calls.append(track.uri)
        gate = self.art_gate.get(track.uri)
        if gate is not None:
            await gate.wait()
        if track.uri in self.art_failures:
            raise NetworkError("image download failed")
        return AlbumArt(content=track.uri.encode(), url=track.images[0].url)


@pytest.fixture()
def fake_player():
    return FakePlayer()


@pytest.fixture()
def settings():
    return Settings(enqueue_spacing=0.0, api_base="https://api.test/v1")
