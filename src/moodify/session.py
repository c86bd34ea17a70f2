# src/moodify/session.py

import logging
from typing import Optional, Sequence

import httpx

from .config import Settings
from .errors import AuthError, MoodifyError, NetworkError, ParseError, PlayerConnectionError
from .models import PlaybackState
from .moods import mood_profile
from .player import RemotePlayer, SpotifyWebPlayer
from .playback import PlaybackSynchronizer
from .scheduler import QueueBatch, QueueScheduler
from .spotify import build_recommendation_request, fetch_recommendations
from .tokens import TokenStore, token_from_redirect

logger = logging.getLogger(__name__)


class MoodifySession:
    """
    Owns the HTTP client, the remote player handle and the engine components
    for one listening session.

        async with MoodifySession(settings) as session:
            await session.set_token(token)
            await session.connect()
            await session.add_songs_to_queue("happy", ["pop", "rock"])
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        player: Optional[RemotePlayer] = None,
    ):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.http_timeout)
        self.player = player or SpotifyWebPlayer(
            self.client,
            api_base=settings.api_base,
            poll_interval=settings.poll_interval,
        )
        self.tokens = TokenStore()
        self.sync = PlaybackSynchronizer(self.player, self.tokens, art_size=settings.album_art_size)
        self.scheduler = QueueScheduler(self.player, spacing=settings.enqueue_spacing)

    async def __aenter__(self) -> "MoodifySession":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def start(self) -> None:
        await self.sync.start()
        if self.settings.access_token:
            await self.sync.set_token(self.settings.access_token)

    async def close(self) -> None:
        self.scheduler.cancel_all()
        if self.player.is_connected:
            try:
                await self.player.disconnect()
            except MoodifyError as e:
                logger.warning("Error while disconnecting from player: %s", e)
        await self.sync.stop()
        if self._owns_client:
            await self.client.aclose()

    @property
    def state(self) -> PlaybackState:
        return self.sync.state

    # ---------- auth handoff ----------

    async def set_token(self, token: str) -> None:
        await self.sync.set_token(token)

    async def handle_auth_redirect(self, url: str) -> bool:
        """Store the token carried by an authorization redirect, then connect."""
        try:
            token = token_from_redirect(url)
        except AuthError as e:
            logger.error("Error setting access token: %s", e)
            return False
        await self.sync.set_token(token)
        return await self.connect()

    # ---------- connection ----------

    async def connect(self) -> bool:
        try:
            await self.sync.connect()
        except AuthError as e:
            logger.error("Cannot connect to player: %s", e)
            return False
        except PlayerConnectionError as e:
            logger.error("Failed to connect to player: %s", e)
            return False
        return self.sync.is_connected

    async def disconnect(self) -> None:
        cancelled = self.scheduler.cancel_all()
        if cancelled:
            logger.info("Dropped %d pending enqueues on disconnect", cancelled)
        await self.sync.disconnect()

    # ---------- recommendations ----------

    async def add_songs_to_queue(
        self,
        mood: str,
        genres: Sequence[str],
        supersede: Optional[bool] = None,
    ) -> Optional[QueueBatch]:
        """
        Map the mood to feature ranges, fetch recommendations for the genres
        and schedule them onto the player queue.
        Returns None (and logs why) when nothing could be fetched.
        """
        try:
            return await self.queue_for_mood(mood, genres, supersede=supersede)
        except AuthError as e:
            logger.error("Invalid request or missing access token: %s", e)
            return None
        except (NetworkError, ParseError) as e:
            logger.error("Error fetching recommendations: %s", e)
            return None

    async def queue_for_mood(
        self,
        mood: str,
        genres: Sequence[str],
        supersede: Optional[bool] = None,
    ) -> QueueBatch:
        """Like add_songs_to_queue, but raises AuthError, NetworkError or ParseError."""
        request = build_recommendation_request(genres, mood_profile(mood))
        uris = await fetch_recommendations(
            self.client,
            request,
            self.tokens.get(),
            api_base=self.settings.api_base,
            attempts=self.settings.fetch_attempts,
        )

        if not uris:
            logger.info("No recommendations for mood=%r genres=%r", mood, list(genres))
        if supersede is None:
            supersede = self.settings.supersede_batches
        return self.scheduler.submit(uris, supersede=supersede)

    # ---------- playback controls ----------

    async def toggle_play_pause(self) -> str:
        return await self.sync.toggle_play_pause()

    async def skip_to_next(self) -> None:
        await self.sync.skip_to_next()

    async def skip_to_previous(self) -> None:
        await self.sync.skip_to_previous()
