from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TRACK_NAME = "No track playing"
RECOMMENDATION_LIMIT = 20
MAX_SEED_GENRES = 5


class FeatureRange(BaseModel):
    """Inclusive (min, max) bound on one audio feature; either bound may be absent."""
    model_config = ConfigDict(frozen=True)

    min: Optional[float] = None
    max: Optional[float] = None


class AudioFeatureProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    valence: FeatureRange
    energy: FeatureRange
    loudness: Optional[FeatureRange] = None
    acousticness: Optional[FeatureRange] = None
    danceability: Optional[FeatureRange] = None


class RecommendationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    seed_genres: Tuple[str, ...] = Field(max_length=MAX_SEED_GENRES)
    limit: Literal[20] = RECOMMENDATION_LIMIT
    profile: AudioFeatureProfile


class AlbumImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class PlayerTrack(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str
    name: str
    album_name: str = ""
    images: Tuple[AlbumImage, ...] = ()


class PlayerStateSnapshot(BaseModel):
    """What the remote player reports about itself in a push notification."""
    model_config = ConfigDict(frozen=True)

    track: Optional[PlayerTrack] = None
    is_paused: bool = True


class AlbumArt(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: bytes
    content_type: str = "image/jpeg"
    url: Optional[str] = None


class PlaybackState(BaseModel):
    track_uri: Optional[str] = None
    track_name: str = DEFAULT_TRACK_NAME
    album_name: str = ""
    is_paused: bool = False
    album_art: Optional[AlbumArt] = None


class BatchResult(BaseModel):
    batch_id: int
    enqueued: List[str] = []
    failed: List[str] = []
