# src/moodify/spotify.py

import json
import logging
import urllib.parse as up
from typing import Dict, List, Optional, Sequence, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import SPOTIFY_API
from .errors import AuthError, NetworkError, ParseError
from .models import (
    MAX_SEED_GENRES,
    RECOMMENDATION_LIMIT,
    AudioFeatureProfile,
    FeatureRange,
    RecommendationRequest,
)

logger = logging.getLogger(__name__)

QueryParams = List[Tuple[str, str]]

# Optional bounds, in the order they are serialized.
OPTIONAL_FEATURES = ("loudness", "acousticness", "danceability")


def auth_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def token_tail(token: Optional[str]) -> str:
    return f"...{token[-6:]}" if token else "<none>"


def build_recommendation_request(
    genres: Sequence[str],
    profile: AudioFeatureProfile,
) -> RecommendationRequest:
    """
    First five genres as given (no shuffle, no dedup), lower-cased.
    """
    seeds = tuple(g.lower() for g in list(genres)[:MAX_SEED_GENRES])
    return RecommendationRequest(seed_genres=seeds, limit=RECOMMENDATION_LIMIT, profile=profile)


def _number(value: float) -> str:
    return str(float(value))


def _bounds(name: str, rng: Optional[FeatureRange]) -> List[Tuple[str, Optional[float]]]:
    if rng is None:
        return [(f"min_{name}", None), (f"max_{name}", None)]
    return [(f"min_{name}", rng.min), (f"max_{name}", rng.max)]


def recommendation_params(request: RecommendationRequest) -> QueryParams:
    """
    Ordered query parameters for /recommendations.

    seed_genres, limit and the valence/energy bounds are always present.
    Each optional min/max bound is emitted on its own, only when set.
    """
    profile = request.profile
    params: QueryParams = [
        ("seed_genres", ",".join(request.seed_genres)),
        ("limit", str(request.limit)),
        ("min_valence", _number(profile.valence.min)),
        ("max_valence", _number(profile.valence.max)),
        ("min_energy", _number(profile.energy.min)),
        ("max_energy", _number(profile.energy.max)),
    ]

    optional: List[Tuple[str, Optional[float]]] = []
    for name in OPTIONAL_FEATURES:
        optional += _bounds(name, getattr(profile, name))

    for key, value in optional:
        if value is not None:
            params.append((key, _number(value)))
    return params


def recommendation_url(request: RecommendationRequest, api_base: str = SPOTIFY_API) -> str:
    query = up.urlencode(recommendation_params(request), safe=",")
    return f"{api_base.rstrip('/')}/recommendations?{query}"


def parse_track_uris(body: bytes) -> List[str]:
    """
    Pull track URIs out of a /recommendations response, keeping order.
    Entries without a string "uri" are skipped.
    """
    try:
        data = json.loads(body)
    except ValueError as e:
        raise ParseError(f"Recommendations response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("Unexpected JSON structure: expected an object")

    tracks = data.get("tracks")
    if not tracks:
        return []
    if not isinstance(tracks, list):
        raise ParseError("Unexpected JSON structure: 'tracks' is not an array")

    return [t["uri"] for t in tracks if isinstance(t, dict) and isinstance(t.get("uri"), str)]


async def _get_recommendations(client: httpx.AsyncClient, url: str, token: str) -> bytes:
    try:
        r = await client.get(url, headers=auth_header(token))
        r.raise_for_status()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        if status == 401:
            raise AuthError("Spotify rejected the access token (401)") from e
        raise NetworkError(f"Recommendations failed with HTTP {status}", status_code=status) from e
    except httpx.TransportError as e:
        raise NetworkError(f"Recommendations request failed: {e!r}") from e
    return r.content


async def fetch_recommendations(
    client: httpx.AsyncClient,
    request: RecommendationRequest,
    token: Optional[str],
    api_base: str = SPOTIFY_API,
    attempts: int = 1,
) -> List[str]:
    """
    Run a recommendation request and return the track URIs in response order.

    Raises AuthError (before any network call when the token is missing),
    NetworkError or ParseError. With attempts > 1, NetworkError is retried
    with exponential backoff.
    """
    if not token:
        raise AuthError("Spotify access token missing. Please reconnect.")

    url = recommendation_url(request, api_base)
    logger.debug("Requesting recommendations %s (token %s)", url, token_tail(token))

    body = b""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, max=4),
        retry=retry_if_exception_type(NetworkError),
        reraise=True,
    ):
        with attempt:
            body = await _get_recommendations(client, url, token)

    uris = parse_track_uris(body)
    logger.info("Parsed %d track URIs from recommendations", len(uris))
    return uris

