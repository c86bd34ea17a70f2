from typing import Dict, List

from .models import AudioFeatureProfile, FeatureRange

# Audio feature ranges per detected mood. These go to Spotify's
# recommendations endpoint as min_*/max_* bounds.
_UPBEAT = AudioFeatureProfile(
    valence=FeatureRange(min=0.7, max=1.0),
    energy=FeatureRange(min=0.6, max=0.9),
    danceability=FeatureRange(min=0.7, max=1.0),  # danceable, upbeat tracks
)

_DOWNCAST = AudioFeatureProfile(
    valence=FeatureRange(min=0.0, max=0.3),
    energy=FeatureRange(min=0.3, max=0.5),
    acousticness=FeatureRange(min=0.6, max=1.0),  # softer, acoustic-style tracks
)

_INTENSE = AudioFeatureProfile(
    valence=FeatureRange(min=0.0, max=0.3),
    energy=FeatureRange(min=0.8, max=1.0),
    loudness=FeatureRange(min=-5.0),  # louder tracks, no upper bound
)

_BALANCED = AudioFeatureProfile(
    valence=FeatureRange(min=0.4, max=0.6),
    energy=FeatureRange(min=0.4, max=0.6),
    acousticness=FeatureRange(min=0.3, max=0.6),
)

# Unrecognized moods pin valence and energy to a single point.
DEFAULT_PROFILE = AudioFeatureProfile(
    valence=FeatureRange(min=0.5, max=0.5),
    energy=FeatureRange(min=0.5, max=0.5),
)

MOOD_FEATURES: Dict[str, AudioFeatureProfile] = {
    "happy": _UPBEAT,
    "surprise": _UPBEAT,
    "sad": _DOWNCAST,
    "disgust": _DOWNCAST,
    "fear": _DOWNCAST,
    "angry": _INTENSE,
    "neutral": _BALANCED,
}


def list_moods() -> List[str]:
    return sorted(MOOD_FEATURES)


def mood_profile(mood: str) -> AudioFeatureProfile:
    """
    Feature ranges for a mood label (case-insensitive).
    Never fails: anything outside the vocabulary gets DEFAULT_PROFILE.
    """
    return MOOD_FEATURES.get((mood or "").strip().lower(), DEFAULT_PROFILE)
