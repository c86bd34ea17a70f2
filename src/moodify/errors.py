"""
Error types raised by the recommendation and playback layers.

Components raise these; the session, the queue scheduler and the playback
synchronizer catch them at their boundary and log them.
"""
from typing import Optional


class MoodifyError(Exception):
    """Base class for every error this package raises"""
    pass


class AuthError(MoodifyError):
    """Access token missing or rejected"""
    pass


class NetworkError(MoodifyError):
    """Transport failure or non-success HTTP status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(MoodifyError):
    """Response body is not JSON or not the expected shape"""
    pass


class EnqueueError(MoodifyError):
    """The remote player rejected a specific track"""

    def __init__(self, uri: str, message: str):
        super().__init__(f"{uri}: {message}")
        self.uri = uri


class PlayerConnectionError(MoodifyError):
    """Remote player unreachable or handshake failed"""
    pass
