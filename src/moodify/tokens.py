import urllib.parse as up
from typing import Optional

from .errors import AuthError


class TokenStore:
    """
    Holds the single current access token. No refresh or expiry handling;
    the token comes from an external auth flow and is cleared on disconnect.
    """

    def __init__(self, token: Optional[str] = None):
        self._token = token or None

    def get(self) -> Optional[str]:
        return self._token

    def require(self) -> str:
        if not self._token:
            raise AuthError("Spotify access token missing. Please reconnect.")
        return self._token

    def set(self, token: str) -> None:
        if not token:
            raise AuthError("Refusing to store an empty access token")
        self._token = token

    def clear(self) -> None:
        self._token = None

    def __bool__(self) -> bool:
        return self._token is not None


def token_from_redirect(url: str) -> str:
    """
    Read the access token from an authorization redirect URL.

    Implicit-grant redirects carry it in the fragment
    (`#access_token=...&token_type=Bearer`); the query string is checked too.
    A redirect carrying `error` / `error_description` raises AuthError.
    """
    parts = up.urlsplit(url)
    params = {}
    for raw in (parts.query, parts.fragment):
        for key, values in up.parse_qs(raw).items():
            params.setdefault(key, values[0])

    token = params.get("access_token")
    if token:
        return token

    error = params.get("error_description") or params.get("error")
    if error:
        raise AuthError(f"Authorization failed: {error}")
    raise AuthError("Authorization redirect did not contain an access token")
