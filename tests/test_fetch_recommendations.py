import asyncio
import json

import httpx
import pytest

from moodify.errors import AuthError, NetworkError, ParseError
from moodify.moods import mood_profile
from moodify.spotify import build_recommendation_request, fetch_recommendations, parse_track_uris

API = "https://api.test/v1"


def _request():
    return build_recommendation_request(["Pop", "Rock"], mood_profile("happy"))


def _fetch(handler, token="tok-123456", attempts=1):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_recommendations(client, _request(), token, api_base=API, attempts=attempts)
    return asyncio.run(run())


def test_parse_skips_entries_without_uri():
    body = json.dumps({"tracks": [{"uri": "a"}, {"foo": "x"}, {"uri": "b"}]}).encode()
    assert parse_track_uris(body) == ["a", "b"]


@pytest.mark.parametrize("body", [b"{}", b'{"tracks": []}', b'{"tracks": null}'])
def test_parse_empty_or_absent_tracks(body):
    assert parse_track_uris(body) == []


def test_parse_ignores_non_string_uris_and_non_objects():
    body = json.dumps({"tracks": [{"uri": 5}, "spotify:track:x", {"uri": "c"}]}).encode()
    assert parse_track_uris(body) == ["c"]


@pytest.mark.parametrize("body", [b"not json", b"", b"[1, 2]", b'{"tracks": "nope"}'])
def test_parse_errors(body):
    with pytest.raises(ParseError):
        parse_track_uris(body)


def test_fetch_sends_bearer_token_and_params():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"tracks": [{"uri": "spotify:track:1"}, {"uri": "spotify:track:2"}]})

    assert _fetch(handler) == ["spotify:track:1", "spotify:track:2"]
    assert seen["auth"] == "Bearer tok-123456"
    assert seen["path"] == "/v1/recommendations"
    assert seen["params"]["seed_genres"] == "pop,rock"
    assert seen["params"]["limit"] == "20"
    assert seen["params"]["min_danceability"] == "0.7"


@pytest.mark.parametrize("token", [None, ""])
def test_missing_token_fails_before_network(token):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(AuthError):
        _fetch(handler, token=token)
    assert calls == []


def test_http_error_is_network_error():
    with pytest.raises(NetworkError) as exc:
        _fetch(lambda request: httpx.Response(503, text="down"))
    assert exc.value.status_code == 503


def test_rejected_token_is_auth_error():
    with pytest.raises(AuthError):
        _fetch(lambda request: httpx.Response(401, json={"error": "expired"}))


def test_transport_error_is_network_error():
    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(NetworkError):
        _fetch(handler)


def test_no_retry_by_default():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(NetworkError):
        _fetch(handler)
    assert len(calls) == 1


def test_retries_network_errors_when_configured():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(502)
        return httpx.Response(200, json={"tracks": [{"uri": "a"}]})

    assert _fetch(handler, attempts=2) == ["a"]
    assert len(calls) == 2


def test_malformed_body_is_parse_error():
    with pytest.raises(ParseError):
        _fetch(lambda request: httpx.Response(200, content=b"<html>"))
