import asyncio

import httpx
import pytest

from moodify.errors import AuthError
from moodify.models import PlaybackState
from moodify.session import MoodifySession

from conftest import make_snapshot

TRACKS = {"tracks": [{"uri": "spotify:track:a"}, {"foo": "x"}, {"uri": "spotify:track:b"}, {"uri": "spotify:track:c"}]}


def _session_run(settings, fake_player, handler, scenario):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            async with MoodifySession(settings, client=client, player=fake_player) as session:
                return await scenario(session)
    return asyncio.run(main())


def test_mood_to_queue_end_to_end(settings, fake_player):
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=TRACKS)

    async def scenario(session):
        await session.set_token("tok-abcdef")
        assert await session.connect()
        batch = await session.add_songs_to_queue("Happy", ["pop", "rock", "jazz", "indie", "metal", "folk"])
        return await batch.wait()

    result = _session_run(settings, fake_player, handler, scenario)
    assert fake_player.enqueued == ["spotify:track:a", "spotify:track:b", "spotify:track:c"]
    assert result.enqueued == fake_player.enqueued
    assert seen["auth"] == "Bearer tok-abcdef"
    assert seen["params"] == {
        "seed_genres": "pop,rock,jazz,indie,metal",
        "limit": "20",
        "min_valence": "0.7",
        "max_valence": "1.0",
        "min_energy": "0.6",
        "max_energy": "0.9",
        "min_danceability": "0.7",
        "max_danceability": "1.0",
    }


def test_missing_token_enqueues_nothing(settings, fake_player):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=TRACKS)

    async def scenario(session):
        return await session.add_songs_to_queue("sad", ["blues"])

    assert _session_run(settings, fake_player, handler, scenario) is None
    assert calls == []
    assert fake_player.enqueued == []


def test_fetch_failure_enqueues_nothing(settings, fake_player):
    async def scenario(session):
        await session.set_token("tok")
        return await session.add_songs_to_queue("angry", ["metal"])

    assert _session_run(settings, fake_player, lambda r: httpx.Response(500), scenario) is None
    assert fake_player.enqueued == []


def test_malformed_response_enqueues_nothing(settings, fake_player):
    async def scenario(session):
        await session.set_token("tok")
        return await session.add_songs_to_queue("neutral", ["pop"])

    handler = lambda r: httpx.Response(200, content=b"{oops")
    assert _session_run(settings, fake_player, handler, scenario) is None
    assert fake_player.enqueued == []


def test_initial_token_from_settings(settings, fake_player):
    settings = settings.model_copy(update={"access_token": "from-env"})

    async def scenario(session):
        return session.tokens.get()

    assert _session_run(settings, fake_player, lambda r: httpx.Response(204), scenario) == "from-env"


def test_auth_redirect_sets_token_and_connects(settings, fake_player):
    async def scenario(session):
        ok = await session.handle_auth_redirect("moodify://callback#access_token=XYZ&token_type=Bearer")
        return ok, session.tokens.get()

    ok, token = _session_run(settings, fake_player, lambda r: httpx.Response(204), scenario)
    assert ok is True
    assert token == "XYZ"
    assert fake_player.tokens == ["XYZ"]


def test_auth_redirect_error(settings, fake_player):
    async def scenario(session):
        return await session.handle_auth_redirect("moodify://callback?error=access_denied")

    assert _session_run(settings, fake_player, lambda r: httpx.Response(204), scenario) is False
    assert fake_player.tokens == []


def test_connect_without_token_reports_failure(settings, fake_player):
    async def scenario(session):
        return await session.connect()

    assert _session_run(settings, fake_player, lambda r: httpx.Response(204), scenario) is False


def test_disconnect_clears_state_and_pending_enqueues(settings, fake_player):
    settings = settings.model_copy(update={"enqueue_spacing": 30.0})

    async def scenario(session):
        await session.set_token("tok")
        await session.connect()
        fake_player.push(make_snapshot(1))
        await session.sync.flush()
        batch = await session.add_songs_to_queue("happy", ["pop"])
        for _ in range(3):
            await asyncio.sleep(0)
        await session.disconnect()
        result = await batch.wait()
        fake_player.push(make_snapshot(2))
        await session.sync.flush()
        return result, session.state, session.tokens.get()

    result, state, token = _session_run(
        settings, fake_player, lambda r: httpx.Response(200, json=TRACKS), scenario
    )
    assert result.enqueued == ["spotify:track:a"]
    assert fake_player.enqueued == ["spotify:track:a"]
    assert state == PlaybackState()
    assert token is None


def test_supersede_setting_cancels_previous_batch(settings, fake_player):
    settings = settings.model_copy(update={"enqueue_spacing": 30.0, "supersede_batches": True})

    async def scenario(session):
        await session.set_token("tok")
        first = await session.add_songs_to_queue("happy", ["pop"])
        for _ in range(3):
            await asyncio.sleep(0)
        second = await session.add_songs_to_queue("sad", ["folk"])
        for _ in range(3):
            await asyncio.sleep(0)
        session.scheduler.cancel(second.id)
        return await first.wait(), await second.wait()

    first, second = _session_run(
        settings, fake_player, lambda r: httpx.Response(200, json=TRACKS), scenario
    )
    assert first.enqueued == ["spotify:track:a"]
    assert second.enqueued == ["spotify:track:a"]


def test_queue_for_mood_reports_rejected_token(settings, fake_player):
    async def scenario(session):
        await session.set_token("stale")
        with pytest.raises(AuthError):
            await session.queue_for_mood("happy", ["pop"])

    _session_run(settings, fake_player, lambda r: httpx.Response(401), scenario)
    assert fake_player.enqueued == []
