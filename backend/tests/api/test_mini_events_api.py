import pytest


ROOM = "room-api"
SONGS = [
    {"name": "Pink Venom", "artist": "BLACKPINK"},
    {"name": "Shut Down", "artist": "BLACKPINK"},
    {"name": "Lovesick Girls", "artist": "BLACKPINK"},
    {"name": "How You Like That", "artist": "BLACKPINK"},
]


async def _join(api_client, phone, username):
    response = await api_client.post(
        f"/rooms/{ROOM}/participants/join",
        json={"phone_number": phone, "username": username, "avatar_color": "#abc"},
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_start_without_enough_people_returns_no_event(api_client):
    response = await api_client.post(
        f"/rooms/{ROOM}/mini-events/map-fill/start",
        json={"song_name": "Kill This Love", "song_artist": "BLACKPINK"},
    )
    assert response.status_code == 200
    assert response.json() == {"event_id": None}

    active = await api_client.get(f"/rooms/{ROOM}/mini-events/map-fill/active")
    assert active.status_code == 200
    assert active.json() is None


@pytest.mark.asyncio
async def test_race_start_rejects_unknown_lane(api_client):
    response = await api_client.post(
        f"/rooms/{ROOM}/mini-events/race/start",
        json={"lanes": {"suga": [{"name": "Haegeum"}]}},
        headers={"X-Request-Id": "req-lane"},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "unknown lane: suga"
    assert body["request_id"] == "req-lane"


@pytest.mark.asyncio
async def test_race_start_and_active_view(api_client):
    await _join(api_client, "+15550001", "jisoo_fan")
    await _join(api_client, "+15550002", "rose_fan")

    response = await api_client.post(
        f"/rooms/{ROOM}/mini-events/race/start",
        json={"lanes": {"jisoo": [{"name": "Flower", "artist": "JISOO"}]}, "cooldown_ms": 0},
    )
    event_id = response.json()["event_id"]
    assert event_id is not None

    active = await api_client.get(f"/rooms/{ROOM}/mini-events/race/active")
    body = active.json()
    assert body["id"] == event_id
    assert body["kind"] == "race"
    assert body["status"] == "active"
    assert body["payload"]["target"] == 6
    assert body["payload"]["lanes"]["jisoo"]["songs"] == [{"name": "Flower", "artist": "JISOO"}]

    # nobody has a bias or a track, so the join is a quiet no-op
    join = await api_client.post(
        f"/rooms/{ROOM}/mini-events/race/{event_id}/join",
        json={"phone_number": "+15550001"},
    )
    assert join.status_code == 200
    assert join.json() is None


@pytest.mark.asyncio
async def test_playlist_run_validation_and_quit(api_client):
    await _join(api_client, "+15550001", "runner")

    short = await api_client.post(
        f"/rooms/{ROOM}/mini-events/playlist-run/start",
        json={"phone_number": "+15550001", "songs": SONGS[:2]},
    )
    assert short.status_code == 422
    assert "4 songs" in short.json()["detail"]

    stranger = await api_client.post(
        f"/rooms/{ROOM}/mini-events/playlist-run/start",
        json={"phone_number": "+15559999", "songs": SONGS},
    )
    assert stranger.status_code == 404
    assert stranger.json()["detail"] == "participant_not_found"

    started = await api_client.post(
        f"/rooms/{ROOM}/mini-events/playlist-run/start",
        json={"phone_number": "+15550001", "songs": SONGS},
    )
    event_id = started.json()["event_id"]
    assert event_id is not None

    active = await api_client.get(
        f"/rooms/{ROOM}/mini-events/playlist-run/active",
        params={"phone_number": "+15550001"},
    )
    assert active.json()["payload"]["songs"][0]["status"] == "active"

    progress = await api_client.post(
        f"/rooms/{ROOM}/mini-events/playlist-run/{event_id}/progress",
        json={"phone_number": "+15550001"},
    )
    assert progress.json() is None

    quit_response = await api_client.post(
        f"/rooms/{ROOM}/mini-events/playlist-run/{event_id}/quit",
        json={"phone_number": "+15550001"},
    )
    assert quit_response.json()["status"] == "quit"


@pytest.mark.asyncio
async def test_playlist_run_active_needs_phone_number(api_client):
    response = await api_client.get(f"/rooms/{ROOM}/mini-events/playlist-run/active")
    assert response.status_code == 422
