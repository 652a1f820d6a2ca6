import pytest


ROOM = "room-api"
PHONE = "+15550001"


@pytest.mark.asyncio
async def test_room_membership_flow(api_client):
    room = await api_client.post(f"/rooms/{ROOM}")
    assert room.json() == {"room_id": ROOM, "name": ROOM, "type": "listening"}

    profile = await api_client.put(f"/users/{PHONE}", json={"username": "lisa", "district": "Mapo", "bias": "Lisa"})
    assert profile.status_code == 200
    assert profile.json()["district"] == "Mapo"

    joined = await api_client.post(
        f"/rooms/{ROOM}/participants/join",
        json={"phone_number": PHONE, "username": "lisa", "avatar_color": "#fc0"},
    )
    assert joined.status_code == 200
    assert joined.json()["is_online"] is True

    track = await api_client.post(
        f"/rooms/{ROOM}/participants/track",
        json={"phone_number": PHONE, "track": {"name": "Money", "artist": "LISA", "now_playing": True}},
    )
    assert track.json() == {"changed": True, "was_idle": True}

    minutes = await api_client.post(
        f"/rooms/{ROOM}/participants/minutes",
        json={"phone_number": PHONE, "total_minutes": 42},
    )
    assert minutes.json() == {"success": True}

    checked = await api_client.post(f"/rooms/{ROOM}/participants/check-in", json={"phone_number": PHONE})
    assert checked.json() == {"success": True}

    milestone = await api_client.post(
        f"/rooms/{ROOM}/participants/milestones",
        json={"phone_number": PHONE, "milestone": 30},
    )
    assert milestone.json() == {"success": True}

    detail = await api_client.get(f"/rooms/{ROOM}/participants/{PHONE}")
    body = detail.json()
    assert body["total_minutes"] == 42
    assert body["offline_tracking"] is True
    assert body["milestones"] == [30]
    assert body["current_track"]["name"] == "Money"

    listing = await api_client.get(f"/rooms/{ROOM}/participants")
    assert [p["phone_number"] for p in listing.json()] == [PHONE]

    left = await api_client.post(f"/rooms/{ROOM}/participants/leave", json={"phone_number": PHONE})
    assert left.json() == {"success": True}


@pytest.mark.asyncio
async def test_unknown_participant_is_404_with_request_id(api_client):
    response = await api_client.get(f"/rooms/{ROOM}/participants/+19999999")
    assert response.status_code == 404
    body = response.json()
    assert body["detail"] == "participant_not_found"
    assert body["request_id"]


@pytest.mark.asyncio
async def test_unknown_profile_is_404(api_client):
    response = await api_client.get(f"/users/{PHONE}")
    assert response.status_code == 404
    assert response.json()["detail"] == "user_not_found"


@pytest.mark.asyncio
async def test_daily_checkins(api_client):
    first = await api_client.post(f"/users/{PHONE}/daily-checkins")
    second = await api_client.post(f"/users/{PHONE}/daily-checkins")
    assert first.json()["already_checked_in"] is False
    assert second.json()["already_checked_in"] is True

    month = first.json()["date_key"][:7]
    listing = await api_client.get(f"/users/{PHONE}/daily-checkins", params={"month": month})
    assert len(listing.json()) == 1

    streak = await api_client.get(f"/users/{PHONE}/daily-checkins/streak")
    assert streak.json() == {"streak": 1}

    bad = await api_client.get(f"/users/{PHONE}/daily-checkins", params={"month": "June"})
    assert bad.status_code == 422
