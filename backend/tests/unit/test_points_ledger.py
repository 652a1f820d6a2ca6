import uuid

import pytest

from streamroom.domain.participants.service import ParticipantsService
from streamroom.domain.points.ledger import PointsLedger
from streamroom.domain.streams import models, policy, tracks
from streamroom.domain.streams.repo import StreamCountRepository

ROOM = "room-1"
PHONE = "+15550001"


async def _count(clock, platform, main):
	await StreamCountRepository().append(
		models.StreamCount(
			id=str(uuid.uuid4()),
			room_id=ROOM,
			phone_number=PHONE,
			track_name="Kill This Love",
			track_artist="BLACKPINK",
			track_key="blackpink|kill this love",
			platform=platform,
			is_main_song=main,
			counted_at=clock.now(),
			listen_duration=45,
		)
	)


@pytest.mark.asyncio
async def test_recompute_is_idempotent(clock):
	await ParticipantsService(clock=clock).join_room(ROOM, PHONE, username="rose", avatar_color="#f0f")
	await _count(clock, tracks.YOUTUBE, True)
	await _count(clock, tracks.SPOTIFY, True)
	await _count(clock, tracks.OTHER, False)
	ledger = PointsLedger()

	expected = policy.YOUTUBE_MAIN_POINTS + policy.SPOTIFY_MAIN_POINTS + policy.SPOTIFY_OTHER_POINTS
	assert await ledger.recompute(ROOM, PHONE) == expected
	assert await ledger.recompute(ROOM, PHONE) == expected


@pytest.mark.asyncio
async def test_checkin_bonus_and_event_bonus_add_to_total(clock):
	participants = ParticipantsService(clock=clock)
	await participants.join_room(ROOM, PHONE, username="rose", avatar_color="#f0f")
	await _count(clock, tracks.YOUTUBE, False)
	await participants.check_in(ROOM, PHONE)
	ledger = PointsLedger()

	total = await ledger.award_bonus(ROOM, PHONE, 8, source="map_fill")
	assert total == policy.YOUTUBE_OTHER_POINTS + policy.CHECKIN_BONUS + 8

	breakdown = await ledger.breakdown(ROOM, PHONE)
	assert breakdown.bonus_points == 8
	assert breakdown.checkin_bonus == policy.CHECKIN_BONUS
	assert breakdown.streams_counted == 1
	assert (await participants.get(ROOM, PHONE)).total_points == total


@pytest.mark.asyncio
async def test_bonus_for_unknown_participant_is_skipped(clock):
	ledger = PointsLedger()
	assert await ledger.award_bonus(ROOM, PHONE, 5, source="race") is None
	assert await ledger.award_bonus(ROOM, PHONE, 0, source="race") is None


@pytest.mark.asyncio
async def test_recompute_without_participant_returns_derived_total(clock):
	await _count(clock, tracks.YOUTUBE, True)
	assert await PointsLedger().recompute(ROOM, PHONE) == policy.YOUTUBE_MAIN_POINTS
