import asyncio
from datetime import timedelta

import pytest

from streamroom.domain.errors import ParticipantError
from streamroom.domain.participants import models, schemas
from streamroom.domain.participants.repo import ParticipantsRepository
from streamroom.domain.participants.service import CheckinService, ParticipantsService
from streamroom.domain.points.ledger import PointsLedger

ROOM = "room-1"
PHONE = "+15550001"


@pytest.mark.asyncio
async def test_join_twice_keeps_one_row_and_refreshes_profile(clock):
	service = ParticipantsService(clock=clock)
	first = await service.join_room(ROOM, PHONE, username="jennie", avatar_color="#000")
	clock.advance(minutes=5)
	second = await service.join_room(ROOM, PHONE, username="jennie_k", avatar_color="#fff")

	assert len(await service.list_by_room(ROOM)) == 1
	assert second.joined_at == first.joined_at
	assert second.username == "jennie_k"
	assert second.last_seen == clock.now()


@pytest.mark.asyncio
async def test_concurrent_first_joins_create_one_row(clock):
	service = ParticipantsService(clock=clock)
	joined = await asyncio.gather(
		service.join_room(ROOM, PHONE, username="jisoo", avatar_color="#111"),
		service.join_room(ROOM, PHONE, username="jisoo", avatar_color="#111"),
	)

	assert len(await service.list_by_room(ROOM)) == 1
	assert joined[0].joined_at == joined[1].joined_at


@pytest.mark.asyncio
async def test_join_keeps_points_awarded_in_between(clock):
	service = ParticipantsService(clock=clock)
	await service.join_room(ROOM, PHONE, username="lisa", avatar_color="#0f0")
	await PointsLedger().award_bonus(ROOM, PHONE, 8, source="map_fill")

	stale = models.Participant(
		room_id=ROOM,
		phone_number=PHONE,
		username="lisa",
		avatar_color="#0f0",
		joined_at=clock.now(),
	)
	assert await ParticipantsRepository().insert_if_absent(stale) is False
	rejoined = await service.join_room(ROOM, PHONE, username="lalisa", avatar_color="#0f0")

	assert rejoined.username == "lalisa"
	assert rejoined.bonus_points == 8
	assert rejoined.total_points == 8


@pytest.mark.asyncio
async def test_require_raises_for_unknown_participant(clock):
	service = ParticipantsService(clock=clock)
	with pytest.raises(ParticipantError) as excinfo:
		await service.require(ROOM, PHONE)
	assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_leave_resets_streak_unless_offline_tracking(clock):
	service = ParticipantsService(clock=clock)
	await service.join_room(ROOM, PHONE, username="rose", avatar_color="#f0f")
	await service.join_room(ROOM, "+15550002", username="lisa", avatar_color="#0f0")
	await service.check_in(ROOM, "+15550002")

	for phone in (PHONE, "+15550002"):
		def _streak(participant):
			participant.streak_minutes = 12
			return True

		await service._repo.update(ROOM, phone, _streak)
		await service.leave_room(ROOM, phone)

	assert (await service.get(ROOM, PHONE)).streak_minutes == 0
	kept = await service.get(ROOM, "+15550002")
	assert kept.streak_minutes == 12
	assert kept.is_online is False


@pytest.mark.asyncio
async def test_stale_presence_is_not_online(clock):
	service = ParticipantsService(clock=clock)
	await service.join_room(ROOM, PHONE, username="rose", avatar_color="#f0f")
	assert [p.phone_number for p in await service.online_participants(ROOM)] == [PHONE]

	clock.advance(minutes=5)
	assert await service.online_participants(ROOM) == []

	await service.set_presence(ROOM, PHONE, is_online=True)
	assert len(await service.online_participants(ROOM)) == 1


@pytest.mark.asyncio
async def test_track_update_reports_idle_transitions(clock):
	service = ParticipantsService(clock=clock)
	await service.join_room(ROOM, PHONE, username="rose", avatar_color="#f0f")
	track = models.CurrentTrack(name="Shut Down", artist="BLACKPINK", now_playing=True)

	first = await service.update_track(ROOM, PHONE, track)
	assert first.changed is True
	assert first.was_idle is True

	same = await service.update_track(ROOM, PHONE, models.CurrentTrack(name="Shut Down", artist="BLACKPINK", now_playing=True))
	assert same.changed is False
	assert same.was_idle is False

	cleared = await service.update_track(ROOM, PHONE, None)
	assert cleared.changed is True
	assert (await service.get(ROOM, PHONE)).current_track is None


@pytest.mark.asyncio
async def test_milestones_are_recorded_once(clock):
	service = ParticipantsService(clock=clock)
	await service.join_room(ROOM, PHONE, username="rose", avatar_color="#f0f")
	assert await service.add_milestone(ROOM, PHONE, 60) is True
	assert await service.add_milestone(ROOM, PHONE, 60) is False
	assert (await service.get(ROOM, PHONE)).milestones == [60]


@pytest.mark.asyncio
async def test_disable_offline_tracking_reports_noop(clock):
	service = ParticipantsService(clock=clock)
	await service.join_room(ROOM, PHONE, username="rose", avatar_color="#f0f")
	assert await service.disable_offline_tracking(ROOM, PHONE) is False
	await service.check_in(ROOM, PHONE)
	assert await service.disable_offline_tracking(ROOM, PHONE) is True


@pytest.mark.asyncio
async def test_profile_upsert_only_touches_sent_fields(clock):
	service = ParticipantsService(clock=clock)
	await service.upsert_profile(PHONE, schemas.ProfileUpdate(username="jisoo", bias="Jisoo"))
	user = await service.upsert_profile(PHONE, schemas.ProfileUpdate(district="Mapo"))
	assert user.username == "jisoo"
	assert user.bias == "Jisoo"
	assert user.district == "Mapo"
	assert user.registered_at == clock.now()


@pytest.mark.asyncio
async def test_daily_checkin_once_per_local_day(clock):
	service = CheckinService(clock=clock)
	first = await service.check_in(PHONE)
	again = await service.check_in(PHONE)
	assert first.already_checked_in is False
	assert again.already_checked_in is True
	assert first.date_key == "2024-06-01"


@pytest.mark.asyncio
async def test_checkin_day_follows_configured_offset(clock):
	# 19:00 UTC is already the next calendar day at UTC+05:30
	clock.advance(hours=7)
	result = await CheckinService(clock=clock).check_in(PHONE)
	assert result.date_key == "2024-06-02"


@pytest.mark.asyncio
async def test_streak_counts_back_from_today_or_yesterday(clock):
	service = CheckinService(clock=clock)
	for _ in range(3):
		await service.check_in(PHONE)
		clock.advance(hours=24)
	# nothing yet today, so the run ending yesterday still counts
	assert await service.streak(PHONE) == 3

	await service.check_in(PHONE)
	assert await service.streak(PHONE) == 4

	clock.advance(hours=48)
	assert await service.streak(PHONE) == 0


@pytest.mark.asyncio
async def test_month_listing_filters_by_prefix(clock):
	service = CheckinService(clock=clock)
	await service.check_in(PHONE)
	clock.set(clock.now() + timedelta(days=31))
	await service.check_in(PHONE)

	june = await service.month(PHONE, "2024-06")
	assert [c.date_key for c in june] == ["2024-06-01"]
