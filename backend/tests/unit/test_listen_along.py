import asyncio
import random
from datetime import timedelta

import pytest

from streamroom.domain.broadcast.repo import BroadcastRepository
from streamroom.domain.events import listen_along, models
from streamroom.domain.participants import models as participant_models
from streamroom.domain.participants.service import ParticipantsService
from streamroom.domain.points.ledger import PointsLedger

ROOM = "room-1"
SONG = models.Song(name="Flower", artist="JISOO")
PHONES = ["+15550001", "+15550002", "+15550003"]


async def _seat(clock, playing=("Flower", "JISOO")):
	participants = ParticipantsService(clock=clock)
	for phone in PHONES:
		await participants.join_room(ROOM, phone, username=phone[-4:], avatar_color="#222")
		name, artist = playing
		track = participant_models.CurrentTrack(name=name, artist=artist, now_playing=True)
		await participants.update_track(ROOM, phone, track)
	return participants


@pytest.fixture
def service(clock):
	return listen_along.ListenAlongService(clock=clock, rng=random.Random(11))


@pytest.mark.asyncio
async def test_everyone_who_joined_earns_the_participant_count(clock, service):
	participants = await _seat(clock)
	event_id = await service.start(ROOM, SONG, member="jisoo")
	assert event_id is not None

	assert await service.join(ROOM, event_id, PHONES[0]) is True
	assert await service.join(ROOM, event_id, PHONES[1]) is True
	assert await service.join(ROOM, event_id, PHONES[1]) is None

	assert await service.end(ROOM, event_id) is None
	clock.advance(minutes=3)
	outcome = await service.end(ROOM, event_id)
	assert outcome.status == models.COMPLETED
	assert outcome.participant_count == 2
	assert outcome.points_each == 2
	assert (await participants.get(ROOM, PHONES[0])).bonus_points == 2
	assert (await participants.get(ROOM, PHONES[2])).bonus_points == 0

	events = await BroadcastRepository().list_since(ROOM, clock.now() - timedelta(hours=1))
	assert [e.type for e in events] == [
		listen_along.EVENT_START,
		listen_along.EVENT_JOIN,
		listen_along.EVENT_JOIN,
		listen_along.EVENT_END,
	]
	assert events[-1].data["points_each"] == 2


@pytest.mark.asyncio
async def test_join_requires_matching_track(clock, service):
	participants = await _seat(clock)
	event_id = await service.start(ROOM, SONG)
	await participants.update_track(
		ROOM,
		PHONES[0],
		participant_models.CurrentTrack(name="Shut Down", artist="BLACKPINK", now_playing=True),
	)
	assert await service.join(ROOM, event_id, PHONES[0]) is None
	assert await service.join(ROOM, event_id, "+19990000") is None


@pytest.mark.asyncio
async def test_nobody_joining_fails_without_awards(clock, service):
	await _seat(clock)
	event_id = await service.start(ROOM, SONG)
	clock.advance(minutes=3, seconds=1)
	assert await service.join(ROOM, event_id, PHONES[0]) is None

	outcome = await service.end(ROOM, event_id)
	assert outcome.status == models.FAILED
	assert outcome.points_each == 0
	assert await service.end(ROOM, event_id) is None


@pytest.mark.asyncio
async def test_concurrent_end_awards_once(clock, service):
	participants = await _seat(clock)
	event_id = await service.start(ROOM, SONG)
	for phone in PHONES:
		await service.join(ROOM, event_id, phone)
	clock.advance(minutes=3)

	outcomes = await asyncio.gather(*[service.end(ROOM, event_id) for _ in range(4)])
	assert len([o for o in outcomes if o is not None]) == 1
	for phone in PHONES:
		assert (await participants.get(ROOM, phone)).bonus_points == 3


class _BrokenLedger(PointsLedger):
	def __init__(self, broken_phone: str) -> None:
		super().__init__()
		self.broken_phone = broken_phone

	async def award_bonus(self, room_id, phone_number, amount, *, source):
		if phone_number == self.broken_phone:
			raise OSError("connection reset")
		return await super().award_bonus(room_id, phone_number, amount, source=source)


@pytest.mark.asyncio
async def test_one_failed_award_does_not_skip_the_others(clock):
	participants = await _seat(clock)
	service = listen_along.ListenAlongService(clock=clock, ledger=_BrokenLedger(PHONES[0]), rng=random.Random(11))
	event_id = await service.start(ROOM, SONG)
	for phone in PHONES:
		await service.join(ROOM, event_id, phone)
	clock.advance(minutes=3)

	outcome = await service.end(ROOM, event_id)
	assert outcome.status == models.COMPLETED
	assert (await participants.get(ROOM, PHONES[0])).bonus_points == 0
	for phone in PHONES[1:]:
		assert (await participants.get(ROOM, phone)).bonus_points == 3
	assert await service.end(ROOM, event_id) is None


@pytest.mark.asyncio
async def test_start_needs_two_people_playing(clock, service):
	participants = ParticipantsService(clock=clock)
	await participants.join_room(ROOM, PHONES[0], username="a", avatar_color="#222")
	await participants.join_room(ROOM, PHONES[1], username="b", avatar_color="#222")
	await participants.update_track(
		ROOM,
		PHONES[0],
		participant_models.CurrentTrack(name="Flower", artist="JISOO", now_playing=True),
	)
	assert await service.start(ROOM, SONG) is None


@pytest.mark.asyncio
async def test_random_member_is_a_known_member(clock, service):
	await _seat(clock)
	event_id = await service.start(ROOM, SONG)
	event = await service.get(event_id)
	assert event.payload.member in models.MEMBERS
	assert event.ends_at - event.started_at == listen_along.ListenAlongService.default_duration
