import uuid
from datetime import timedelta

import pytest

from streamroom.domain.broadcast.repo import BroadcastRepository
from streamroom.domain.errors import StreamsError
from streamroom.domain.participants.service import ParticipantsService
from streamroom.domain.streams import models, policy, sessions, tracks
from streamroom.domain.streams.repo import StreamCountRepository
from streamroom.domain.streams.service import MILESTONE_EVENT, StreamService

ROOM = "room-1"
PHONE = "+15550001"
MAIN_VIDEO = "BLACKPINK - Kill This Love (Official Music Video)"


async def _seed(clock, n, *, platform=tracks.YOUTUBE, key="someone|else", ago=timedelta(hours=1), phone=PHONE, main=False):
	repo = StreamCountRepository()
	for i in range(n):
		await repo.append(
			models.StreamCount(
				id=str(uuid.uuid4()),
				room_id=ROOM,
				phone_number=phone,
				track_name="Else",
				track_artist="Someone",
				track_key=key,
				platform=platform,
				is_main_song=main,
				counted_at=clock.now() - ago - timedelta(seconds=i),
				listen_duration=60,
			)
		)


@pytest.mark.asyncio
async def test_without_session_nothing_counts(clock):
	result = await StreamService(clock=clock).try_count_stream(ROOM, PHONE)
	assert result.counted is False
	assert result.reason == policy.REASON_NO_SESSION


@pytest.mark.asyncio
async def test_start_rejects_title_without_words(clock):
	with pytest.raises(StreamsError) as excinfo:
		await StreamService(clock=clock).start_listening(ROOM, PHONE, "!!!", "BLACKPINK")
	assert excinfo.value.code == "invalid_track"
	assert excinfo.value.status_code == 422


@pytest.mark.asyncio
async def test_main_song_on_youtube_counts_after_thirty_seconds(clock):
	service = StreamService(clock=clock)
	await _seed(clock, 4)
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")

	clock.advance(seconds=25)
	early = await service.try_count_stream(ROOM, PHONE)
	assert early.counted is False
	assert early.reason == policy.REASON_TOO_SHORT
	assert early.seconds_remaining == 5

	clock.advance(seconds=5)
	result = await service.try_count_stream(ROOM, PHONE)
	assert result.counted is True
	assert result.platform == tracks.YOUTUBE
	assert result.is_main_song is True
	assert result.points == policy.YOUTUBE_MAIN_POINTS
	assert result.listen_duration == 30


@pytest.mark.asyncio
async def test_session_counts_once(clock):
	service = StreamService(clock=clock)
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=40)
	assert (await service.try_count_stream(ROOM, PHONE)).counted is True

	clock.advance(seconds=40)
	again = await service.try_count_stream(ROOM, PHONE)
	assert again.counted is False
	assert again.reason == policy.REASON_ALREADY_COUNTED


@pytest.mark.asyncio
async def test_sixth_youtube_stream_waits_out_longer_cooldown(clock):
	service = StreamService(clock=clock)
	main_key = tracks.track_key(MAIN_VIDEO, "BLACKPINK")
	await _seed(clock, 5, key=main_key, ago=timedelta(minutes=5))
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=61)

	result = await service.try_count_stream(ROOM, PHONE)
	assert result.counted is False
	assert result.reason == policy.REASON_COOLDOWN
	assert result.seconds_remaining == 15 * 60 - (5 * 60 + 61)


@pytest.mark.asyncio
async def test_youtube_daily_cap(clock):
	service = StreamService(clock=clock)
	await _seed(clock, policy.YOUTUBE_DAILY_CAP, ago=timedelta(minutes=30))
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(minutes=5)

	result = await service.try_count_stream(ROOM, PHONE)
	assert result.reason == policy.REASON_DAILY_CAP


@pytest.mark.asyncio
async def test_yesterdays_streams_do_not_count_toward_today(clock):
	service = StreamService(clock=clock)
	await _seed(clock, policy.YOUTUBE_DAILY_CAP, ago=timedelta(hours=13))
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=30)

	assert (await service.try_count_stream(ROOM, PHONE)).counted is True


@pytest.mark.asyncio
async def test_spotify_repeat_requires_a_different_track_in_between(clock, fake_redis):
	service = StreamService(clock=clock)
	await _seed(clock, policy.SPOTIFY_INTERLEAVE_AFTER, platform=tracks.SPOTIFY)
	art = "https://i.scdn.co/image/abc"
	key_a = tracks.track_key("Shut Down", "BLACKPINK")
	seeded = models.ListeningSession(
		id=str(uuid.uuid4()),
		room_id=ROOM,
		phone_number=PHONE,
		track_name="Shut Down",
		track_artist="BLACKPINK",
		track_key=key_a,
		platform=tracks.SPOTIFY,
		started_at=clock.now() - timedelta(seconds=40),
		history=models.new_history([key_a]),
		album_art=art,
	)
	await fake_redis.set(sessions.session_key(ROOM, PHONE), seeded.to_json())

	blocked = await service.try_count_stream(ROOM, PHONE)
	assert blocked.counted is False
	assert blocked.reason == policy.REASON_INTERLEAVE

	await service.start_listening(ROOM, PHONE, "Pink Venom", "BLACKPINK", art)
	await service.start_listening(ROOM, PHONE, "Shut Down", "BLACKPINK", art)
	clock.advance(seconds=30)
	result = await service.try_count_stream(ROOM, PHONE)
	assert result.counted is True
	assert result.platform == tracks.SPOTIFY
	assert result.is_main_song is False
	assert result.points == policy.SPOTIFY_OTHER_POINTS


@pytest.mark.asyncio
async def test_counted_stream_refreshes_participant_total(clock):
	participants = ParticipantsService(clock=clock)
	await participants.join_room(ROOM, PHONE, username="lisa", avatar_color="#ff00aa")
	service = StreamService(clock=clock)
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=30)
	await service.try_count_stream(ROOM, PHONE)

	participant = await participants.get(ROOM, PHONE)
	assert participant.total_points == policy.YOUTUBE_MAIN_POINTS
	points = await service.user_points(ROOM, PHONE)
	assert points.points == policy.YOUTUBE_MAIN_POINTS
	assert points.stream_points == policy.YOUTUBE_MAIN_POINTS


@pytest.mark.asyncio
async def test_hundredth_main_stream_broadcasts_milestone_once(clock):
	service = StreamService(clock=clock)
	await _seed(clock, 99, phone="+15559999", main=True)
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=30)
	assert (await service.try_count_stream(ROOM, PHONE)).counted is True

	events = await BroadcastRepository().list_since(ROOM, clock.now() - timedelta(minutes=1))
	milestones = [e for e in events if e.type == MILESTONE_EVENT]
	assert len(milestones) == 1
	assert milestones[0].data == {"total_streams": 100}


@pytest.mark.asyncio
async def test_listeners_receive_counted_streams_and_failures_are_contained(clock):
	seen = []

	async def _record(count):
		seen.append(count)

	async def _explode(count):
		raise RuntimeError("listener broke")

	service = StreamService(clock=clock, listeners=[_explode, _record])
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=30)

	result = await service.try_count_stream(ROOM, PHONE)
	assert result.counted is True
	assert [c.phone_number for c in seen] == [PHONE]


@pytest.mark.asyncio
async def test_room_queries_group_by_platform_and_track(clock):
	service = StreamService(clock=clock)
	await _seed(clock, 2, platform=tracks.SPOTIFY, phone="+15550002")
	await _seed(clock, 1, platform=tracks.OTHER, phone="+15550003")
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=30)
	await service.try_count_stream(ROOM, PHONE)

	totals = await service.room_streams_by_platform(ROOM)
	assert (totals.youtube, totals.spotify, totals.other) == (1, 2, 1)
	assert totals.total == 1
	assert totals.total_featured == 1
	assert totals.total_all == 4
	assert totals.total_other == 3

	rows = await service.room_stream_counts(ROOM)
	assert rows[0].track_key == "someone|else"
	assert rows[0].total_streams == 3
	assert rows[0].unique_listeners == 2

	mine = await service.user_streams(ROOM, PHONE)
	assert mine.total_streams == 1
	assert mine.streams[0].platform == tracks.YOUTUBE


class _FlakyRepository(StreamCountRepository):
	def __init__(self, failures: int = 1) -> None:
		super().__init__()
		self.failures = failures

	async def append(self, count: models.StreamCount) -> None:
		if self.failures:
			self.failures -= 1
			raise OSError("connection reset")
		await super().append(count)


def test_main_song_requires_the_exact_track():
	service = StreamService()
	assert service.is_main_song(MAIN_VIDEO, "BLACKPINK") is True
	assert service.is_main_song("Kill This Love", "BLACKPINK VEVO") is True
	assert service.is_main_song("This Love", "Maroon 5") is False
	assert service.is_main_song("Love", "Anyone") is False
	assert service.is_main_song("Kill This Love", "Someone Else") is False


@pytest.mark.asyncio
async def test_similar_title_by_another_artist_earns_regular_points(clock):
	service = StreamService(clock=clock)
	await service.start_listening(ROOM, PHONE, "This Love (Official Video)", "Maroon 5")
	clock.advance(seconds=30)

	result = await service.try_count_stream(ROOM, PHONE)
	assert result.counted is True
	assert result.platform == tracks.YOUTUBE
	assert result.is_main_song is False
	assert result.points == policy.YOUTUBE_OTHER_POINTS
	assert await StreamCountRepository().count_main_for_room(ROOM) == 0


@pytest.mark.asyncio
async def test_failed_write_leaves_the_session_countable(clock):
	repo = _FlakyRepository()
	service = StreamService(clock=clock, repository=repo)
	await service.start_listening(ROOM, PHONE, MAIN_VIDEO, "BLACKPINK")
	clock.advance(seconds=30)

	with pytest.raises(OSError):
		await service.try_count_stream(ROOM, PHONE)
	session = await sessions.ListeningSessionTracker(clock=clock).get(ROOM, PHONE)
	assert session.counted is False
	assert await repo.list_for_user(ROOM, PHONE) == []

	retry = await service.try_count_stream(ROOM, PHONE)
	assert retry.counted is True
	assert len(await repo.list_for_user(ROOM, PHONE)) == 1


@pytest.mark.asyncio
async def test_late_youtube_streams_need_two_other_tracks_in_between(clock):
	service = StreamService(clock=clock)
	pink_venom = "Pink Venom (Official Video)"
	shut_down = "Shut Down (Official Video)"
	lovesick = "Lovesick Girls (Official Video)"
	other_phone = "+15550002"
	await _seed(clock, 5)
	await _seed(clock, 5, phone=other_phone)

	for title in (pink_venom, shut_down, pink_venom):
		await service.start_listening(ROOM, PHONE, title, "BLACKPINK")
	for title in (pink_venom, shut_down, lovesick, pink_venom):
		await service.start_listening(ROOM, other_phone, title, "BLACKPINK")
	clock.advance(seconds=60)

	blocked = await service.try_count_stream(ROOM, PHONE)
	assert blocked.counted is False
	assert blocked.reason == policy.REASON_INTERLEAVE

	allowed = await service.try_count_stream(ROOM, other_phone)
	assert allowed.counted is True
	assert allowed.platform == tracks.YOUTUBE
