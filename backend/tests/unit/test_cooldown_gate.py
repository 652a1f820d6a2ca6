import asyncio
from datetime import timedelta

import pytest

from streamroom.domain.events.cooldown import CooldownGate, marker_key

ROOM = "room-1"


@pytest.mark.asyncio
async def test_second_acquire_inside_window_fails(clock):
	gate = CooldownGate()
	window = timedelta(hours=1)
	assert await gate.try_acquire(ROOM, "race", now=clock.now(), cooldown=window) is True
	clock.advance(minutes=59)
	assert await gate.try_acquire(ROOM, "race", now=clock.now(), cooldown=window) is False
	clock.advance(minutes=1)
	assert await gate.try_acquire(ROOM, "race", now=clock.now(), cooldown=window) is True


@pytest.mark.asyncio
async def test_concurrent_acquires_admit_one(clock):
	gate = CooldownGate()
	results = await asyncio.gather(
		*[gate.try_acquire(ROOM, "map_fill", now=clock.now(), cooldown=timedelta(hours=1)) for _ in range(5)]
	)
	assert sorted(results) == [False, False, False, False, True]


@pytest.mark.asyncio
async def test_scopes_are_independent(clock):
	gate = CooldownGate()
	window = timedelta(hours=1)
	now = clock.now()
	assert await gate.try_acquire(ROOM, "playlist_run", now=now, cooldown=window, phone_number="+1") is True
	assert await gate.try_acquire(ROOM, "playlist_run", now=now, cooldown=window, phone_number="+2") is True
	assert await gate.try_acquire(ROOM, "race", now=now, cooldown=window) is True
	assert await gate.try_acquire("room-2", "race", now=now, cooldown=window) is True


@pytest.mark.asyncio
async def test_release_only_drops_own_marker(clock, fake_redis):
	gate = CooldownGate()
	window = timedelta(hours=1)
	first = clock.now()
	await gate.try_acquire(ROOM, "race", now=first, cooldown=window)

	await gate.release(ROOM, "race", now=first - timedelta(seconds=1))
	assert await fake_redis.get(marker_key(ROOM, "race")) == first.isoformat()

	await gate.release(ROOM, "race", now=first)
	assert await fake_redis.get(marker_key(ROOM, "race")) is None
	assert await gate.try_acquire(ROOM, "race", now=first, cooldown=window) is True


def test_marker_key_layout():
	assert marker_key("r", "race") == "me:last:r:race"
	assert marker_key("r", "playlist_run", "+1") == "me:last:r:playlist_run:+1"
