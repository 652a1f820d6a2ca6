"""Append-only ledger of counted streams."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from streamroom.domain.streams import models
from streamroom.infra.postgres import PoolBackedRepository


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.counts: Dict[str, List[models.StreamCount]] = {}

	def reset(self) -> None:
		self._lock = asyncio.Lock()
		self.counts.clear()

	async def append(self, count: models.StreamCount) -> None:
		async with self._lock:
			self.counts.setdefault(count.room_id, []).append(count)

	async def list_room(self, room_id: str) -> List[models.StreamCount]:
		async with self._lock:
			return list(self.counts.get(room_id, []))


_MEMORY = _MemoryStore()


async def reset_memory_state() -> None:
	_MEMORY.reset()


def _row_to_count(row) -> models.StreamCount:
	return models.StreamCount(
		id=str(row["id"]),
		room_id=row["room_id"],
		phone_number=row["phone_number"],
		track_name=row["track_name"],
		track_artist=row["track_artist"],
		track_key=row["track_key"],
		platform=row["platform"],
		is_main_song=bool(row["is_main_song"]),
		counted_at=row["counted_at"],
		listen_duration=int(row["listen_duration"]),
	)


class StreamCountRepository(PoolBackedRepository):
	async def append(self, count: models.StreamCount) -> None:
		pool = await self._pool_or_none()
		if pool is None:
			await _MEMORY.append(count)
			return
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO stream_counts (
					id, room_id, phone_number, track_name, track_artist, track_key,
					platform, is_main_song, counted_at, listen_duration
				)
				VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10)
				""",
				count.id,
				count.room_id,
				count.phone_number,
				count.track_name,
				count.track_artist,
				count.track_key,
				count.platform,
				count.is_main_song,
				count.counted_at,
				count.listen_duration,
			)

	async def list_for_user(self, room_id: str, phone_number: str) -> List[models.StreamCount]:
		pool = await self._pool_or_none()
		if pool is None:
			return [c for c in await _MEMORY.list_room(room_id) if c.phone_number == phone_number]
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM stream_counts
				WHERE room_id=$1 AND phone_number=$2
				ORDER BY counted_at
				""",
				room_id,
				phone_number,
			)
		return [_row_to_count(row) for row in rows]

	async def list_for_room(self, room_id: str) -> List[models.StreamCount]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_room(room_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT * FROM stream_counts WHERE room_id=$1 ORDER BY counted_at",
				room_id,
			)
		return [_row_to_count(row) for row in rows]

	async def count_for_user_since(
		self,
		room_id: str,
		phone_number: str,
		*,
		platforms: Iterable[str],
		since: datetime,
	) -> int:
		wanted = tuple(platforms)
		pool = await self._pool_or_none()
		if pool is None:
			return sum(
				1
				for c in await _MEMORY.list_room(room_id)
				if c.phone_number == phone_number and c.platform in wanted and c.counted_at >= since
			)
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"""
				SELECT COUNT(*) FROM stream_counts
				WHERE room_id=$1 AND phone_number=$2 AND platform = ANY($3::text[]) AND counted_at >= $4
				""",
				room_id,
				phone_number,
				list(wanted),
				since,
			)
		return int(value or 0)

	async def latest_for_track(self, room_id: str, phone_number: str, track_key: str) -> Optional[models.StreamCount]:
		pool = await self._pool_or_none()
		if pool is None:
			matches = [
				c
				for c in await _MEMORY.list_room(room_id)
				if c.phone_number == phone_number and c.track_key == track_key
			]
			return max(matches, key=lambda c: c.counted_at) if matches else None
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT * FROM stream_counts
				WHERE room_id=$1 AND phone_number=$2 AND track_key=$3
				ORDER BY counted_at DESC
				LIMIT 1
				""",
				room_id,
				phone_number,
				track_key,
			)
		return _row_to_count(row) if row else None

	async def count_main_for_room(self, room_id: str) -> int:
		pool = await self._pool_or_none()
		if pool is None:
			return sum(1 for c in await _MEMORY.list_room(room_id) if c.is_main_song)
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"SELECT COUNT(*) FROM stream_counts WHERE room_id=$1 AND is_main_song",
				room_id,
			)
		return int(value or 0)

	async def platform_breakdown(self, room_id: str) -> List[Tuple[str, bool, str, int]]:
		"""Rows of (platform, is_main_song, track_artist, count) for a room."""
		pool = await self._pool_or_none()
		if pool is None:
			tally: Dict[Tuple[str, bool, str], int] = {}
			for c in await _MEMORY.list_room(room_id):
				bucket = (c.platform, c.is_main_song, c.track_artist)
				tally[bucket] = tally.get(bucket, 0) + 1
			return [(platform, main, artist, n) for (platform, main, artist), n in tally.items()]
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT platform, is_main_song, track_artist, COUNT(*) AS n
				FROM stream_counts
				WHERE room_id=$1
				GROUP BY platform, is_main_song, track_artist
				""",
				room_id,
			)
		return [(row["platform"], bool(row["is_main_song"]), row["track_artist"], int(row["n"])) for row in rows]
