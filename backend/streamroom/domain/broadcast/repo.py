"""Persistence for broadcast events."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Dict, List, Optional

from streamroom.domain.broadcast import models
from streamroom.infra.postgres import PoolBackedRepository


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.events: Dict[str, List[models.BroadcastEvent]] = {}

	def reset(self) -> None:
		self._lock = asyncio.Lock()
		self.events.clear()


_MEMORY = _MemoryStore()


async def reset_memory_state() -> None:
	_MEMORY.reset()


def _row_to_event(row) -> models.BroadcastEvent:
	data = row["data"]
	return models.BroadcastEvent(
		id=str(row["id"]),
		room_id=row["room_id"],
		type=row["type"],
		created_at=row["created_at"],
		data=json.loads(data) if isinstance(data, str) else dict(data or {}),
	)


class BroadcastRepository(PoolBackedRepository):
	async def insert(self, event: models.BroadcastEvent) -> models.BroadcastEvent:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				_MEMORY.events.setdefault(event.room_id, []).append(event)
			return event
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO broadcast_events (id, room_id, type, data, created_at)
				VALUES ($1,$2,$3,$4,$5)
				""",
				event.id,
				event.room_id,
				event.type,
				json.dumps(event.data, default=str),
				event.created_at,
			)
		return event

	async def insert_unless_recent(
		self,
		event: models.BroadcastEvent,
		*,
		since: datetime,
	) -> Optional[models.BroadcastEvent]:
		"""Insert unless an event of the same type landed in the room at or after `since`."""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				for existing in _MEMORY.events.get(event.room_id, []):
					if existing.type == event.type and existing.created_at >= since:
						return None
				_MEMORY.events.setdefault(event.room_id, []).append(event)
			return event
		async with pool.acquire() as conn:
			async with conn.transaction():
				# Serialise dedup checks per (room, type) for the life of the transaction
				await conn.execute(
					"SELECT pg_advisory_xact_lock(hashtext($1))",
					f"{event.room_id}:{event.type}",
				)
				recent = await conn.fetchval(
					"""
					SELECT 1 FROM broadcast_events
					WHERE room_id=$1 AND type=$2 AND created_at >= $3
					LIMIT 1
					""",
					event.room_id,
					event.type,
					since,
				)
				if recent:
					return None
				await conn.execute(
					"""
					INSERT INTO broadcast_events (id, room_id, type, data, created_at)
					VALUES ($1,$2,$3,$4,$5)
					""",
					event.id,
					event.room_id,
					event.type,
					json.dumps(event.data, default=str),
					event.created_at,
				)
		return event

	async def list_since(self, room_id: str, since: datetime, *, limit: int = 200) -> List[models.BroadcastEvent]:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				events = [e for e in _MEMORY.events.get(room_id, []) if e.created_at >= since]
			return sorted(events, key=lambda e: e.created_at)[:limit]
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM broadcast_events
				WHERE room_id=$1 AND created_at >= $2
				ORDER BY created_at
				LIMIT $3
				""",
				room_id,
				since,
				limit,
			)
		return [_row_to_event(row) for row in rows]
