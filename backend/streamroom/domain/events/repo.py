"""Persistence for mini-events.

`update` is the single write path for live events: it runs the caller's
mutator against a locked copy of the row so check-then-set decisions (joins,
progress, the award flag) cannot interleave.
"""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Callable, Dict, List, Optional, TypeVar

from streamroom.domain.events import models
from streamroom.infra.postgres import PoolBackedRepository

T = TypeVar("T")

Mutator = Callable[[models.MiniEvent], Optional[T]]


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.events: Dict[str, models.MiniEvent] = {}

	def reset(self) -> None:
		self._lock = asyncio.Lock()
		self.events.clear()


_MEMORY = _MemoryStore()


async def reset_memory_state() -> None:
	_MEMORY.reset()


def _row_to_event(row) -> models.MiniEvent:
	payload = row["payload"]
	data = json.loads(payload) if isinstance(payload, str) else dict(payload or {})
	return models.MiniEvent(
		id=str(row["id"]),
		kind=row["kind"],
		room_id=row["room_id"],
		status=row["status"],
		started_at=row["started_at"],
		ends_at=row["ends_at"],
		phone_number=row["phone_number"],
		points_awarded=bool(row["points_awarded"]),
		payload=models.parse_payload(row["kind"], data),
	)


def _scope_matches(event: models.MiniEvent, room_id: str, kind: str, phone_number: Optional[str]) -> bool:
	if event.room_id != room_id or event.kind != kind:
		return False
	return phone_number is None or event.phone_number == phone_number


class MiniEventRepository(PoolBackedRepository):
	async def create(self, event: models.MiniEvent) -> models.MiniEvent:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				_MEMORY.events[event.id] = copy.deepcopy(event)
			return event
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO mini_events (
					id, kind, room_id, phone_number, status, started_at, ends_at, points_awarded, payload
				)
				VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9)
				""",
				event.id,
				event.kind,
				event.room_id,
				event.phone_number,
				event.status,
				event.started_at,
				event.ends_at,
				event.points_awarded,
				json.dumps(event.payload_json()),
			)
		return event

	async def get(self, event_id: str) -> Optional[models.MiniEvent]:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				event = _MEMORY.events.get(event_id)
				return copy.deepcopy(event) if event else None
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM mini_events WHERE id=$1", event_id)
		return _row_to_event(row) if row else None

	async def latest(self, room_id: str, kind: str, *, phone_number: Optional[str] = None) -> Optional[models.MiniEvent]:
		"""Most recently started event of a kind in a room (optionally for one user)."""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				matches = [e for e in _MEMORY.events.values() if _scope_matches(e, room_id, kind, phone_number)]
				if not matches:
					return None
				return copy.deepcopy(max(matches, key=lambda e: e.started_at))
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT * FROM mini_events
				WHERE room_id=$1 AND kind=$2 AND ($3::text IS NULL OR phone_number=$3)
				ORDER BY started_at DESC
				LIMIT 1
				""",
				room_id,
				kind,
				phone_number,
			)
		return _row_to_event(row) if row else None

	async def list_active(self, room_id: str, kind: str, *, phone_number: Optional[str] = None) -> List[models.MiniEvent]:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				found = [
					copy.deepcopy(e)
					for e in _MEMORY.events.values()
					if _scope_matches(e, room_id, kind, phone_number) and e.status == models.ACTIVE
				]
			return sorted(found, key=lambda e: e.started_at, reverse=True)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM mini_events
				WHERE room_id=$1 AND kind=$2 AND status='active'
					AND ($3::text IS NULL OR phone_number=$3)
				ORDER BY started_at DESC
				""",
				room_id,
				kind,
				phone_number,
			)
		return [_row_to_event(row) for row in rows]

	async def update(self, event_id: str, mutator: Mutator) -> Optional[T]:
		"""Atomically apply `mutator`; a None result discards the working copy."""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				stored = _MEMORY.events.get(event_id)
				if stored is None:
					return None
				working = copy.deepcopy(stored)
				result = mutator(working)
				if result is not None:
					_MEMORY.events[event_id] = working
				return result
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow("SELECT * FROM mini_events WHERE id=$1 FOR UPDATE", event_id)
				if row is None:
					return None
				working = _row_to_event(row)
				result = mutator(working)
				if result is not None:
					await conn.execute(
						"""
						UPDATE mini_events
						SET status=$2, ends_at=$3, points_awarded=$4, payload=$5
						WHERE id=$1
						""",
						working.id,
						working.status,
						working.ends_at,
						working.points_awarded,
						json.dumps(working.payload_json()),
					)
				return result
