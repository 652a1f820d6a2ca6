"""Persistence for users, rooms, room participants and daily check-ins."""

from __future__ import annotations

import asyncio
import copy
import json
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from streamroom.domain.participants import models
from streamroom.infra.postgres import PoolBackedRepository

T = TypeVar("T")

Mutator = Callable[[models.Participant], Optional[T]]


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.users: Dict[str, models.User] = {}
		self.rooms: Dict[str, models.Room] = {}
		self.participants: Dict[Tuple[str, str], models.Participant] = {}
		self.checkins: Dict[Tuple[str, str], datetime] = {}

	def reset(self) -> None:
		self._lock = asyncio.Lock()
		self.users.clear()
		self.rooms.clear()
		self.participants.clear()
		self.checkins.clear()


_MEMORY = _MemoryStore()


async def reset_memory_state() -> None:
	_MEMORY.reset()


def _row_to_user(row) -> models.User:
	return models.User(
		phone_number=row["phone_number"],
		username=row["username"],
		avatar_color=row["avatar_color"],
		profile_picture=row["profile_picture"],
		bias=row["bias"],
		district=row["district"],
		lat=row["lat"],
		lng=row["lng"],
		registered_at=row["registered_at"],
	)


def _row_to_participant(row) -> models.Participant:
	milestones = row["milestones"]
	track = row["current_track"]
	return models.Participant(
		room_id=row["room_id"],
		phone_number=row["phone_number"],
		username=row["username"],
		avatar_color=row["avatar_color"],
		joined_at=row["joined_at"],
		profile_picture=row["profile_picture"],
		is_online=bool(row["is_online"]),
		last_seen=row["last_seen"],
		total_minutes=int(row["total_minutes"]),
		total_points=int(row["total_points"]),
		bonus_points=int(row["bonus_points"]),
		streak_minutes=int(row["streak_minutes"]),
		milestones=list(json.loads(milestones) if isinstance(milestones, str) else milestones or []),
		current_track=models.CurrentTrack.from_dict(json.loads(track) if isinstance(track, str) else track),
		offline_tracking=bool(row["offline_tracking"]),
		last_check_in=row["last_check_in"],
	)


_PARTICIPANT_UPSERT = """
	INSERT INTO participants (
		room_id, phone_number, username, avatar_color, joined_at, profile_picture,
		is_online, last_seen, total_minutes, total_points, bonus_points, streak_minutes,
		milestones, current_track, offline_tracking, last_check_in
	)
	VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15,$16)
	ON CONFLICT (room_id, phone_number) DO UPDATE SET
		username=EXCLUDED.username,
		avatar_color=EXCLUDED.avatar_color,
		profile_picture=EXCLUDED.profile_picture,
		is_online=EXCLUDED.is_online,
		last_seen=EXCLUDED.last_seen,
		total_minutes=EXCLUDED.total_minutes,
		total_points=EXCLUDED.total_points,
		bonus_points=EXCLUDED.bonus_points,
		streak_minutes=EXCLUDED.streak_minutes,
		milestones=EXCLUDED.milestones,
		current_track=EXCLUDED.current_track,
		offline_tracking=EXCLUDED.offline_tracking,
		last_check_in=EXCLUDED.last_check_in
"""


_PARTICIPANT_INSERT = """
	INSERT INTO participants (
		room_id, phone_number, username, avatar_color, joined_at, profile_picture,
		is_online, last_seen, total_minutes, total_points, bonus_points, streak_minutes,
		milestones, current_track, offline_tracking, last_check_in
	)
	VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15,$16)
	ON CONFLICT (room_id, phone_number) DO NOTHING
"""


def _participant_args(p: models.Participant) -> tuple:
	return (
		p.room_id,
		p.phone_number,
		p.username,
		p.avatar_color,
		p.joined_at,
		p.profile_picture,
		p.is_online,
		p.last_seen,
		p.total_minutes,
		p.total_points,
		p.bonus_points,
		p.streak_minutes,
		json.dumps(p.milestones),
		json.dumps(p.current_track.to_dict()) if p.current_track else None,
		p.offline_tracking,
		p.last_check_in,
	)


class ParticipantsRepository(PoolBackedRepository):
	# --- users ---

	async def get_user(self, phone_number: str) -> Optional[models.User]:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				user = _MEMORY.users.get(phone_number)
				return copy.deepcopy(user) if user else None
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM users WHERE phone_number=$1", phone_number)
		return _row_to_user(row) if row else None

	async def get_users(self, phone_numbers: List[str]) -> Dict[str, models.User]:
		if not phone_numbers:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				return {
					phone: copy.deepcopy(_MEMORY.users[phone])
					for phone in phone_numbers
					if phone in _MEMORY.users
				}
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT * FROM users WHERE phone_number = ANY($1::text[])",
				list(phone_numbers),
			)
		return {row["phone_number"]: _row_to_user(row) for row in rows}

	async def save_user(self, user: models.User) -> models.User:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				_MEMORY.users[user.phone_number] = copy.deepcopy(user)
			return user
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO users (
					phone_number, username, avatar_color, profile_picture, bias, district, lat, lng, registered_at
				)
				VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9)
				ON CONFLICT (phone_number) DO UPDATE SET
					username=EXCLUDED.username,
					avatar_color=EXCLUDED.avatar_color,
					profile_picture=EXCLUDED.profile_picture,
					bias=EXCLUDED.bias,
					district=EXCLUDED.district,
					lat=EXCLUDED.lat,
					lng=EXCLUDED.lng
				""",
				user.phone_number,
				user.username,
				user.avatar_color,
				user.profile_picture,
				user.bias,
				user.district,
				user.lat,
				user.lng,
				user.registered_at,
			)
		return user

	# --- rooms ---

	async def ensure_room(self, room: models.Room) -> models.Room:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				existing = _MEMORY.rooms.get(room.room_id)
				if existing is None:
					_MEMORY.rooms[room.room_id] = room
					return room
				return existing
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO rooms (room_id, name, type, created_at)
				VALUES ($1,$2,$3,$4)
				ON CONFLICT (room_id) DO UPDATE SET room_id=EXCLUDED.room_id
				RETURNING *
				""",
				room.room_id,
				room.name,
				room.type,
				room.created_at,
			)
		return models.Room(room_id=row["room_id"], name=row["name"], type=row["type"], created_at=row["created_at"])

	# --- participants ---

	async def get(self, room_id: str, phone_number: str) -> Optional[models.Participant]:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				found = _MEMORY.participants.get((room_id, phone_number))
				return copy.deepcopy(found) if found else None
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"SELECT * FROM participants WHERE room_id=$1 AND phone_number=$2",
				room_id,
				phone_number,
			)
		return _row_to_participant(row) if row else None

	async def list_by_room(self, room_id: str) -> List[models.Participant]:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				return [copy.deepcopy(p) for (rid, _), p in _MEMORY.participants.items() if rid == room_id]
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM participants WHERE room_id=$1", room_id)
		return [_row_to_participant(row) for row in rows]

	async def insert_if_absent(self, participant: models.Participant) -> bool:
		"""Create the participant row; False when one already exists and was left untouched."""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				key = (participant.room_id, participant.phone_number)
				if key in _MEMORY.participants:
					return False
				_MEMORY.participants[key] = copy.deepcopy(participant)
				return True
		async with pool.acquire() as conn:
			status = await conn.execute(_PARTICIPANT_INSERT, *_participant_args(participant))
		return status.endswith(" 1")

	async def update(self, room_id: str, phone_number: str, mutator: Mutator) -> Optional[T]:
		"""Atomically read, mutate and store one participant.

		The mutator edits a working copy and returns a result; returning None
		leaves the stored row untouched.
		"""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				stored = _MEMORY.participants.get((room_id, phone_number))
				if stored is None:
					return None
				working = copy.deepcopy(stored)
				result = mutator(working)
				if result is not None:
					_MEMORY.participants[(room_id, phone_number)] = working
				return result
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					"SELECT * FROM participants WHERE room_id=$1 AND phone_number=$2 FOR UPDATE",
					room_id,
					phone_number,
				)
				if row is None:
					return None
				working = _row_to_participant(row)
				result = mutator(working)
				if result is not None:
					await conn.execute(_PARTICIPANT_UPSERT, *_participant_args(working))
				return result

	# --- daily check-ins ---

	async def add_checkin(self, phone_number: str, date_key: str, checked_in_at: datetime) -> bool:
		"""Record a calendar check-in; False when one already exists for that date."""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				key = (phone_number, date_key)
				if key in _MEMORY.checkins:
					return False
				_MEMORY.checkins[key] = checked_in_at
				return True
		async with pool.acquire() as conn:
			inserted = await conn.fetchval(
				"""
				INSERT INTO daily_checkins (phone_number, date_key, checked_in_at)
				VALUES ($1,$2,$3)
				ON CONFLICT (phone_number, date_key) DO NOTHING
				RETURNING 1
				""",
				phone_number,
				date_key,
				checked_in_at,
			)
		return inserted is not None

	async def list_checkins(self, phone_number: str) -> List[Tuple[str, datetime]]:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY._lock:
				return sorted((date_key, at) for (phone, date_key), at in _MEMORY.checkins.items() if phone == phone_number)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT date_key, checked_in_at FROM daily_checkins WHERE phone_number=$1 ORDER BY date_key",
				phone_number,
			)
		return [(row["date_key"], row["checked_in_at"]) for row in rows]
