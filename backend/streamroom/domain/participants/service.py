"""Room membership, presence snapshots, profiles and daily check-ins."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from streamroom.domain.errors import ParticipantError
from streamroom.domain.participants import models, schemas
from streamroom.domain.participants.repo import ParticipantsRepository
from streamroom.infra.clock import Clock, local_date_key, system_clock
from streamroom.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_ROOM_TYPE = "listening"


class ParticipantsService:
	def __init__(self, *, repository: ParticipantsRepository | None = None, clock: Clock | None = None) -> None:
		self._repo = repository or ParticipantsRepository()
		self._clock = clock or system_clock

	# --- rooms ---

	async def ensure_room(self, room_id: str, *, name: Optional[str] = None) -> models.Room:
		room = models.Room(
			room_id=room_id,
			name=name or room_id,
			type=DEFAULT_ROOM_TYPE,
			created_at=self._clock.now(),
		)
		return await self._repo.ensure_room(room)

	# --- profiles ---

	async def get_profile(self, phone_number: str) -> Optional[models.User]:
		return await self._repo.get_user(phone_number)

	async def upsert_profile(self, phone_number: str, payload: schemas.ProfileUpdate) -> models.User:
		user = await self._repo.get_user(phone_number)
		if user is None:
			user = models.User(phone_number=phone_number, registered_at=self._clock.now())
		for field_name, value in payload.model_dump(exclude_unset=True).items():
			setattr(user, field_name, value)
		return await self._repo.save_user(user)

	# --- membership ---

	async def join_room(
		self,
		room_id: str,
		phone_number: str,
		*,
		username: str,
		avatar_color: str,
	) -> models.Participant:
		user = await self._repo.get_user(phone_number)
		profile_picture = user.profile_picture if user else None
		now = self._clock.now()

		def _apply(participant: models.Participant) -> models.Participant:
			participant.username = username
			participant.avatar_color = avatar_color
			participant.profile_picture = profile_picture
			participant.is_online = True
			participant.last_seen = now
			return participant

		fresh = models.Participant(
			room_id=room_id,
			phone_number=phone_number,
			username=username,
			avatar_color=avatar_color,
			joined_at=now,
			profile_picture=profile_picture,
			last_seen=now,
		)
		if await self._repo.insert_if_absent(fresh):
			logger.info("participant_joined", extra={"room": room_id, "phone_number": phone_number})
		updated = await self._repo.update(room_id, phone_number, _apply)
		return updated if updated is not None else fresh

	async def leave_room(self, room_id: str, phone_number: str) -> bool:
		def _apply(participant: models.Participant) -> bool:
			if not participant.offline_tracking:
				participant.streak_minutes = 0
			participant.is_online = False
			return True

		return bool(await self._repo.update(room_id, phone_number, _apply))

	async def get(self, room_id: str, phone_number: str) -> Optional[models.Participant]:
		return await self._repo.get(room_id, phone_number)

	async def require(self, room_id: str, phone_number: str) -> models.Participant:
		participant = await self._repo.get(room_id, phone_number)
		if participant is None:
			raise ParticipantError("participant_not_found", status_code=404)
		return participant

	async def list_by_room(self, room_id: str) -> List[models.Participant]:
		participants = await self._repo.list_by_room(room_id)
		participants.sort(key=lambda p: (-p.total_points, -p.total_minutes, p.joined_at))
		return participants

	async def online_participants(self, room_id: str) -> List[models.Participant]:
		now = self._clock.now()
		stale_after = timedelta(seconds=settings.presence_stale_seconds)
		return [p for p in await self._repo.list_by_room(room_id) if p.is_present(now, stale_after)]

	async def profiles_for(self, participants: List[models.Participant]) -> Dict[str, models.User]:
		return await self._repo.get_users([p.phone_number for p in participants])

	# --- presence and playback snapshot ---

	async def set_presence(self, room_id: str, phone_number: str, *, is_online: bool) -> bool:
		now = self._clock.now()

		def _apply(participant: models.Participant) -> bool:
			participant.is_online = is_online
			participant.last_seen = now
			return True

		return bool(await self._repo.update(room_id, phone_number, _apply))

	async def update_track(
		self,
		room_id: str,
		phone_number: str,
		track: Optional[models.CurrentTrack],
	) -> schemas.TrackUpdateResult:
		"""Store the now-playing snapshot, writing only when something changed."""

		def _apply(participant: models.Participant) -> Optional[schemas.TrackUpdateResult]:
			previous = participant.current_track
			was_idle = previous is None or not previous.now_playing
			if track is None:
				if previous is None:
					return None
				participant.current_track = None
				return schemas.TrackUpdateResult(changed=True, was_idle=True)
			changed = previous is None or not (
				previous.name == track.name
				and previous.artist == track.artist
				and previous.now_playing == track.now_playing
			)
			if not changed:
				return None
			participant.current_track = track
			return schemas.TrackUpdateResult(changed=True, was_idle=was_idle)

		result = await self._repo.update(room_id, phone_number, _apply)
		if result is not None:
			return result
		participant = await self._repo.get(room_id, phone_number)
		if participant is None:
			return schemas.TrackUpdateResult(changed=False, was_idle=False)
		previous = participant.current_track
		return schemas.TrackUpdateResult(changed=False, was_idle=previous is None or not previous.now_playing)

	async def update_minutes(self, room_id: str, phone_number: str, total_minutes: int) -> bool:
		def _apply(participant: models.Participant) -> bool:
			participant.total_minutes = total_minutes
			return True

		return bool(await self._repo.update(room_id, phone_number, _apply))

	async def check_in(self, room_id: str, phone_number: str) -> bool:
		"""Enable offline tracking; the first check-in also unlocks the points bonus."""
		now = self._clock.now()

		def _apply(participant: models.Participant) -> bool:
			participant.offline_tracking = True
			participant.last_check_in = now
			return True

		return bool(await self._repo.update(room_id, phone_number, _apply))

	async def disable_offline_tracking(self, room_id: str, phone_number: str) -> bool:
		def _apply(participant: models.Participant) -> Optional[bool]:
			if not participant.offline_tracking:
				return None
			participant.offline_tracking = False
			return True

		return bool(await self._repo.update(room_id, phone_number, _apply))

	async def add_milestone(self, room_id: str, phone_number: str, milestone: int) -> bool:
		def _apply(participant: models.Participant) -> Optional[bool]:
			if milestone in participant.milestones:
				return None
			participant.milestones.append(milestone)
			return True

		return bool(await self._repo.update(room_id, phone_number, _apply))


class CheckinService:
	"""Calendar check-ins keyed by the local date."""

	def __init__(self, *, repository: ParticipantsRepository | None = None, clock: Clock | None = None) -> None:
		self._repo = repository or ParticipantsRepository()
		self._clock = clock or system_clock

	def _today(self) -> str:
		return local_date_key(self._clock.now(), settings.checkin_utc_offset_minutes)

	async def check_in(self, phone_number: str) -> schemas.DailyCheckinResult:
		date_key = self._today()
		inserted = await self._repo.add_checkin(phone_number, date_key, self._clock.now())
		return schemas.DailyCheckinResult(already_checked_in=not inserted, date_key=date_key)

	async def month(self, phone_number: str, month_prefix: str) -> List[schemas.DailyCheckin]:
		return [
			schemas.DailyCheckin(date_key=date_key, checked_in_at=at)
			for date_key, at in await self._repo.list_checkins(phone_number)
			if date_key.startswith(month_prefix)
		]

	async def streak(self, phone_number: str) -> int:
		dates = {date_key for date_key, _ in await self._repo.list_checkins(phone_number)}
		if not dates:
			return 0
		today = self._today()
		cursor = date.fromisoformat(today)
		if today not in dates:
			cursor -= timedelta(days=1)
		streak = 0
		while cursor.isoformat() in dates:
			streak += 1
			cursor -= timedelta(days=1)
		return streak
