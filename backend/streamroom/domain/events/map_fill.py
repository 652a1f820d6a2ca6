"""Fill the map: members in the chosen districts each claim theirs by playing the song."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from streamroom.domain.events import models, schemas
from streamroom.domain.events.lifecycle import MiniEventLifecycle, clamp_cooldown, clamp_duration

FILL_POINTS = 8
NUM_DISTRICTS = 3
MIN_ONLINE = 2

EVENT_START = "fill_map_start"
EVENT_FILL = "fill_map_fill"
EVENT_COMPLETE = "fill_map_complete"
EVENT_FAILED = "fill_map_failed"


class MapFillService(MiniEventLifecycle):
	kind = models.MAP_FILL
	default_cooldown = timedelta(hours=1)
	default_duration = timedelta(minutes=3)

	async def start(
		self,
		room_id: str,
		song: models.Song,
		*,
		cooldown: Optional[timedelta] = None,
		duration: Optional[timedelta] = None,
	) -> Optional[str]:
		cooldown = clamp_cooldown(cooldown, self.default_cooldown)
		duration = clamp_duration(duration, self.default_duration)
		if not await self._cooldown_elapsed(room_id, cooldown):
			return None
		if len(await self._participants.online_participants(room_id)) < MIN_ONLINE:
			self._reject(room_id, "not_enough_online")
			return None
		# offline members' districts are eligible too
		everyone = await self._participants.list_by_room(room_id)
		profiles = await self._participants.profiles_for(everyone)
		districts = sorted({user.district for user in profiles.values() if user.district})
		if len(districts) < NUM_DISTRICTS:
			self._reject(room_id, "not_enough_districts")
			return None
		chosen = self._rng.sample(districts, NUM_DISTRICTS)

		payload = models.MapFillPayload(song=song, chosen_districts=chosen)
		event = await self._open(room_id, payload, cooldown=cooldown, duration=duration)
		if event is None:
			return None
		await self._broadcaster.publish(
			room_id,
			EVENT_START,
			{
				"event_id": event.id,
				"song_name": song.name,
				"song_artist": song.artist,
				"chosen_districts": chosen,
				"ends_at": event.ends_at.isoformat(),
				"duration_ms": int(duration.total_seconds() * 1000),
			},
		)
		return event.id

	async def fill(self, room_id: str, event_id: str, phone_number: str) -> Optional[schemas.FillResult]:
		"""Claim the caller's district; None when the claim is not possible."""
		event = await self.get(event_id)
		if not self._is_open(event) or event.room_id != room_id:
			return None
		user = await self._participants.get_profile(phone_number)
		participant = await self._participants.get(room_id, phone_number)
		if user is None or not user.district or participant is None:
			return None
		song = event.payload.song
		playing = await self.now_playing(room_id, phone_number)
		if playing is None or not playing.matches(song.name, song.artist):
			return None

		district = user.district
		now = self._clock.now()
		claim = models.DistrictClaim(
			phone_number=phone_number,
			username=participant.username,
			profile_picture=participant.profile_picture or user.profile_picture,
			filled_at=now,
		)

		def _apply(current: models.MiniEvent) -> Optional[schemas.FillResult]:
			if not self._is_open(current):
				return None
			payload: models.MapFillPayload = current.payload  # type: ignore[assignment]
			if district not in payload.chosen_districts or district in payload.filled:
				return None
			payload.filled[district] = claim
			return schemas.FillResult(
				district=district,
				filled_count=len(payload.filled),
				total=len(payload.chosen_districts),
			)

		result = await self._repo.update(event_id, _apply)
		if result is None:
			return None
		await self._broadcaster.publish(
			room_id,
			EVENT_FILL,
			{
				"event_id": event_id,
				"district": district,
				"phone_number": phone_number,
				"username": claim.username,
				"profile_picture": claim.profile_picture,
			},
		)
		if result.filled_count >= result.total:
			await self._close(event_id, _complete_when_filled)
		return result

	async def end(self, room_id: str, event_id: str) -> Optional[schemas.EventOutcome]:
		"""Deadline path: complete if every district is filled, otherwise fail once the time is up."""
		event = await self.get(event_id)
		if event is None or event.room_id != room_id:
			return None
		now = self._clock.now()

		def _decide(current: models.MiniEvent) -> Optional[str]:
			status = _complete_when_filled(current)
			if status is not None:
				return status
			if current.ends_at is not None and now >= current.ends_at:
				return models.FAILED
			return None

		closed = await self._close(event_id, _decide)
		if closed is None:
			return None
		payload: models.MapFillPayload = closed.payload  # type: ignore[assignment]
		return schemas.EventOutcome(
			status=closed.status,
			points_each=FILL_POINTS if closed.status == models.COMPLETED else 0,
			filled_count=len(payload.filled),
			total=len(payload.chosen_districts),
		)

	def awards(self, event: models.MiniEvent) -> Dict[str, int]:
		payload: models.MapFillPayload = event.payload  # type: ignore[assignment]
		return {claim.phone_number: FILL_POINTS for claim in payload.filled.values()}

	def outcome(self, event: models.MiniEvent) -> Optional[Tuple[str, Dict[str, Any]]]:
		payload: models.MapFillPayload = event.payload  # type: ignore[assignment]
		filled = {district: claim.model_dump(mode="json") for district, claim in payload.filled.items()}
		if event.status == models.COMPLETED:
			return EVENT_COMPLETE, {
				"event_id": event.id,
				"filled_districts": filled,
				"points_each": FILL_POINTS,
				"fillers": [
					{"phone_number": c.phone_number, "username": c.username, "profile_picture": c.profile_picture}
					for c in payload.filled.values()
				],
			}
		return EVENT_FAILED, {
			"event_id": event.id,
			"filled_districts": filled,
			"filled_count": len(payload.filled),
			"total": len(payload.chosen_districts),
		}


def _complete_when_filled(event: models.MiniEvent) -> Optional[str]:
	payload: models.MapFillPayload = event.payload  # type: ignore[assignment]
	return models.COMPLETED if payload.all_filled() else None
