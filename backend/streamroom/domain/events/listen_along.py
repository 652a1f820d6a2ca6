"""Listen along: everyone playing the themed song before the timer runs out scores."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from streamroom.domain.events import models, schemas
from streamroom.domain.events.lifecycle import MiniEventLifecycle, clamp_cooldown, clamp_duration

MIN_LISTENERS = 2

EVENT_START = "listen_along_start"
EVENT_JOIN = "listen_along_join"
EVENT_END = "listen_along_end"


class ListenAlongService(MiniEventLifecycle):
	kind = models.LISTEN_ALONG
	default_cooldown = timedelta(hours=1)
	default_duration = timedelta(minutes=3)

	async def start(
		self,
		room_id: str,
		song: models.Song,
		*,
		member: Optional[str] = None,
		cooldown: Optional[timedelta] = None,
		duration: Optional[timedelta] = None,
	) -> Optional[str]:
		cooldown = clamp_cooldown(cooldown, self.default_cooldown)
		duration = clamp_duration(duration, self.default_duration)
		if not await self._cooldown_elapsed(room_id, cooldown):
			return None
		listeners = [p for p in await self._participants.list_by_room(room_id) if p.is_now_playing()]
		if len(listeners) < MIN_LISTENERS:
			self._reject(room_id, "not_enough_listeners")
			return None
		member = member or self._rng.choice(models.MEMBERS)

		payload = models.ListenAlongPayload(member=member, song=song)
		event = await self._open(room_id, payload, cooldown=cooldown, duration=duration)
		if event is None:
			return None
		await self._broadcaster.publish(
			room_id,
			EVENT_START,
			{
				"event_id": event.id,
				"member": member,
				"song_name": song.name,
				"song_artist": song.artist,
				"ends_at": event.ends_at.isoformat(),
				"duration_ms": int(duration.total_seconds() * 1000),
			},
		)
		return event.id

	async def join(self, room_id: str, event_id: str, phone_number: str) -> Optional[bool]:
		"""True when the caller was added; None for duplicates, wrong song or a closed event."""
		event = await self.get(event_id)
		if not self._is_open(event) or event.room_id != room_id:
			return None
		participant = await self._participants.get(room_id, phone_number)
		if participant is None:
			return None
		song = event.payload.song
		playing = await self.now_playing(room_id, phone_number)
		if playing is None or not playing.matches(song.name, song.artist):
			return None
		entry = models.ListenAlongEntry(
			phone_number=phone_number,
			username=participant.username,
			avatar_color=participant.avatar_color,
			track_name=playing.name,
			track_artist=playing.artist,
			joined_at=self._clock.now(),
		)

		def _apply(current: models.MiniEvent) -> Optional[bool]:
			if not self._is_open(current):
				return None
			payload: models.ListenAlongPayload = current.payload  # type: ignore[assignment]
			if payload.has(phone_number):
				return None
			payload.participants.append(entry)
			return True

		if await self._repo.update(event_id, _apply) is None:
			return None
		await self._broadcaster.publish(
			room_id,
			EVENT_JOIN,
			{"event_id": event_id, **entry.model_dump(mode="json")},
		)
		return True

	async def end(self, room_id: str, event_id: str) -> Optional[schemas.EventOutcome]:
		"""Close after the deadline: completed when anyone joined, failed otherwise."""
		event = await self.get(event_id)
		if event is None or event.room_id != room_id:
			return None
		now = self._clock.now()

		def _decide(current: models.MiniEvent) -> Optional[str]:
			if current.ends_at is not None and now < current.ends_at:
				return None
			payload: models.ListenAlongPayload = current.payload  # type: ignore[assignment]
			return models.COMPLETED if payload.participants else models.FAILED

		closed = await self._close(event_id, _decide)
		if closed is None:
			return None
		count = len(closed.payload.participants)
		return schemas.EventOutcome(
			status=closed.status,
			points_each=count if closed.status == models.COMPLETED else 0,
			participant_count=count,
		)

	def awards(self, event: models.MiniEvent) -> Dict[str, int]:
		payload: models.ListenAlongPayload = event.payload  # type: ignore[assignment]
		points_each = len(payload.participants)
		return {p.phone_number: points_each for p in payload.participants}

	def outcome(self, event: models.MiniEvent) -> Optional[Tuple[str, Dict[str, Any]]]:
		payload: models.ListenAlongPayload = event.payload  # type: ignore[assignment]
		count = len(payload.participants)
		return EVENT_END, {
			"event_id": event.id,
			"status": event.status,
			"participants": [p.model_dump(mode="json") for p in payload.participants],
			"points_each": count if event.status == models.COMPLETED else 0,
		}
