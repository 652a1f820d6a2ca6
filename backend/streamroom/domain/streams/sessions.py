"""Redis-backed tracker for what each room member is currently playing.

One session per (room, phone). Track switches replace the session and carry
the bounded history forward; read-modify-write runs inside WATCH/MULTI so two
concurrent reports for the same user cannot both win.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from streamroom.domain.streams import models, tracks
from streamroom.infra.clock import Clock, system_clock
from streamroom.infra.redis import redis_client
from streamroom.obs import metrics as obs_metrics
from streamroom.settings import settings

logger = logging.getLogger(__name__)

ACTION_STARTED = "started"
ACTION_CONTINUED = "continued"


def session_key(room_id: str, phone_number: str) -> str:
	return f"ls:{room_id}:{phone_number}"


@dataclass(frozen=True, slots=True)
class StartOutcome:
	action: str
	track_key: str
	platform: str


class ListeningSessionTracker:
	def __init__(self, *, clock: Clock | None = None, ttl_seconds: int | None = None) -> None:
		self._clock = clock or system_clock
		self._ttl_seconds = ttl_seconds or settings.session_ttl_seconds

	async def get(self, room_id: str, phone_number: str) -> Optional[models.ListeningSession]:
		raw = await redis_client.get(session_key(room_id, phone_number))
		if not raw:
			return None
		return models.ListeningSession.from_json(raw)

	async def start(
		self,
		room_id: str,
		phone_number: str,
		track_name: str,
		track_artist: str,
		album_art: Optional[str] = None,
	) -> StartOutcome:
		key = session_key(room_id, phone_number)
		track_key = tracks.track_key(track_name, track_artist)
		platform = tracks.classify_platform(track_name, album_art)
		now = self._clock.now()

		async def _apply(pipe) -> str:
			raw = await pipe.get(key)
			existing = models.ListeningSession.from_json(raw) if raw else None
			if existing is not None and existing.track_key == track_key:
				return ACTION_CONTINUED
			history = existing.history_after_leaving() if existing is not None else models.new_history()
			session = models.ListeningSession(
				id=str(uuid.uuid4()),
				room_id=room_id,
				phone_number=phone_number,
				track_name=track_name,
				track_artist=track_artist,
				track_key=track_key,
				platform=platform,
				started_at=now,
				history=history,
				album_art=album_art,
			)
			pipe.multi()
			pipe.set(key, session.to_json(), ex=self._ttl_seconds)
			return ACTION_STARTED

		action = await redis_client.transaction(_apply, key, value_from_callable=True)
		obs_metrics.inc_listening_session(action, platform)
		return StartOutcome(action=action, track_key=track_key, platform=platform)

	async def stop(self, room_id: str, phone_number: str) -> None:
		await redis_client.delete(session_key(room_id, phone_number))

	async def mark_counted(self, session: models.ListeningSession) -> bool:
		"""Flip `counted` on the exact session instance; False if it was replaced or already counted."""
		key = session_key(session.room_id, session.phone_number)

		async def _apply(pipe) -> bool:
			raw = await pipe.get(key)
			current = models.ListeningSession.from_json(raw) if raw else None
			if current is None or current.id != session.id or current.counted:
				return False
			current.counted = True
			pipe.multi()
			pipe.set(key, current.to_json(), ex=self._ttl_seconds)
			return True

		return await redis_client.transaction(_apply, key, value_from_callable=True)

	async def unmark_counted(self, session: models.ListeningSession) -> bool:
		"""Release a claim taken by `mark_counted` when the count could not be stored."""
		key = session_key(session.room_id, session.phone_number)

		async def _apply(pipe) -> bool:
			raw = await pipe.get(key)
			current = models.ListeningSession.from_json(raw) if raw else None
			if current is None or current.id != session.id or not current.counted:
				return False
			current.counted = False
			pipe.multi()
			pipe.set(key, current.to_json(), ex=self._ttl_seconds)
			return True

		released = await redis_client.transaction(_apply, key, value_from_callable=True)
		logger.warning(
			"listening_count_released",
			extra={"room": session.room_id, "phone_number": session.phone_number, "released": released},
		)
		return released
