"""Run the playlist: a personal, ordered four-song challenge with no deadline.

Listen progress is read from the runner's listening session rather than
reported by the client. Seconds from an earlier session of the same song are
banked so a restart does not reset the song.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from streamroom.domain.errors import MiniEventError
from streamroom.domain.events import models, schemas
from streamroom.domain.events.lifecycle import MiniEventLifecycle, clamp_cooldown
from streamroom.domain.streams import tracks

PLAYLIST_POINTS = 5
NUM_SONGS = 4
YOUTUBE_REQUIRED_SECONDS = 60
DEFAULT_REQUIRED_SECONDS = 30

EVENT_COMPLETE = "playlist_run_complete"


def required_seconds(platform: str) -> int:
	return YOUTUBE_REQUIRED_SECONDS if platform == tracks.YOUTUBE else DEFAULT_REQUIRED_SECONDS


class PlaylistRunService(MiniEventLifecycle):
	kind = models.PLAYLIST_RUN
	default_cooldown = timedelta(hours=1)
	default_duration = None

	async def start(
		self,
		room_id: str,
		phone_number: str,
		songs: List[models.Song],
		*,
		cooldown: Optional[timedelta] = None,
	) -> Optional[str]:
		if len(songs) != NUM_SONGS:
			raise MiniEventError("invalid_playlist", status_code=422, message=f"a playlist run needs exactly {NUM_SONGS} songs")
		participant = await self._participants.require(room_id, phone_number)
		cooldown = clamp_cooldown(cooldown, self.default_cooldown)
		if await self._repo.list_active(room_id, self.kind, phone_number=phone_number):
			self._reject(room_id, "already_active")
			return None
		if not await self._cooldown_elapsed(room_id, cooldown, phone_number=phone_number):
			return None
		entries = [
			models.PlaylistSong(name=song.name, artist=song.artist, status="active" if index == 0 else "pending")
			for index, song in enumerate(songs)
		]
		payload = models.PlaylistRunPayload(username=participant.username, songs=entries)
		# personal event: the start is not announced to the room
		event = await self._open(room_id, payload, cooldown=cooldown, duration=None, phone_number=phone_number)
		return event.id if event is not None else None

	async def update_progress(self, room_id: str, event_id: str, phone_number: str) -> Optional[schemas.PlaylistProgress]:
		"""Persist listen progress for the active song from the runner's session."""
		return await self._progress(room_id, event_id, phone_number, advance=False)

	async def advance(self, room_id: str, event_id: str, phone_number: str) -> Optional[schemas.PlaylistProgress]:
		"""Complete the active song once its requirement is met and move to the next one."""
		progress = await self._progress(room_id, event_id, phone_number, advance=True)
		if progress is not None and progress.songs_remaining == 0:
			await self._close(event_id, _complete_when_done)
		return progress

	async def _progress(
		self,
		room_id: str,
		event_id: str,
		phone_number: str,
		*,
		advance: bool,
	) -> Optional[schemas.PlaylistProgress]:
		event = await self.get(event_id)
		if not self._is_open(event) or event.room_id != room_id or event.phone_number != phone_number:
			return None
		playing = await self.now_playing(room_id, phone_number)
		if playing is None or playing.session is None:
			return None
		session = playing.session
		now = self._clock.now()

		def _apply(current: models.MiniEvent) -> Optional[schemas.PlaylistProgress]:
			if not self._is_open(current):
				return None
			payload: models.PlaylistRunPayload = current.payload  # type: ignore[assignment]
			if payload.current_index >= len(payload.songs):
				return None
			song = payload.songs[payload.current_index]
			if song.status != "active" or not playing.matches(song.name, song.artist):
				return None
			if song.session_id != session.id:
				song.banked_seconds = song.listened_seconds
				song.session_id = session.id
			song.listened_seconds = max(song.listened_seconds, song.banked_seconds + session.elapsed_seconds(now))
			song.platform = session.platform
			song.required_seconds = required_seconds(session.platform)
			if advance:
				if song.listened_seconds < song.required_seconds:
					return None
				song.status = "completed"
				song.completed_at = now
				payload.current_index += 1
				if payload.current_index < len(payload.songs):
					payload.songs[payload.current_index].status = "active"
			return schemas.PlaylistProgress(
				current_index=payload.current_index,
				song_status=song.status,
				listened_seconds=song.listened_seconds,
				required_seconds=song.required_seconds,
				songs_remaining=len(payload.songs) - payload.current_index,
			)

		return await self._repo.update(event_id, _apply)

	async def quit(self, room_id: str, event_id: str, phone_number: str) -> Optional[schemas.EventOutcome]:
		event = await self.get(event_id)
		if event is None or event.room_id != room_id or event.phone_number != phone_number:
			return None
		closed = await self._close(event_id, lambda _: models.QUIT)
		if closed is None:
			return None
		return schemas.EventOutcome(status=closed.status)

	def awards(self, event: models.MiniEvent) -> Dict[str, int]:
		return {event.phone_number: PLAYLIST_POINTS} if event.phone_number else {}

	def outcome(self, event: models.MiniEvent) -> Optional[Tuple[str, Dict[str, Any]]]:
		if event.status != models.COMPLETED:
			return None
		payload: models.PlaylistRunPayload = event.payload  # type: ignore[assignment]
		return EVENT_COMPLETE, {
			"event_id": event.id,
			"phone_number": event.phone_number,
			"username": payload.username,
			"points": PLAYLIST_POINTS,
		}


def _complete_when_done(event: models.MiniEvent) -> Optional[str]:
	payload: models.PlaylistRunPayload = event.payload  # type: ignore[assignment]
	return models.COMPLETED if payload.all_completed() else None
