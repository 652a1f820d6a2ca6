"""Member race: four lanes advanced only by counted streams of each lane's songs."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from streamroom.domain.errors import MiniEventError
from streamroom.domain.events import models, schemas
from streamroom.domain.events.lifecycle import MiniEventLifecycle, clamp_cooldown, clamp_duration
from streamroom.domain.streams import tracks
from streamroom.domain.streams.models import StreamCount


MIN_ONLINE = 2
MIN_TARGET = 3
STREAMS_PER_ONLINE = 3
BASE_POINTS = 3
WINNER_BONUS = 5
OT4 = "ot4"

EVENT_START = "race_start"
EVENT_JOIN = "race_join"
EVENT_PROGRESS = "race_progress"
EVENT_FINISH = "race_finish"
EVENT_FAILED = "race_failed"


def lane_for_bias(bias: Optional[str]) -> Optional[str]:
	if not bias:
		return None
	value = bias.strip().lower().replace("é", "e")
	if value == OT4 or value in models.MEMBERS:
		return value
	return None


def _song_pairs(lane: models.Lane) -> List[Tuple[str, str]]:
	return [(song.name, song.artist) for song in lane.songs]


class RaceService(MiniEventLifecycle):
	kind = models.RACE
	default_cooldown = timedelta(hours=2)
	default_duration = timedelta(minutes=30)

	async def start(
		self,
		room_id: str,
		lane_songs: Dict[str, List[models.Song]],
		*,
		cooldown: Optional[timedelta] = None,
		duration: Optional[timedelta] = None,
	) -> Optional[str]:
		unknown = sorted(set(lane_songs) - set(models.MEMBERS))
		if unknown:
			raise MiniEventError("invalid_lane", status_code=422, message=f"unknown lane: {', '.join(unknown)}")
		cooldown = clamp_cooldown(cooldown, self.default_cooldown)
		duration = clamp_duration(duration, self.default_duration)
		if not await self._cooldown_elapsed(room_id, cooldown):
			return None
		online = len(await self._participants.online_participants(room_id))
		if online < MIN_ONLINE:
			self._reject(room_id, "not_enough_online")
			return None
		target = max(MIN_TARGET, online * STREAMS_PER_ONLINE)
		lanes = {member: models.Lane(songs=list(lane_songs.get(member, []))) for member in models.MEMBERS}

		event = await self._open(room_id, models.RacePayload(target=target, lanes=lanes), cooldown=cooldown, duration=duration)
		if event is None:
			return None
		await self._broadcaster.publish(
			room_id,
			EVENT_START,
			{
				"event_id": event.id,
				"target": target,
				"started_at": event.started_at.isoformat(),
				"ends_at": event.ends_at.isoformat(),
				"lanes": {m: [s.model_dump() for s in lane.songs] for m, lane in lanes.items()},
			},
		)
		return event.id

	async def join(self, room_id: str, event_id: str, phone_number: str) -> Optional[schemas.RaceJoinResult]:
		"""Join the lane picked by the caller's bias and current track."""
		event = await self.get(event_id)
		if not self._is_open(event) or event.room_id != room_id:
			return None
		participant = await self._participants.get(room_id, phone_number)
		user = await self._participants.get_profile(phone_number)
		if participant is None or user is None:
			return None
		bias = lane_for_bias(user.bias)
		playing = await self.now_playing(room_id, phone_number)
		if bias is None or playing is None:
			return None
		lane = _pick_lane(event.payload, bias, playing.name, playing.artist)
		if lane is None:
			return None
		entry = models.LaneEntry(
			phone_number=phone_number,
			username=participant.username,
			avatar_color=participant.avatar_color,
			profile_picture=participant.profile_picture or user.profile_picture,
		)

		def _apply(current: models.MiniEvent) -> Optional[str]:
			if not self._is_open(current):
				return None
			payload: models.RacePayload = current.payload  # type: ignore[assignment]
			if payload.winner is not None or payload.lane_of(phone_number) is not None:
				return None
			payload.lanes[lane].participants.append(entry)
			return lane

		if await self._repo.update(event_id, _apply) is None:
			return None
		await self._broadcaster.publish(
			room_id,
			EVENT_JOIN,
			{"event_id": event_id, "member": lane, **entry.model_dump(mode="json")},
		)
		return schemas.RaceJoinResult(lane=lane)

	async def on_stream_counted(self, count: StreamCount) -> None:
		"""Stream listener: advance the counting user's lane in any open race of that room."""
		for event in await self._repo.list_active(count.room_id, self.kind):
			if self._is_open(event):
				await self.add_stream(event.id, count)

	async def add_stream(self, event_id: str, count: StreamCount) -> Optional[schemas.RaceProgress]:
		def _apply(current: models.MiniEvent) -> Optional[schemas.RaceProgress]:
			if not self._is_open(current):
				return None
			payload: models.RacePayload = current.payload  # type: ignore[assignment]
			if payload.winner is not None:
				return None
			member = payload.lane_of(count.phone_number)
			if member is None:
				return None
			lane = payload.lanes[member]
			if not tracks.matches_any(count.track_name, count.track_artist, _song_pairs(lane)):
				return None
			lane.streams += 1
			if lane.streams >= payload.target:
				payload.winner = member
			return schemas.RaceProgress(
				lane=member,
				streams=lane.streams,
				finished=payload.winner is not None,
				winner=payload.winner,
			)

		progress = await self._repo.update(event_id, _apply)
		if progress is None:
			return None
		if progress.finished:
			await self._close(event_id, _finish_when_won)
			return progress
		event = await self._repo.get(event_id)
		payload: models.RacePayload = event.payload  # type: ignore[assignment]
		await self._broadcaster.publish(
			count.room_id,
			EVENT_PROGRESS,
			{
				"event_id": event_id,
				"member": progress.lane,
				"streams": {m: lane.streams for m, lane in payload.lanes.items()},
				"target": payload.target,
			},
		)
		return progress

	async def end(self, room_id: str, event_id: str) -> Optional[schemas.EventOutcome]:
		"""Deadline path: a race nobody won by the deadline fails."""
		event = await self.get(event_id)
		if event is None or event.room_id != room_id:
			return None
		closed = await self._close(event_id, _finish_when_won) or await self._fail_if_due(event_id)
		if closed is None:
			return None
		return schemas.EventOutcome(status=closed.status, winner=closed.payload.winner)

	def awards(self, event: models.MiniEvent) -> Dict[str, int]:
		payload: models.RacePayload = event.payload  # type: ignore[assignment]
		points: Dict[str, int] = {}
		for member, lane in payload.lanes.items():
			amount = BASE_POINTS + (WINNER_BONUS if member == payload.winner else 0)
			for entry in lane.participants:
				points[entry.phone_number] = amount
		return points

	def outcome(self, event: models.MiniEvent) -> Optional[Tuple[str, Dict[str, Any]]]:
		payload: models.RacePayload = event.payload  # type: ignore[assignment]
		data: Dict[str, Any] = {
			"event_id": event.id,
			"target": payload.target,
			"lanes": {m: lane.model_dump(mode="json") for m, lane in payload.lanes.items()},
		}
		if event.status == models.FINISHED:
			return EVENT_FINISH, {**data, "winner": payload.winner}
		return EVENT_FAILED, data


def _pick_lane(payload: models.RacePayload, bias: str, name: str, artist: str) -> Optional[str]:
	if bias == OT4:
		for member in models.MEMBERS:
			if tracks.matches_any(name, artist, _song_pairs(payload.lanes[member])):
				return member
		return None
	if tracks.matches_any(name, artist, _song_pairs(payload.lanes[bias])):
		return bias
	return None


def _finish_when_won(event: models.MiniEvent) -> Optional[str]:
	payload: models.RacePayload = event.payload  # type: ignore[assignment]
	return models.FINISHED if payload.winner is not None else None
