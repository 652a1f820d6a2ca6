"""Mini-event envelope and the per-variant payloads it carries.

Every event shares one envelope (status, timing, award flag); what differs per
kind lives in a typed payload selected by `kind`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field

MAP_FILL = "map_fill"
LISTEN_ALONG = "listen_along"
RACE = "race"
PLAYLIST_RUN = "playlist_run"

ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"
QUIT = "quit"
FINISHED = "finished"
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, QUIT, FINISHED})

MEMBERS = ("jisoo", "jennie", "rose", "lisa")

SongStatus = Literal["pending", "active", "completed"]


class Song(BaseModel):
	name: str = Field(min_length=1, max_length=300)
	artist: str = Field(default="", max_length=300)


class DistrictClaim(BaseModel):
	phone_number: str
	username: str
	profile_picture: Optional[str] = None
	filled_at: datetime


class MapFillPayload(BaseModel):
	song: Song
	chosen_districts: List[str]
	filled: Dict[str, DistrictClaim] = Field(default_factory=dict)

	def all_filled(self) -> bool:
		return bool(self.chosen_districts) and all(d in self.filled for d in self.chosen_districts)


class ListenAlongEntry(BaseModel):
	phone_number: str
	username: str
	avatar_color: Optional[str] = None
	track_name: str
	track_artist: str
	joined_at: datetime


class ListenAlongPayload(BaseModel):
	member: str
	song: Song
	participants: List[ListenAlongEntry] = Field(default_factory=list)

	def has(self, phone_number: str) -> bool:
		return any(p.phone_number == phone_number for p in self.participants)


class LaneEntry(BaseModel):
	phone_number: str
	username: str
	avatar_color: Optional[str] = None
	profile_picture: Optional[str] = None


class Lane(BaseModel):
	songs: List[Song] = Field(default_factory=list)
	streams: int = 0
	participants: List[LaneEntry] = Field(default_factory=list)


class RacePayload(BaseModel):
	target: int
	lanes: Dict[str, Lane]
	winner: Optional[str] = None

	def lane_of(self, phone_number: str) -> Optional[str]:
		for member, lane in self.lanes.items():
			if any(p.phone_number == phone_number for p in lane.participants):
				return member
		return None


class PlaylistSong(BaseModel):
	name: str
	artist: str
	status: SongStatus = "pending"
	platform: Optional[str] = None
	required_seconds: int = 0
	listened_seconds: int = 0
	# listened_seconds = banked_seconds + elapsed time of session_id
	banked_seconds: int = 0
	session_id: Optional[str] = None
	completed_at: Optional[datetime] = None


class PlaylistRunPayload(BaseModel):
	username: str
	songs: List[PlaylistSong]
	current_index: int = 0

	def all_completed(self) -> bool:
		return all(song.status == "completed" for song in self.songs)


Payload = Union[MapFillPayload, ListenAlongPayload, RacePayload, PlaylistRunPayload]

PAYLOAD_TYPES: Dict[str, Type[BaseModel]] = {
	MAP_FILL: MapFillPayload,
	LISTEN_ALONG: ListenAlongPayload,
	RACE: RacePayload,
	PLAYLIST_RUN: PlaylistRunPayload,
}


@dataclass(slots=True)
class MiniEvent:
	id: str
	kind: str
	room_id: str
	status: str
	started_at: datetime
	payload: Payload
	ends_at: Optional[datetime] = None
	phone_number: Optional[str] = None
	points_awarded: bool = False

	@property
	def is_active(self) -> bool:
		return self.status == ACTIVE

	def expired(self, now: datetime, grace: timedelta = timedelta(0)) -> bool:
		return self.ends_at is not None and now > self.ends_at + grace

	def payload_json(self) -> Dict[str, Any]:
		return self.payload.model_dump(mode="json")

	def to_summary(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"kind": self.kind,
			"room_id": self.room_id,
			"phone_number": self.phone_number,
			"status": self.status,
			"started_at": self.started_at,
			"ends_at": self.ends_at,
			"points_awarded": self.points_awarded,
			"payload": self.payload_json(),
		}


def parse_payload(kind: str, data: Dict[str, Any]) -> Payload:
	payload_type = PAYLOAD_TYPES[kind]
	return payload_type.model_validate(data)  # type: ignore[return-value]
