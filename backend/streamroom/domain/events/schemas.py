"""Request/response schemas for the mini-event routes."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from streamroom.domain.events import models


class TimingOverrides(BaseModel):
	cooldown_ms: Optional[int] = Field(default=None, ge=0)
	duration_ms: Optional[int] = Field(default=None, ge=0)

	def cooldown(self) -> Optional[timedelta]:
		return timedelta(milliseconds=self.cooldown_ms) if self.cooldown_ms is not None else None

	def duration(self) -> Optional[timedelta]:
		return timedelta(milliseconds=self.duration_ms) if self.duration_ms is not None else None


class MapFillStartRequest(TimingOverrides):
	song_name: str = Field(min_length=1, max_length=300)
	song_artist: str = Field(default="", max_length=300)


class ListenAlongStartRequest(TimingOverrides):
	song_name: str = Field(min_length=1, max_length=300)
	song_artist: str = Field(default="", max_length=300)
	member: Optional[str] = Field(default=None, max_length=32)


class RaceStartRequest(TimingOverrides):
	lanes: Dict[str, List[models.Song]] = Field(default_factory=dict)


class PlaylistRunStartRequest(BaseModel):
	phone_number: str = Field(min_length=1, max_length=32)
	songs: List[models.Song]
	cooldown_ms: Optional[int] = Field(default=None, ge=0)

	def cooldown(self) -> Optional[timedelta]:
		return timedelta(milliseconds=self.cooldown_ms) if self.cooldown_ms is not None else None


class JoinRequest(BaseModel):
	phone_number: str = Field(min_length=1, max_length=32)


class StartResult(BaseModel):
	event_id: Optional[str] = None


class FillResult(BaseModel):
	district: str
	filled_count: int
	total: int


class RaceJoinResult(BaseModel):
	lane: str


class RaceProgress(BaseModel):
	lane: str
	streams: int
	finished: bool
	winner: Optional[str] = None


class PlaylistProgress(BaseModel):
	current_index: int
	song_status: str
	listened_seconds: int
	required_seconds: int
	songs_remaining: int


class EventOutcome(BaseModel):
	status: str
	points_each: Optional[int] = None
	participant_count: Optional[int] = None
	filled_count: Optional[int] = None
	total: Optional[int] = None
	winner: Optional[str] = None


class MiniEventView(BaseModel):
	id: str
	kind: str
	room_id: str
	phone_number: Optional[str] = None
	status: str
	started_at: datetime
	ends_at: Optional[datetime] = None
	points_awarded: bool
	payload: Dict[str, Any]

	@classmethod
	def from_model(cls, event: models.MiniEvent) -> "MiniEventView":
		return cls(**event.to_summary())
