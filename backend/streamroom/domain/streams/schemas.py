"""Pydantic schemas for listening sessions and stream counting."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Platform = Literal["youtube", "spotify", "other"]
CountReason = Literal["no_session", "already_counted", "daily_cap", "too_short", "cooldown", "interleave"]


class StartListeningRequest(BaseModel):
	phone_number: str = Field(min_length=1, max_length=32)
	track_name: str = Field(min_length=1, max_length=300)
	track_artist: str = Field(default="", max_length=300)
	track_album_art: Optional[str] = Field(default=None, max_length=2048)


class StartListeningResult(BaseModel):
	action: Literal["started", "continued"]
	track_key: str
	platform: Platform


class PhoneRequest(BaseModel):
	phone_number: str = Field(min_length=1, max_length=32)


class CountResult(BaseModel):
	counted: bool
	reason: Optional[CountReason] = None
	seconds_remaining: Optional[int] = None
	platform: Optional[Platform] = None
	is_main_song: Optional[bool] = None
	points: Optional[int] = None
	track_name: Optional[str] = None
	track_artist: Optional[str] = None
	listen_duration: Optional[int] = None


class PlatformTotals(BaseModel):
	youtube: int = 0
	spotify: int = 0
	other: int = 0
	total: int = 0
	total_featured: int = 0
	total_other: int = 0
	total_all: int = 0


class TrackStreams(BaseModel):
	track_key: str
	track_name: str
	track_artist: str
	platform: Platform
	total_streams: int
	unique_listeners: int


class UserStream(BaseModel):
	track_name: str
	track_artist: str
	platform: Platform
	counted_at: datetime
	listen_duration: int


class UserStreams(BaseModel):
	total_streams: int
	streams: List[UserStream] = Field(default_factory=list)


class UserPoints(BaseModel):
	points: int
	stream_points: int
	checkin_bonus: int
	bonus_points: int
