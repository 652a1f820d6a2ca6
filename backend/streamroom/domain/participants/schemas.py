"""Pydantic schemas for users, participants and check-ins."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from streamroom.domain.participants import models


class ProfileUpdate(BaseModel):
	username: Optional[str] = Field(default=None, min_length=1, max_length=40)
	avatar_color: Optional[str] = Field(default=None, max_length=32)
	profile_picture: Optional[str] = Field(default=None, max_length=2048)
	bias: Optional[str] = Field(default=None, max_length=16)
	district: Optional[str] = Field(default=None, max_length=64)
	lat: Optional[float] = Field(default=None, ge=-90, le=90)
	lng: Optional[float] = Field(default=None, ge=-180, le=180)


class UserProfile(BaseModel):
	phone_number: str
	username: Optional[str] = None
	avatar_color: Optional[str] = None
	profile_picture: Optional[str] = None
	bias: Optional[str] = None
	district: Optional[str] = None
	registered_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, user: models.User) -> "UserProfile":
		return cls(
			phone_number=user.phone_number,
			username=user.username,
			avatar_color=user.avatar_color,
			profile_picture=user.profile_picture,
			bias=user.bias,
			district=user.district,
			registered_at=user.registered_at,
		)


class JoinRoomRequest(BaseModel):
	phone_number: str = Field(min_length=1, max_length=32)
	username: str = Field(min_length=1, max_length=40)
	avatar_color: str = Field(min_length=1, max_length=32)


class PhoneRequest(BaseModel):
	phone_number: str = Field(min_length=1, max_length=32)


class PresenceRequest(PhoneRequest):
	is_online: bool = True


class TrackPayload(BaseModel):
	name: str = Field(max_length=300)
	artist: str = Field(max_length=300)
	album_art: Optional[str] = Field(default=None, max_length=2048)
	now_playing: bool = False

	def to_model(self) -> models.CurrentTrack:
		return models.CurrentTrack(
			name=self.name,
			artist=self.artist,
			album_art=self.album_art,
			now_playing=self.now_playing,
		)


class TrackUpdateRequest(PhoneRequest):
	track: Optional[TrackPayload] = None


class TrackUpdateResult(BaseModel):
	changed: bool
	was_idle: bool


class MinutesRequest(PhoneRequest):
	total_minutes: int = Field(ge=0)


class MilestoneRequest(PhoneRequest):
	milestone: int = Field(ge=0)


class OkResult(BaseModel):
	success: bool


class ParticipantSummary(BaseModel):
	phone_number: str
	username: str
	avatar_color: str
	profile_picture: Optional[str] = None
	joined_at: datetime
	is_online: bool
	last_seen: Optional[datetime] = None
	total_minutes: int
	total_points: int
	bonus_points: int
	streak_minutes: int
	milestones: List[int] = Field(default_factory=list)
	current_track: Optional[TrackPayload] = None
	offline_tracking: bool
	last_check_in: Optional[datetime] = None

	@classmethod
	def from_model(cls, participant: models.Participant) -> "ParticipantSummary":
		track = participant.current_track
		return cls(
			phone_number=participant.phone_number,
			username=participant.username,
			avatar_color=participant.avatar_color,
			profile_picture=participant.profile_picture,
			joined_at=participant.joined_at,
			is_online=participant.is_online,
			last_seen=participant.last_seen,
			total_minutes=participant.total_minutes,
			total_points=participant.total_points,
			bonus_points=participant.bonus_points,
			streak_minutes=participant.streak_minutes,
			milestones=list(participant.milestones),
			current_track=TrackPayload(**track.to_dict()) if track else None,
			offline_tracking=participant.offline_tracking,
			last_check_in=participant.last_check_in,
		)


class DailyCheckinResult(BaseModel):
	already_checked_in: bool
	date_key: str


class DailyCheckin(BaseModel):
	date_key: str
	checked_in_at: datetime


class StreakResult(BaseModel):
	streak: int
