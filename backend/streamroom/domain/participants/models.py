"""Domain models for users, rooms and room participants."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class User:
	phone_number: str
	username: Optional[str] = None
	avatar_color: Optional[str] = None
	profile_picture: Optional[str] = None
	bias: Optional[str] = None
	district: Optional[str] = None
	lat: Optional[float] = None
	lng: Optional[float] = None
	registered_at: Optional[datetime] = None


@dataclass(slots=True)
class Room:
	room_id: str
	name: str
	type: str
	created_at: datetime


@dataclass(slots=True)
class CurrentTrack:
	name: str
	artist: str
	album_art: Optional[str] = None
	now_playing: bool = False

	def to_dict(self) -> Dict[str, Any]:
		return {
			"name": self.name,
			"artist": self.artist,
			"album_art": self.album_art,
			"now_playing": self.now_playing,
		}

	@classmethod
	def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["CurrentTrack"]:
		if not data:
			return None
		return cls(
			name=str(data.get("name") or ""),
			artist=str(data.get("artist") or ""),
			album_art=data.get("album_art"),
			now_playing=bool(data.get("now_playing", False)),
		)


@dataclass(slots=True)
class Participant:
	room_id: str
	phone_number: str
	username: str
	avatar_color: str
	joined_at: datetime
	profile_picture: Optional[str] = None
	is_online: bool = True
	last_seen: Optional[datetime] = None
	total_minutes: int = 0
	total_points: int = 0
	bonus_points: int = 0
	streak_minutes: int = 0
	milestones: List[int] = field(default_factory=list)
	current_track: Optional[CurrentTrack] = None
	offline_tracking: bool = False
	last_check_in: Optional[datetime] = None

	def is_present(self, now: datetime, stale_after: timedelta) -> bool:
		if not self.is_online or self.last_seen is None:
			return False
		return now - self.last_seen <= stale_after

	def is_now_playing(self) -> bool:
		return self.current_track is not None and self.current_track.now_playing
