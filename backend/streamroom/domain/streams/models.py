"""Domain models for listening sessions and counted streams."""

from __future__ import annotations

import json
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Iterable, Optional

HISTORY_LIMIT = 5


def new_history(keys: Iterable[str] = ()) -> Deque[str]:
	return deque(keys, maxlen=HISTORY_LIMIT)


@dataclass(slots=True)
class ListeningSession:
	id: str
	room_id: str
	phone_number: str
	track_name: str
	track_artist: str
	track_key: str
	platform: str
	started_at: datetime
	history: Deque[str] = field(default_factory=new_history)
	album_art: Optional[str] = None
	counted: bool = False

	def elapsed_seconds(self, now: datetime) -> int:
		return max(0, math.floor((now - self.started_at).total_seconds()))

	def history_after_leaving(self) -> Deque[str]:
		"""History to hand to the next session once this track is switched away from."""
		carried = new_history(self.history)
		carried.append(self.track_key)
		return carried

	def to_json(self) -> str:
		return json.dumps(
			{
				"id": self.id,
				"room_id": self.room_id,
				"phone_number": self.phone_number,
				"track_name": self.track_name,
				"track_artist": self.track_artist,
				"track_key": self.track_key,
				"platform": self.platform,
				"started_at": self.started_at.isoformat(),
				"history": list(self.history),
				"album_art": self.album_art,
				"counted": self.counted,
			},
			separators=(",", ":"),
		)

	@classmethod
	def from_json(cls, raw: str) -> "ListeningSession":
		data = json.loads(raw)
		return cls(
			id=data["id"],
			room_id=data["room_id"],
			phone_number=data["phone_number"],
			track_name=data["track_name"],
			track_artist=data["track_artist"],
			track_key=data["track_key"],
			platform=data["platform"],
			started_at=datetime.fromisoformat(data["started_at"]),
			history=new_history(data.get("history") or ()),
			album_art=data.get("album_art"),
			counted=bool(data.get("counted", False)),
		)


@dataclass(slots=True, frozen=True)
class StreamCount:
	id: str
	room_id: str
	phone_number: str
	track_name: str
	track_artist: str
	track_key: str
	platform: str
	is_main_song: bool
	counted_at: datetime
	listen_duration: int
