"""Broadcast event records fanned out to every client in a room."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass(slots=True)
class BroadcastEvent:
	id: str
	room_id: str
	type: str
	created_at: datetime
	data: Dict[str, Any] = field(default_factory=dict)

	def to_payload(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"room_id": self.room_id,
			"type": self.type,
			"data": self.data,
			"created_at": self.created_at.isoformat(),
		}
