"""Pydantic schemas for room broadcast events."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, Field

from streamroom.domain.broadcast import models


class FireEventRequest(BaseModel):
	type: str = Field(min_length=1, max_length=64)
	data: Dict[str, Any] = Field(default_factory=dict)


class FireEventResult(BaseModel):
	published: bool
	event_id: str | None = None


class BroadcastEventView(BaseModel):
	id: str
	room_id: str
	type: str
	created_at: datetime
	data: Dict[str, Any] = Field(default_factory=dict)

	@classmethod
	def from_model(cls, event: models.BroadcastEvent) -> "BroadcastEventView":
		return cls(
			id=event.id,
			room_id=event.room_id,
			type=event.type,
			created_at=event.created_at,
			data=dict(event.data),
		)
