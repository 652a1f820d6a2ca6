"""Redis Stream outbox writer for room broadcast events."""

from __future__ import annotations

from typing import Any, Mapping

from streamroom.domain.broadcast import models
from streamroom.infra.redis import redis_client

ROOM_EVENT_STREAM = "x:rooms.events"


def _stringify_fields(fields: Mapping[str, Any]) -> dict[str, str]:
	return {key: str(value) for key, value in fields.items() if value is not None}


async def append_room_event(event: models.BroadcastEvent) -> None:
	fields: dict[str, Any] = {
		"event_id": event.id,
		"room_id": event.room_id,
		"type": event.type,
		"created_at": event.created_at.isoformat(),
	}
	for key, value in event.data.items():
		if isinstance(value, (str, int, float, bool)):
			fields[f"data_{key}"] = value
	await redis_client.xadd(ROOM_EVENT_STREAM, _stringify_fields(fields))
