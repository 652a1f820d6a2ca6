"""Publishing of room broadcast events."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from redis.exceptions import RedisError

from streamroom.domain.broadcast import models, outbox, sockets
from streamroom.domain.broadcast.repo import BroadcastRepository
from streamroom.infra.clock import Clock, system_clock
from streamroom.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

SAME_SONG = "same_song"
DEDUP_WINDOWS: Dict[str, timedelta] = {
	SAME_SONG: timedelta(seconds=30),
}


class Broadcaster:
	def __init__(self, *, repository: BroadcastRepository | None = None, clock: Clock | None = None) -> None:
		self._repo = repository or BroadcastRepository()
		self._clock = clock or system_clock

	async def publish(
		self,
		room_id: str,
		event_type: str,
		data: Optional[Dict[str, Any]] = None,
		*,
		dedup_window: Optional[timedelta] = None,
	) -> Optional[models.BroadcastEvent]:
		"""Persist and fan out an event; None when suppressed by the dedup window."""
		now = self._clock.now()
		event = models.BroadcastEvent(
			id=str(uuid.uuid4()),
			room_id=room_id,
			type=event_type,
			created_at=now,
			data=dict(data or {}),
		)
		if dedup_window is not None:
			stored = await self._repo.insert_unless_recent(event, since=now - dedup_window)
			if stored is None:
				obs_metrics.inc_broadcast_deduped(event_type)
				return None
		else:
			await self._repo.insert(event)
		obs_metrics.inc_broadcast_event(event_type)
		await self._fan_out(event)
		return event

	async def fire_event(self, room_id: str, event_type: str, data: Optional[Dict[str, Any]] = None) -> Optional[models.BroadcastEvent]:
		return await self.publish(room_id, event_type, data, dedup_window=DEDUP_WINDOWS.get(event_type))

	async def list_recent(self, room_id: str, since: datetime) -> List[models.BroadcastEvent]:
		return await self._repo.list_since(room_id, since)

	async def _fan_out(self, event: models.BroadcastEvent) -> None:
		# The stored row is the source of truth; live delivery is best effort
		try:
			await sockets.emit_room_event(event.room_id, event.to_payload())
		except Exception:
			logger.exception("broadcast_emit_failed", extra={"event_type": event.type, "event_id": event.id})
		try:
			await outbox.append_room_event(event)
		except RedisError:
			logger.exception("broadcast_outbox_failed", extra={"event_type": event.type, "event_id": event.id})
