"""FastAPI routes for room broadcast events."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Query

from streamroom.domain.broadcast import schemas
from streamroom.domain.broadcast.service import Broadcaster
from streamroom.infra.clock import system_clock

router = APIRouter(prefix="/rooms/{room_id}/broadcasts", tags=["broadcasts"])

_broadcaster = Broadcaster()

DEFAULT_LOOKBACK = timedelta(minutes=5)


@router.post("", response_model=schemas.FireEventResult)
async def fire_event(room_id: str, payload: schemas.FireEventRequest) -> schemas.FireEventResult:
	event = await _broadcaster.fire_event(room_id, payload.type, payload.data)
	if event is None:
		return schemas.FireEventResult(published=False)
	return schemas.FireEventResult(published=True, event_id=event.id)


@router.get("", response_model=List[schemas.BroadcastEventView])
async def list_recent(room_id: str, since: Optional[datetime] = Query(default=None)) -> List[schemas.BroadcastEventView]:
	if since is None:
		since = system_clock.now() - DEFAULT_LOOKBACK
	elif since.tzinfo is None:
		since = since.replace(tzinfo=timezone.utc)
	return [schemas.BroadcastEventView.from_model(e) for e in await _broadcaster.list_recent(room_id, since)]
