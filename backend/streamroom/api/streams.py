"""FastAPI routes for listening sessions, stream counting and points."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter

from streamroom.api import events as events_api
from streamroom.api.errors import as_http_error
from streamroom.domain.errors import DomainError
from streamroom.domain.streams import schemas
from streamroom.domain.streams.service import StreamService

router = APIRouter(prefix="/rooms/{room_id}", tags=["streams"])

_service = StreamService(listeners=[events_api.race_service.on_stream_counted])


@router.post("/listening/start", response_model=schemas.StartListeningResult)
async def start_listening(room_id: str, payload: schemas.StartListeningRequest) -> schemas.StartListeningResult:
	try:
		return await _service.start_listening(
			room_id,
			payload.phone_number,
			payload.track_name,
			payload.track_artist,
			payload.track_album_art,
		)
	except DomainError as exc:
		raise as_http_error(exc) from exc


@router.post("/listening/stop")
async def stop_listening(room_id: str, payload: schemas.PhoneRequest) -> dict:
	await _service.stop_listening(room_id, payload.phone_number)
	return {"ok": True}


@router.post("/listening/count", response_model=schemas.CountResult, response_model_exclude_none=True)
async def try_count_stream(room_id: str, payload: schemas.PhoneRequest) -> schemas.CountResult:
	return await _service.try_count_stream(room_id, payload.phone_number)


@router.get("/streams/platforms", response_model=schemas.PlatformTotals)
async def room_streams_by_platform(room_id: str) -> schemas.PlatformTotals:
	return await _service.room_streams_by_platform(room_id)


@router.get("/streams/tracks", response_model=List[schemas.TrackStreams])
async def room_stream_counts(room_id: str) -> List[schemas.TrackStreams]:
	return await _service.room_stream_counts(room_id)


@router.get("/streams/users/{phone_number}", response_model=schemas.UserStreams)
async def user_streams(room_id: str, phone_number: str) -> schemas.UserStreams:
	return await _service.user_streams(room_id, phone_number)


@router.get("/points/{phone_number}", response_model=schemas.UserPoints)
async def user_points(room_id: str, phone_number: str) -> schemas.UserPoints:
	return await _service.user_points(room_id, phone_number)
