"""FastAPI routes for room mini-events."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from streamroom.api.errors import as_http_error
from streamroom.domain.errors import DomainError
from streamroom.domain.events import models, schemas
from streamroom.domain.events.listen_along import ListenAlongService
from streamroom.domain.events.map_fill import MapFillService
from streamroom.domain.events.playlist_run import PlaylistRunService
from streamroom.domain.events.race import RaceService

router = APIRouter(prefix="/rooms/{room_id}/mini-events", tags=["mini-events"])

map_fill_service = MapFillService()
listen_along_service = ListenAlongService()
race_service = RaceService()
playlist_run_service = PlaylistRunService()


def _view(event: Optional[models.MiniEvent]) -> Optional[schemas.MiniEventView]:
	return schemas.MiniEventView.from_model(event) if event is not None else None


# --- map fill ---


@router.post("/map-fill/start", response_model=schemas.StartResult)
async def start_map_fill(room_id: str, payload: schemas.MapFillStartRequest) -> schemas.StartResult:
	song = models.Song(name=payload.song_name, artist=payload.song_artist)
	event_id = await map_fill_service.start(room_id, song, cooldown=payload.cooldown(), duration=payload.duration())
	return schemas.StartResult(event_id=event_id)


@router.post("/map-fill/{event_id}/fill", response_model=Optional[schemas.FillResult])
async def fill_district(room_id: str, event_id: str, payload: schemas.JoinRequest) -> Optional[schemas.FillResult]:
	return await map_fill_service.fill(room_id, event_id, payload.phone_number)


@router.post("/map-fill/{event_id}/end", response_model=Optional[schemas.EventOutcome])
async def end_map_fill(room_id: str, event_id: str) -> Optional[schemas.EventOutcome]:
	return await map_fill_service.end(room_id, event_id)


@router.get("/map-fill/active", response_model=Optional[schemas.MiniEventView])
async def active_map_fill(room_id: str) -> Optional[schemas.MiniEventView]:
	return _view(await map_fill_service.get_active(room_id))


# --- listen along ---


@router.post("/listen-along/start", response_model=schemas.StartResult)
async def start_listen_along(room_id: str, payload: schemas.ListenAlongStartRequest) -> schemas.StartResult:
	song = models.Song(name=payload.song_name, artist=payload.song_artist)
	event_id = await listen_along_service.start(
		room_id,
		song,
		member=payload.member,
		cooldown=payload.cooldown(),
		duration=payload.duration(),
	)
	return schemas.StartResult(event_id=event_id)


@router.post("/listen-along/{event_id}/join", response_model=Optional[bool])
async def join_listen_along(room_id: str, event_id: str, payload: schemas.JoinRequest) -> Optional[bool]:
	return await listen_along_service.join(room_id, event_id, payload.phone_number)


@router.post("/listen-along/{event_id}/end", response_model=Optional[schemas.EventOutcome])
async def end_listen_along(room_id: str, event_id: str) -> Optional[schemas.EventOutcome]:
	return await listen_along_service.end(room_id, event_id)


@router.get("/listen-along/active", response_model=Optional[schemas.MiniEventView])
async def active_listen_along(room_id: str) -> Optional[schemas.MiniEventView]:
	return _view(await listen_along_service.get_active(room_id))


# --- race ---


@router.post("/race/start", response_model=schemas.StartResult)
async def start_race(room_id: str, payload: schemas.RaceStartRequest) -> schemas.StartResult:
	try:
		event_id = await race_service.start(
			room_id,
			payload.lanes,
			cooldown=payload.cooldown(),
			duration=payload.duration(),
		)
	except DomainError as exc:
		raise as_http_error(exc) from exc
	return schemas.StartResult(event_id=event_id)


@router.post("/race/{event_id}/join", response_model=Optional[schemas.RaceJoinResult])
async def join_race(room_id: str, event_id: str, payload: schemas.JoinRequest) -> Optional[schemas.RaceJoinResult]:
	return await race_service.join(room_id, event_id, payload.phone_number)


@router.post("/race/{event_id}/end", response_model=Optional[schemas.EventOutcome])
async def end_race(room_id: str, event_id: str) -> Optional[schemas.EventOutcome]:
	return await race_service.end(room_id, event_id)


@router.get("/race/active", response_model=Optional[schemas.MiniEventView])
async def active_race(room_id: str) -> Optional[schemas.MiniEventView]:
	return _view(await race_service.get_active(room_id))


# --- playlist run ---


@router.post("/playlist-run/start", response_model=schemas.StartResult)
async def start_playlist_run(room_id: str, payload: schemas.PlaylistRunStartRequest) -> schemas.StartResult:
	try:
		event_id = await playlist_run_service.start(
			room_id,
			payload.phone_number,
			payload.songs,
			cooldown=payload.cooldown(),
		)
	except DomainError as exc:
		raise as_http_error(exc) from exc
	return schemas.StartResult(event_id=event_id)


@router.post("/playlist-run/{event_id}/progress", response_model=Optional[schemas.PlaylistProgress])
async def playlist_run_progress(room_id: str, event_id: str, payload: schemas.JoinRequest) -> Optional[schemas.PlaylistProgress]:
	return await playlist_run_service.update_progress(room_id, event_id, payload.phone_number)


@router.post("/playlist-run/{event_id}/advance", response_model=Optional[schemas.PlaylistProgress])
async def advance_playlist_run(room_id: str, event_id: str, payload: schemas.JoinRequest) -> Optional[schemas.PlaylistProgress]:
	return await playlist_run_service.advance(room_id, event_id, payload.phone_number)


@router.post("/playlist-run/{event_id}/quit", response_model=Optional[schemas.EventOutcome])
async def quit_playlist_run(room_id: str, event_id: str, payload: schemas.JoinRequest) -> Optional[schemas.EventOutcome]:
	return await playlist_run_service.quit(room_id, event_id, payload.phone_number)


@router.get("/playlist-run/active", response_model=Optional[schemas.MiniEventView])
async def active_playlist_run(
	room_id: str,
	phone_number: str = Query(min_length=1, max_length=32),
) -> Optional[schemas.MiniEventView]:
	return _view(await playlist_run_service.get_active(room_id, phone_number))
