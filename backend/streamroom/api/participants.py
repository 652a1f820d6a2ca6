"""FastAPI routes for rooms, participants, profiles and daily check-ins."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Query, status

from streamroom.api.errors import as_http_error
from streamroom.domain.errors import DomainError
from streamroom.domain.participants import schemas
from streamroom.domain.participants.service import CheckinService, ParticipantsService

router = APIRouter(tags=["participants"])

_service = ParticipantsService()
_checkins = CheckinService()


# --- profiles ---


@router.get("/users/{phone_number}", response_model=schemas.UserProfile)
async def get_profile(phone_number: str) -> schemas.UserProfile:
	user = await _service.get_profile(phone_number)
	if user is None:
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")
	return schemas.UserProfile.from_model(user)


@router.put("/users/{phone_number}", response_model=schemas.UserProfile)
async def upsert_profile(phone_number: str, payload: schemas.ProfileUpdate) -> schemas.UserProfile:
	return schemas.UserProfile.from_model(await _service.upsert_profile(phone_number, payload))


# --- daily check-ins ---


@router.post("/users/{phone_number}/daily-checkins", response_model=schemas.DailyCheckinResult)
async def check_in_daily(phone_number: str) -> schemas.DailyCheckinResult:
	return await _checkins.check_in(phone_number)


@router.get("/users/{phone_number}/daily-checkins", response_model=List[schemas.DailyCheckin])
async def month_checkins(
	phone_number: str,
	month: str = Query(pattern=r"^\d{4}-\d{2}$"),
) -> List[schemas.DailyCheckin]:
	return await _checkins.month(phone_number, month)


@router.get("/users/{phone_number}/daily-checkins/streak", response_model=schemas.StreakResult)
async def checkin_streak(phone_number: str) -> schemas.StreakResult:
	return schemas.StreakResult(streak=await _checkins.streak(phone_number))


# --- rooms ---


@router.post("/rooms/{room_id}", status_code=status.HTTP_200_OK)
async def ensure_room(room_id: str) -> dict:
	room = await _service.ensure_room(room_id)
	return {"room_id": room.room_id, "name": room.name, "type": room.type}


@router.get("/rooms/{room_id}/participants", response_model=List[schemas.ParticipantSummary])
async def list_participants(room_id: str) -> List[schemas.ParticipantSummary]:
	return [schemas.ParticipantSummary.from_model(p) for p in await _service.list_by_room(room_id)]


@router.get("/rooms/{room_id}/participants/{phone_number}", response_model=schemas.ParticipantSummary)
async def get_participant(room_id: str, phone_number: str) -> schemas.ParticipantSummary:
	try:
		participant = await _service.require(room_id, phone_number)
	except DomainError as exc:
		raise as_http_error(exc) from exc
	return schemas.ParticipantSummary.from_model(participant)


@router.post("/rooms/{room_id}/participants/join", response_model=schemas.ParticipantSummary)
async def join_room(room_id: str, payload: schemas.JoinRoomRequest) -> schemas.ParticipantSummary:
	participant = await _service.join_room(
		room_id,
		payload.phone_number,
		username=payload.username,
		avatar_color=payload.avatar_color,
	)
	return schemas.ParticipantSummary.from_model(participant)


@router.post("/rooms/{room_id}/participants/leave", response_model=schemas.OkResult)
async def leave_room(room_id: str, payload: schemas.PhoneRequest) -> schemas.OkResult:
	return schemas.OkResult(success=await _service.leave_room(room_id, payload.phone_number))


@router.post("/rooms/{room_id}/participants/presence", response_model=schemas.OkResult)
async def set_presence(room_id: str, payload: schemas.PresenceRequest) -> schemas.OkResult:
	ok = await _service.set_presence(room_id, payload.phone_number, is_online=payload.is_online)
	return schemas.OkResult(success=ok)


@router.post("/rooms/{room_id}/participants/track", response_model=schemas.TrackUpdateResult)
async def update_track(room_id: str, payload: schemas.TrackUpdateRequest) -> schemas.TrackUpdateResult:
	track = payload.track.to_model() if payload.track is not None else None
	return await _service.update_track(room_id, payload.phone_number, track)


@router.post("/rooms/{room_id}/participants/minutes", response_model=schemas.OkResult)
async def update_minutes(room_id: str, payload: schemas.MinutesRequest) -> schemas.OkResult:
	ok = await _service.update_minutes(room_id, payload.phone_number, payload.total_minutes)
	return schemas.OkResult(success=ok)


@router.post("/rooms/{room_id}/participants/check-in", response_model=schemas.OkResult)
async def check_in(room_id: str, payload: schemas.PhoneRequest) -> schemas.OkResult:
	return schemas.OkResult(success=await _service.check_in(room_id, payload.phone_number))


@router.post("/rooms/{room_id}/participants/offline-tracking/disable", response_model=schemas.OkResult)
async def disable_offline_tracking(room_id: str, payload: schemas.PhoneRequest) -> schemas.OkResult:
	ok = await _service.disable_offline_tracking(room_id, payload.phone_number)
	return schemas.OkResult(success=ok)


@router.post("/rooms/{room_id}/participants/milestones", response_model=schemas.OkResult)
async def add_milestone(room_id: str, payload: schemas.MilestoneRequest) -> schemas.OkResult:
	ok = await _service.add_milestone(room_id, payload.phone_number, payload.milestone)
	return schemas.OkResult(success=ok)
