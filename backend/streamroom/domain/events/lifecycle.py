"""Lifecycle shared by every mini-event variant.

active -> one of completed / failed / quit / finished, exactly once. Variants
supply the payload, the join rules and the success predicate; this module owns
the cooldown dedup, the single award, and the broadcasts around each
transition.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from streamroom.domain.broadcast.service import Broadcaster
from streamroom.domain.events import models
from streamroom.domain.events.cooldown import CooldownGate
from streamroom.domain.events.repo import MiniEventRepository
from streamroom.domain.participants.service import ParticipantsService
from streamroom.domain.points.ledger import PointsLedger
from streamroom.domain.streams import tracks
from streamroom.domain.streams.models import ListeningSession
from streamroom.domain.streams.sessions import ListeningSessionTracker
from streamroom.infra.clock import Clock, system_clock
from streamroom.obs import metrics as obs_metrics
from streamroom.settings import settings

logger = logging.getLogger(__name__)

MIN_DURATION = timedelta(seconds=1)

Decision = Callable[[models.MiniEvent], Optional[str]]


@dataclass(frozen=True, slots=True)
class NowPlaying:
	name: str
	artist: str
	platform: str
	session: Optional[ListeningSession] = None

	def matches(self, name: str, artist: str) -> bool:
		return tracks.is_same_song(self.name, self.artist, name, artist)


def clamp_cooldown(value: Optional[timedelta], default: timedelta) -> timedelta:
	if value is None:
		return default
	return max(value, timedelta(0))


def clamp_duration(value: Optional[timedelta], default: timedelta) -> timedelta:
	if value is None:
		return default
	return max(value, MIN_DURATION)


class MiniEventLifecycle:
	kind: str = ""
	default_cooldown = timedelta(hours=1)
	default_duration: Optional[timedelta] = timedelta(minutes=3)

	def __init__(
		self,
		*,
		clock: Clock | None = None,
		repository: MiniEventRepository | None = None,
		participants: ParticipantsService | None = None,
		ledger: PointsLedger | None = None,
		broadcaster: Broadcaster | None = None,
		tracker: ListeningSessionTracker | None = None,
		cooldown_gate: CooldownGate | None = None,
		rng: random.Random | None = None,
	) -> None:
		self._clock = clock or system_clock
		self._repo = repository or MiniEventRepository()
		self._participants = participants or ParticipantsService(clock=self._clock)
		self._ledger = ledger or PointsLedger()
		self._broadcaster = broadcaster or Broadcaster(clock=self._clock)
		self._tracker = tracker or ListeningSessionTracker(clock=self._clock)
		self._gate = cooldown_gate or CooldownGate()
		self._rng = rng or random.Random()

	# --- hooks ---

	def awards(self, event: models.MiniEvent) -> Dict[str, int]:
		"""Points per phone number for a successful event."""
		return {}

	def outcome(self, event: models.MiniEvent) -> Optional[Tuple[str, Dict[str, Any]]]:
		"""Broadcast (type, data) announcing a terminal transition, if any."""
		return None

	# --- queries ---

	async def get_active(self, room_id: str, phone_number: Optional[str] = None) -> Optional[models.MiniEvent]:
		"""Current active instance for late joiners, hidden once past the deadline plus grace."""
		now = self._clock.now()
		grace = timedelta(seconds=settings.event_grace_seconds)
		for event in await self._repo.list_active(room_id, self.kind, phone_number=phone_number):
			if not event.expired(now, grace):
				return event
		return None

	async def get(self, event_id: str) -> Optional[models.MiniEvent]:
		event = await self._repo.get(event_id)
		if event is None or event.kind != self.kind:
			return None
		return event

	async def now_playing(self, room_id: str, phone_number: str) -> Optional[NowPlaying]:
		"""What the user is playing: the listening session first, then the presence snapshot."""
		session = await self._tracker.get(room_id, phone_number)
		if session is not None:
			return NowPlaying(
				name=session.track_name,
				artist=session.track_artist,
				platform=session.platform,
				session=session,
			)
		participant = await self._participants.get(room_id, phone_number)
		if participant is None or not participant.is_now_playing():
			return None
		track = participant.current_track
		return NowPlaying(
			name=track.name,
			artist=track.artist,
			platform=tracks.classify_platform(track.name, track.album_art),
		)

	# --- start ---

	async def _cooldown_elapsed(
		self,
		room_id: str,
		cooldown: timedelta,
		*,
		phone_number: Optional[str] = None,
	) -> bool:
		recent = await self._repo.latest(room_id, self.kind, phone_number=phone_number)
		if recent is not None and self._clock.now() - recent.started_at < cooldown:
			return self._reject(room_id, "cooldown")
		return True

	def _reject(self, room_id: str, reason: str) -> bool:
		obs_metrics.inc_mini_event_start_reject(self.kind, reason)
		logger.info("mini_event_start_rejected", extra={"room": room_id, "kind": self.kind, "reason": reason})
		return False

	async def _open(
		self,
		room_id: str,
		payload: models.Payload,
		*,
		cooldown: timedelta,
		duration: Optional[timedelta],
		phone_number: Optional[str] = None,
	) -> Optional[models.MiniEvent]:
		"""Claim the cooldown window and persist a new active event."""
		now = self._clock.now()
		acquired = await self._gate.try_acquire(
			room_id,
			self.kind,
			now=now,
			cooldown=cooldown,
			phone_number=phone_number,
		)
		if not acquired:
			self._reject(room_id, "cooldown_race")
			return None
		event = models.MiniEvent(
			id=str(uuid.uuid4()),
			kind=self.kind,
			room_id=room_id,
			status=models.ACTIVE,
			started_at=now,
			ends_at=now + duration if duration is not None else None,
			phone_number=phone_number,
			payload=payload,
		)
		try:
			await self._repo.create(event)
		except Exception:
			await self._gate.release(room_id, self.kind, now=now, phone_number=phone_number)
			raise
		obs_metrics.inc_mini_event_transition(self.kind, models.ACTIVE)
		logger.info(
			"mini_event_started",
			extra={"room": room_id, "kind": self.kind, "event_id": event.id, "phone_number": phone_number},
		)
		return event

	# --- transitions ---

	async def _close(self, event_id: str, decide: Decision) -> Optional[models.MiniEvent]:
		"""Move an active event to the status chosen by `decide`, awarding points at most once."""

		def _apply(event: models.MiniEvent) -> Optional[models.MiniEvent]:
			if event.kind != self.kind or event.points_awarded or not event.is_active:
				return None
			status = decide(event)
			if status is None:
				return None
			event.status = status
			if status in (models.COMPLETED, models.FINISHED):
				event.points_awarded = True
			return event

		closed = await self._repo.update(event_id, _apply)
		if closed is None:
			return None
		awarded = 0
		if closed.points_awarded:
			for phone_number, amount in self.awards(closed).items():
				try:
					await self._ledger.award_bonus(closed.room_id, phone_number, amount, source=self.kind)
				except Exception:
					logger.exception(
						"mini_event_award_failed",
						extra={
							"room": closed.room_id,
							"kind": self.kind,
							"event_id": closed.id,
							"phone_number": phone_number,
							"amount": amount,
						},
					)
					continue
				awarded += amount
		obs_metrics.inc_mini_event_transition(self.kind, closed.status)
		logger.info(
			"mini_event_closed",
			extra={
				"room": closed.room_id,
				"kind": self.kind,
				"event_id": closed.id,
				"status": closed.status,
				"points": awarded,
			},
		)
		announcement = self.outcome(closed)
		if announcement is not None:
			event_type, data = announcement
			await self._broadcaster.publish(closed.room_id, event_type, data)
		return closed

	async def _fail_if_due(self, event_id: str) -> Optional[models.MiniEvent]:
		now = self._clock.now()

		def _decide(event: models.MiniEvent) -> Optional[str]:
			if event.ends_at is None or now < event.ends_at:
				return None
			return models.FAILED

		return await self._close(event_id, _decide)

	def _is_open(self, event: Optional[models.MiniEvent]) -> bool:
		"""Joinable: exists, active, and the deadline has not passed."""
		if event is None or not event.is_active:
			return False
		return event.ends_at is None or self._clock.now() <= event.ends_at
