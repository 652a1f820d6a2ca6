"""Points ledger: totals derived from the stream ledger plus additive bonuses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from streamroom.domain.participants import models as participant_models
from streamroom.domain.participants.repo import ParticipantsRepository
from streamroom.domain.streams import policy
from streamroom.domain.streams.repo import StreamCountRepository
from streamroom.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PointsBreakdown:
	stream_points: int
	checkin_bonus: int
	bonus_points: int
	streams_counted: int

	@property
	def total(self) -> int:
		return self.stream_points + self.checkin_bonus + self.bonus_points


class PointsLedger:
	def __init__(
		self,
		*,
		streams: StreamCountRepository | None = None,
		participants: ParticipantsRepository | None = None,
	) -> None:
		self._streams = streams or StreamCountRepository()
		self._participants = participants or ParticipantsRepository()

	async def breakdown(self, room_id: str, phone_number: str) -> PointsBreakdown:
		counts = await self._streams.list_for_user(room_id, phone_number)
		participant = await self._participants.get(room_id, phone_number)
		return self._breakdown(counts, participant)

	@staticmethod
	def _breakdown(counts, participant: Optional[participant_models.Participant]) -> PointsBreakdown:
		stream_points = sum(policy.stream_points(c.platform, c.is_main_song) for c in counts)
		checked_in = participant is not None and participant.last_check_in is not None
		return PointsBreakdown(
			stream_points=stream_points,
			checkin_bonus=policy.CHECKIN_BONUS if checked_in else 0,
			bonus_points=participant.bonus_points if participant else 0,
			streams_counted=len(counts),
		)

	async def recompute(self, room_id: str, phone_number: str) -> int:
		"""Rebuild the stored total from scratch; safe to call any number of times."""
		counts = await self._streams.list_for_user(room_id, phone_number)

		def _apply(participant: participant_models.Participant) -> int:
			total = self._breakdown(counts, participant).total
			participant.total_points = total
			return total

		total = await self._participants.update(room_id, phone_number, _apply)
		if total is None:
			return self._breakdown(counts, None).total
		return total

	async def award_bonus(self, room_id: str, phone_number: str, amount: int, *, source: str) -> Optional[int]:
		"""Credit mini-event points to the bonus accumulator and refresh the total."""
		if amount <= 0:
			return None

		def _apply(participant: participant_models.Participant) -> int:
			participant.bonus_points += amount
			return participant.bonus_points

		bonus = await self._participants.update(room_id, phone_number, _apply)
		if bonus is None:
			logger.warning(
				"bonus_award_skipped",
				extra={"room": room_id, "phone_number": phone_number, "source": source, "amount": amount},
			)
			return None
		obs_metrics.inc_points_awarded(source, amount)
		return await self.recompute(room_id, phone_number)
