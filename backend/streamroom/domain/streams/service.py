"""Service orchestration for listening sessions and counted streams."""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from streamroom.domain.broadcast.service import Broadcaster
from streamroom.domain.errors import StreamsError
from streamroom.domain.points.ledger import PointsLedger
from streamroom.domain.streams import models, policy, schemas, tracks
from streamroom.domain.streams.repo import StreamCountRepository
from streamroom.domain.streams.sessions import ListeningSessionTracker
from streamroom.infra.clock import Clock, day_start, system_clock
from streamroom.obs import metrics as obs_metrics
from streamroom.settings import settings

logger = logging.getLogger(__name__)

MILESTONE_EVENT = "stream_milestone"

StreamListener = Callable[[models.StreamCount], Awaitable[None]]


class StreamService:
	def __init__(
		self,
		*,
		clock: Clock | None = None,
		tracker: ListeningSessionTracker | None = None,
		repository: StreamCountRepository | None = None,
		ledger: PointsLedger | None = None,
		broadcaster: Broadcaster | None = None,
		listeners: Iterable[StreamListener] = (),
	) -> None:
		self._clock = clock or system_clock
		self._tracker = tracker or ListeningSessionTracker(clock=self._clock)
		self._repo = repository or StreamCountRepository()
		self._ledger = ledger or PointsLedger(streams=self._repo)
		self._broadcaster = broadcaster or Broadcaster(clock=self._clock)
		self._listeners: List[StreamListener] = list(listeners)

	def add_listener(self, listener: StreamListener) -> None:
		self._listeners.append(listener)

	async def start_listening(
		self,
		room_id: str,
		phone_number: str,
		track_name: str,
		track_artist: str,
		album_art: Optional[str] = None,
	) -> schemas.StartListeningResult:
		if not tracks.normalize_track_key(track_name, track_artist).title:
			raise StreamsError("invalid_track", status_code=422)
		outcome = await self._tracker.start(room_id, phone_number, track_name, track_artist, album_art)
		return schemas.StartListeningResult(
			action=outcome.action,
			track_key=outcome.track_key,
			platform=outcome.platform,
		)

	async def stop_listening(self, room_id: str, phone_number: str) -> None:
		await self._tracker.stop(room_id, phone_number)

	def is_main_song(self, track_name: str, track_artist: str) -> bool:
		"""Exact TrackKey match against the configured main song."""
		main = tracks.normalize_track_key(settings.main_song_title, settings.main_song_artist)
		return tracks.normalize_track_key(track_name, track_artist) == main

	async def try_count_stream(self, room_id: str, phone_number: str) -> schemas.CountResult:
		session = await self._tracker.get(room_id, phone_number)
		if session is None:
			obs_metrics.inc_stream_attempt("", policy.REASON_NO_SESSION)
			return schemas.CountResult(counted=False, reason=policy.REASON_NO_SESSION)
		if session.counted:
			obs_metrics.inc_stream_attempt(session.platform, policy.REASON_ALREADY_COUNTED)
			return schemas.CountResult(counted=False, reason=policy.REASON_ALREADY_COUNTED)

		now = self._clock.now()
		listened = session.elapsed_seconds(now)
		today_count = await self._repo.count_for_user_since(
			room_id,
			phone_number,
			platforms=policy.family_platforms(session.platform),
			since=day_start(now, settings.stream_day_utc_offset_minutes),
		)
		last = await self._repo.latest_for_track(room_id, phone_number, session.track_key)
		verdict = policy.evaluate(
			platform=session.platform,
			track_key=session.track_key,
			listened_seconds=listened,
			today_count=today_count,
			last_counted_at=last.counted_at if last else None,
			history=session.history,
			now=now,
		)
		if not verdict.ok:
			obs_metrics.inc_stream_attempt(session.platform, verdict.reason or "rejected")
			return schemas.CountResult(
				counted=False,
				reason=verdict.reason,
				seconds_remaining=verdict.seconds_remaining,
			)

		if not await self._tracker.mark_counted(session):
			obs_metrics.inc_stream_attempt(session.platform, policy.REASON_ALREADY_COUNTED)
			return schemas.CountResult(counted=False, reason=policy.REASON_ALREADY_COUNTED)

		is_main = self.is_main_song(session.track_name, session.track_artist)
		count = models.StreamCount(
			id=str(uuid.uuid4()),
			room_id=room_id,
			phone_number=phone_number,
			track_name=session.track_name,
			track_artist=session.track_artist,
			track_key=session.track_key,
			platform=session.platform,
			is_main_song=is_main,
			counted_at=now,
			listen_duration=listened,
		)
		try:
			await self._repo.append(count)
		except Exception:
			await self._tracker.unmark_counted(session)
			raise
		points = policy.stream_points(session.platform, is_main)
		await self._ledger.recompute(room_id, phone_number)
		obs_metrics.inc_stream_attempt(session.platform, "counted")
		obs_metrics.inc_points_awarded("stream", points)
		logger.info(
			"stream_counted",
			extra={
				"room": room_id,
				"phone_number": phone_number,
				"platform": session.platform,
				"main_song": is_main,
				"points": points,
				"listened_s": listened,
			},
		)
		if is_main:
			await self._maybe_broadcast_milestone(room_id)
		await self._notify(count)
		return schemas.CountResult(
			counted=True,
			platform=session.platform,
			is_main_song=is_main,
			points=points,
			track_name=session.track_name,
			track_artist=session.track_artist,
			listen_duration=listened,
		)

	async def _maybe_broadcast_milestone(self, room_id: str) -> None:
		total = await self._repo.count_main_for_room(room_id)
		if not policy.crosses_milestone(total):
			return
		await self._broadcaster.publish(
			room_id,
			MILESTONE_EVENT,
			{"total_streams": total},
			dedup_window=policy.MILESTONE_DEDUP_WINDOW,
		)

	async def _notify(self, count: models.StreamCount) -> None:
		for listener in self._listeners:
			try:
				await listener(count)
			except Exception:
				# listener failures never roll back a counted stream
				logger.exception("stream_listener_failed", extra={"room": count.room_id})

	# --- queries ---

	async def room_streams_by_platform(self, room_id: str) -> schemas.PlatformTotals:
		featured = tracks.clean_artist(settings.featured_artist)
		totals = schemas.PlatformTotals()
		for platform, is_main, artist, n in await self._repo.platform_breakdown(room_id):
			if platform == tracks.YOUTUBE:
				totals.youtube += n
			elif platform == tracks.SPOTIFY:
				totals.spotify += n
			else:
				totals.other += n
			if is_main:
				totals.total += n
			if featured and tracks.clean_artist(artist) == featured:
				totals.total_featured += n
			totals.total_all += n
		totals.total_other = totals.total_all - totals.total_featured
		return totals

	async def room_stream_counts(self, room_id: str) -> List[schemas.TrackStreams]:
		first_seen: Dict[str, models.StreamCount] = {}
		totals: Dict[str, int] = {}
		listeners: Dict[str, Set[str]] = {}
		for count in await self._repo.list_for_room(room_id):
			first_seen.setdefault(count.track_key, count)
			totals[count.track_key] = totals.get(count.track_key, 0) + 1
			listeners.setdefault(count.track_key, set()).add(count.phone_number)
		rows = [
			schemas.TrackStreams(
				track_key=key,
				track_name=sample.track_name,
				track_artist=sample.track_artist,
				platform=sample.platform,  # type: ignore[arg-type]
				total_streams=totals[key],
				unique_listeners=len(listeners[key]),
			)
			for key, sample in first_seen.items()
		]
		rows.sort(key=lambda row: row.total_streams, reverse=True)
		return rows

	async def user_streams(self, room_id: str, phone_number: str) -> schemas.UserStreams:
		counts = await self._repo.list_for_user(room_id, phone_number)
		return schemas.UserStreams(
			total_streams=len(counts),
			streams=[
				schemas.UserStream(
					track_name=c.track_name,
					track_artist=c.track_artist,
					platform=c.platform,  # type: ignore[arg-type]
					counted_at=c.counted_at,
					listen_duration=c.listen_duration,
				)
				for c in counts
			],
		)

	async def user_points(self, room_id: str, phone_number: str) -> schemas.UserPoints:
		breakdown = await self._ledger.breakdown(room_id, phone_number)
		return schemas.UserPoints(
			points=breakdown.total,
			stream_points=breakdown.stream_points,
			checkin_bonus=breakdown.checkin_bonus,
			bonus_points=breakdown.bonus_points,
		)
