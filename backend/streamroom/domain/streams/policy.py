"""Anti-gaming rules deciding whether a listening session may be counted."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from streamroom.domain.streams import tracks

YOUTUBE_DAILY_CAP = 50
YOUTUBE_EARLY_STREAMS = 5
YOUTUBE_EARLY_LISTEN_SECONDS = 30
YOUTUBE_EARLY_COOLDOWN = timedelta(minutes=2)
YOUTUBE_LATE_LISTEN_SECONDS = 60
YOUTUBE_LATE_COOLDOWN = timedelta(minutes=15)
YOUTUBE_LATE_INTERLEAVE = 2

SPOTIFY_LISTEN_SECONDS = 30
SPOTIFY_COOLDOWN = timedelta(minutes=2)
SPOTIFY_INTERLEAVE_AFTER = 10
SPOTIFY_INTERLEAVE = 1

YOUTUBE_MAIN_POINTS = 5
YOUTUBE_OTHER_POINTS = 1
SPOTIFY_MAIN_POINTS = 2
SPOTIFY_OTHER_POINTS = 1
CHECKIN_BONUS = 2

MILESTONE_EVERY = 100
MILESTONE_DEDUP_WINDOW = timedelta(seconds=30)

REASON_NO_SESSION = "no_session"
REASON_ALREADY_COUNTED = "already_counted"
REASON_DAILY_CAP = "daily_cap"
REASON_TOO_SHORT = "too_short"
REASON_COOLDOWN = "cooldown"
REASON_INTERLEAVE = "interleave"


@dataclass(frozen=True, slots=True)
class StreamRule:
	daily_cap: Optional[int]
	listen_floor_seconds: int
	cooldown: timedelta
	interleave_required: int


@dataclass(frozen=True, slots=True)
class Verdict:
	reason: Optional[str] = None
	seconds_remaining: Optional[int] = None

	@property
	def ok(self) -> bool:
		return self.reason is None


def rule_family(platform: str) -> str:
	"""Spotify and unclassified plays share one rule set and one daily tally."""
	return tracks.YOUTUBE if platform == tracks.YOUTUBE else tracks.SPOTIFY


def family_platforms(platform: str) -> tuple[str, ...]:
	if rule_family(platform) == tracks.YOUTUBE:
		return (tracks.YOUTUBE,)
	return (tracks.SPOTIFY, tracks.OTHER)


def rule_for(platform: str, today_count: int) -> StreamRule:
	if rule_family(platform) == tracks.YOUTUBE:
		if today_count < YOUTUBE_EARLY_STREAMS:
			return StreamRule(YOUTUBE_DAILY_CAP, YOUTUBE_EARLY_LISTEN_SECONDS, YOUTUBE_EARLY_COOLDOWN, 0)
		return StreamRule(YOUTUBE_DAILY_CAP, YOUTUBE_LATE_LISTEN_SECONDS, YOUTUBE_LATE_COOLDOWN, YOUTUBE_LATE_INTERLEAVE)
	interleave = SPOTIFY_INTERLEAVE if today_count >= SPOTIFY_INTERLEAVE_AFTER else 0
	return StreamRule(None, SPOTIFY_LISTEN_SECONDS, SPOTIFY_COOLDOWN, interleave)


def interleave_satisfied(history: Iterable[str], current_key: str, required: int) -> bool:
	"""Walk history newest-first counting tracks other than the current one.

	A history shorter than the requirement passes, so brand-new listeners are
	never blocked for lack of variety.
	"""
	if required <= 0:
		return True
	entries = list(history)
	if len(entries) < required:
		return True
	distinct = 0
	for key in reversed(entries):
		if key != current_key:
			distinct += 1
			if distinct >= required:
				return True
	return False


def evaluate(
	*,
	platform: str,
	track_key: str,
	listened_seconds: int,
	today_count: int,
	last_counted_at: Optional[datetime],
	history: Iterable[str],
	now: datetime,
) -> Verdict:
	rule = rule_for(platform, today_count)
	if rule.daily_cap is not None and today_count >= rule.daily_cap:
		return Verdict(REASON_DAILY_CAP)
	if listened_seconds < rule.listen_floor_seconds:
		return Verdict(REASON_TOO_SHORT, rule.listen_floor_seconds - listened_seconds)
	if last_counted_at is not None:
		since = now - last_counted_at
		if since < rule.cooldown:
			remaining = math.ceil((rule.cooldown - since).total_seconds())
			return Verdict(REASON_COOLDOWN, remaining)
	if not interleave_satisfied(history, track_key, rule.interleave_required):
		return Verdict(REASON_INTERLEAVE)
	return Verdict()


def stream_points(platform: str, is_main_song: bool) -> int:
	if rule_family(platform) == tracks.YOUTUBE:
		return YOUTUBE_MAIN_POINTS if is_main_song else YOUTUBE_OTHER_POINTS
	return SPOTIFY_MAIN_POINTS if is_main_song else SPOTIFY_OTHER_POINTS


def crosses_milestone(main_song_total: int) -> bool:
	return main_song_total > 0 and main_song_total % MILESTONE_EVERY == 0
