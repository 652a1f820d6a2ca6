"""Injectable time source.

Cooldowns, deadlines and the daily caps all read "now" through a clock so
tests can move time forward without sleeping.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
	def now(self) -> datetime:
		...


class SystemClock:
	def now(self) -> datetime:
		return datetime.now(timezone.utc)


class FrozenClock:
	"""Manually driven clock for tests."""

	def __init__(self, start: Optional[datetime] = None) -> None:
		self._now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

	def now(self) -> datetime:
		return self._now

	def set(self, when: datetime) -> None:
		self._now = when

	def advance(self, *, seconds: float = 0, minutes: float = 0, hours: float = 0) -> datetime:
		self._now = self._now + timedelta(seconds=seconds, minutes=minutes, hours=hours)
		return self._now


system_clock = SystemClock()


def day_start(moment: datetime, offset_minutes: int = 0) -> datetime:
	"""Return the UTC instant at which `moment`'s local day began."""
	shift = timedelta(minutes=offset_minutes)
	local = moment.astimezone(timezone.utc) + shift
	midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
	return midnight - shift


def local_date_key(moment: datetime, offset_minutes: int = 0) -> str:
	local = moment.astimezone(timezone.utc) + timedelta(minutes=offset_minutes)
	return local.strftime("%Y-%m-%d")
