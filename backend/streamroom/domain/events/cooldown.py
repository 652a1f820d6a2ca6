"""At-most-one start per cooldown window.

The "last started at" marker for each (room, kind[, phone]) scope lives in
Redis and is replaced with a compare-and-swap inside WATCH/MULTI, so two
concurrent starts in the same window cannot both pass.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from streamroom.infra.redis import redis_client


def marker_key(room_id: str, kind: str, phone_number: Optional[str] = None) -> str:
	if phone_number:
		return f"me:last:{room_id}:{kind}:{phone_number}"
	return f"me:last:{room_id}:{kind}"


class CooldownGate:
	async def try_acquire(
		self,
		room_id: str,
		kind: str,
		*,
		now: datetime,
		cooldown: timedelta,
		phone_number: Optional[str] = None,
	) -> bool:
		key = marker_key(room_id, kind, phone_number)
		# Expiry only reclaims memory; the comparison below uses the injected clock
		ttl_ms = max(int(cooldown.total_seconds() * 1000), 1)

		async def _apply(pipe) -> bool:
			raw = await pipe.get(key)
			if raw:
				last = datetime.fromisoformat(raw)
				if now - last < cooldown:
					return False
			pipe.multi()
			pipe.set(key, now.isoformat(), px=ttl_ms)
			return True

		return await redis_client.transaction(_apply, key, value_from_callable=True)

	async def release(self, room_id: str, kind: str, *, now: datetime, phone_number: Optional[str] = None) -> None:
		"""Drop the marker if it still holds `now`, e.g. when the insert after acquiring fails."""
		key = marker_key(room_id, kind, phone_number)

		async def _apply(pipe) -> None:
			raw = await pipe.get(key)
			pipe.multi()
			if raw == now.isoformat():
				pipe.delete(key)

		await redis_client.transaction(_apply, key)
