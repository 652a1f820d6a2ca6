"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

log = logging.getLogger(__name__)


REQUEST_COUNTER = Counter(
	"streamroom_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"streamroom_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"streamroom_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"streamroom_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

LISTENING_SESSIONS = Counter(
	"streamroom_listening_sessions_total",
	"Listening session starts by outcome",
	["action", "platform"],
)

STREAM_ATTEMPTS = Counter(
	"streamroom_stream_attempts_total",
	"Stream count attempts by platform and outcome",
	["platform", "outcome"],
)

POINTS_AWARDED = Counter(
	"streamroom_points_awarded_total",
	"Points credited by source",
	["source"],
)

MINI_EVENT_TRANSITIONS = Counter(
	"streamroom_mini_event_transitions_total",
	"Mini-event state transitions",
	["kind", "status"],
)

MINI_EVENT_START_REJECTS = Counter(
	"streamroom_mini_event_start_rejects_total",
	"Mini-event starts rejected",
	["kind", "reason"],
)

BROADCAST_EVENTS = Counter(
	"streamroom_broadcast_events_total",
	"Broadcast events persisted per type",
	["type"],
)

BROADCAST_DEDUPED = Counter(
	"streamroom_broadcast_deduped_total",
	"Broadcast events suppressed by the dedup window",
	["type"],
)

REDIS_UP = Gauge("streamroom_redis_up", "Redis availability (1=up,0=down)")
POSTGRES_UP = Gauge("streamroom_postgres_up", "Postgres availability (1=up,0=down)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_listening_session(action: str, platform: str) -> None:
	LISTENING_SESSIONS.labels(action=action, platform=platform).inc()


def inc_stream_attempt(platform: str, outcome: str) -> None:
	STREAM_ATTEMPTS.labels(platform=platform or "unknown", outcome=outcome).inc()


def inc_points_awarded(source: str, amount: int) -> None:
	if amount <= 0:
		return
	POINTS_AWARDED.labels(source=source).inc(amount)


def inc_mini_event_transition(kind: str, status: str) -> None:
	MINI_EVENT_TRANSITIONS.labels(kind=kind, status=status).inc()


def inc_mini_event_start_reject(kind: str, reason: str) -> None:
	MINI_EVENT_START_REJECTS.labels(kind=kind, reason=reason).inc()


def inc_broadcast_event(event_type: str) -> None:
	BROADCAST_EVENTS.labels(type=event_type).inc()


def inc_broadcast_deduped(event_type: str) -> None:
	BROADCAST_DEDUPED.labels(type=event_type).inc()


def mark_redis(ok: bool) -> None:
	REDIS_UP.set(1 if ok else 0)


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)
