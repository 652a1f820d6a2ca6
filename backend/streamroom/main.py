"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import asyncpg
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from streamroom.api import broadcasts, events, ops, participants, streams
from streamroom.api.errors import install_error_handlers
from streamroom.domain.broadcast.sockets import RoomsNamespace, set_namespace as set_rooms_namespace
from streamroom.infra import postgres
from streamroom.obs import init as obs_init
from streamroom.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	try:
		await postgres.init_pool()
	except (OSError, asyncpg.PostgresError):
		# repositories fall back to their in-memory stores
		logger.warning("postgres_pool_unavailable", exc_info=True)
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="Streamroom", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True. Replace '*' with explicit origins.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
rooms_namespace = RoomsNamespace()
sio.register_namespace(rooms_namespace)
set_rooms_namespace(rooms_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.include_router(participants.router)
app.include_router(streams.router)
app.include_router(events.router)
app.include_router(broadcasts.router)
app.include_router(ops.router, tags=["ops"])
