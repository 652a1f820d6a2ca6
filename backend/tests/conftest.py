import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from streamroom.domain.broadcast import repo as broadcast_repo
from streamroom.domain.events import repo as events_repo
from streamroom.domain.participants import repo as participants_repo
from streamroom.domain.streams import repo as streams_repo
from streamroom.infra import postgres
from streamroom.infra.clock import FrozenClock
from streamroom.main import app


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from streamroom.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)
	postgres.set_pool(None)


@pytest_asyncio.fixture(autouse=True)
async def reset_memory_stores():
	for module in (streams_repo, participants_repo, events_repo, broadcast_repo):
		await module.reset_memory_state()
	yield


@pytest.fixture
def clock():
	return FrozenClock()


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
