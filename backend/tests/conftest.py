import os
import sys
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("OBS_METRICS_PUBLIC", "true")

from sathi.domain.chat.repo import InMemoryChatRepository
from sathi.domain.notifications.repo import InMemoryNotificationRepository
from sathi.domain.realtime.hub import RealtimeHub, build_hub
from sathi.domain.realtime.registry import Connection
from sathi.infra import postgres
from sathi.infra.jwt import encode_access
from sathi.settings import settings


class RecordingTransport:
	"""Captures every push; sids in ``unreachable`` fail like a dropped socket."""

	def __init__(self) -> None:
		self.sent: List[Tuple[str, str, Any]] = []
		self.unreachable: Set[str] = set()

	async def send(self, sid: str, event: str, payload: Any) -> None:
		if sid in self.unreachable:
			raise ConnectionError(f"{sid} is gone")
		self.sent.append((sid, event, payload))

	def events(self, name: str) -> List[Tuple[str, Any]]:
		return [(sid, payload) for sid, event, payload in self.sent if event == name]

	def received_by(self, sid: str, name: Optional[str] = None) -> List[Any]:
		return [
			payload
			for target, event, payload in self.sent
			if target == sid and (name is None or event == name)
		]

	def clear(self) -> None:
		self.sent.clear()


def make_token(user_id: str, name: str = "Test User", **claims: Any) -> str:
	return encode_access({"sub": user_id, "name": name, **claims})


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from sathi.infra.redis import redis_client, set_redis_client

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


@pytest.fixture(autouse=True)
def force_test_settings():
	original_backend = settings.persistence_backend
	original_public = settings.obs_metrics_public
	settings.persistence_backend = "memory"
	settings.obs_metrics_public = True
	try:
		yield
	finally:
		settings.persistence_backend = original_backend
		settings.obs_metrics_public = original_public


@pytest.fixture
def transport() -> RecordingTransport:
	return RecordingTransport()


@pytest.fixture
def chat_repo() -> InMemoryChatRepository:
	return InMemoryChatRepository()


@pytest.fixture
def hub(transport, chat_repo) -> RealtimeHub:
	return build_hub(
		transport,
		chat_repo=chat_repo,
		notification_repo=InMemoryNotificationRepository(),
	)


@pytest.fixture
def token_for():
	return make_token


@pytest.fixture
def connect(hub):
	"""Open and authenticate a connection: ``await connect("sid-1", "alice")``."""

	async def _connect(sid: str, user_id: Optional[str] = None, name: Optional[str] = None) -> Connection:
		conn = await hub.registry.add(sid)
		if user_id is not None:
			await hub.registry.register(sid, make_token(user_id, name or user_id.title()))
		return conn

	return _connect


@pytest_asyncio.fixture
async def api_client(hub):
	from sathi.main import create_app

	app = create_app(hub)
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
