"""FastAPI application entrypoint.

Serve ``sathi.main:socket_app`` so Socket.IO and the REST routes share one
ASGI process.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sathi.api import chat, notifications, ops
from sathi.api.errors import install_error_handlers
from sathi.domain.realtime.hub import RealtimeHub, build_hub
from sathi.domain.realtime.sockets import RealtimeNamespace
from sathi.domain.realtime.transport import SocketIOTransport
from sathi.infra import postgres
from sathi.obs import init as obs_init
from sathi.settings import settings

logger = logging.getLogger(__name__)


def create_server() -> socketio.AsyncServer:
	return socketio.AsyncServer(
		async_mode="asgi",
		cors_allowed_origins=settings.cors_allow_origins,
		ping_interval=settings.socket_ping_interval,
		ping_timeout=settings.socket_ping_timeout,
	)


def create_app(hub: RealtimeHub, *, sio: Optional[socketio.AsyncServer] = None) -> FastAPI:
	@asynccontextmanager
	async def lifespan(app: FastAPI):
		if not settings.uses_memory_store():
			await postgres.init_pool()
			await hub.ensure_schema()
		logger.info("realtime service started", extra={"backend": settings.persistence_backend})
		try:
			yield
		finally:
			if not settings.uses_memory_store():
				await postgres.close_pool()

	app = FastAPI(title="Sathi Realtime", lifespan=lifespan)
	app.state.realtime = hub
	if sio is not None:
		app.state.sio = sio
	obs_init(app)
	install_error_handlers(app)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=settings.cors_allow_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(chat.router)
	app.include_router(notifications.router)
	app.include_router(ops.router)
	return app


sio = create_server()
hub = build_hub(SocketIOTransport(sio, settings.realtime_namespace))
sio.register_namespace(RealtimeNamespace(hub, settings.realtime_namespace))
app = create_app(hub, sio=sio)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
