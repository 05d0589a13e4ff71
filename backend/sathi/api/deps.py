"""FastAPI dependencies resolving the real-time hub from application state."""

from __future__ import annotations

from fastapi import Request

from sathi.domain.realtime.hub import RealtimeHub


def get_hub(request: Request) -> RealtimeHub:
	return request.app.state.realtime
