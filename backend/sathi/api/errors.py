"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sathi.domain.common.errors import RealtimeError
from sathi.obs.logging import current_request_id


def get_request_id(request: Request, default: str = "unknown") -> str:
	return current_request_id() or getattr(request.state, "request_id", None) or default


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		payload = {"detail": exc.detail, "request_id": get_request_id(request)}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {
			"detail": "validation_error",
			"errors": jsonable_errors(exc),
			"request_id": get_request_id(request),
		}
		return JSONResponse(status_code=422, content=payload)

	@app.exception_handler(RealtimeError)
	async def realtime_exc_handler(request: Request, exc: RealtimeError):  # type: ignore[override]
		payload = {"detail": exc.reason, "request_id": get_request_id(request)}
		return JSONResponse(status_code=exc.status_code, content=payload)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
	# ctx may carry the raw exception object, which is not JSON serialisable
	return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]
