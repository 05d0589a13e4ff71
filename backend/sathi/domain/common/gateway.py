"""Translate persistence gateway failures into errors the acting client sees."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Type

from sathi.domain.common.errors import RealtimeError, StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def gateway_errors(
	operation: str,
	*,
	error: Type[RealtimeError] = StoreUnavailable,
	**context: Any,
) -> Iterator[None]:
	"""Re-raise anything but a ``RealtimeError`` as ``error``, logging the cause."""
	try:
		yield
	except RealtimeError:
		raise
	except Exception as exc:
		logger.exception("persistence gateway call failed", extra={"operation": operation, **context})
		raise error() from exc
