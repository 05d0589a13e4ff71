"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from sathi.obs import logging as obs_logging
from sathi.obs import middleware
from sathi.settings import settings

_logging_configured = False


def init(app: FastAPI) -> None:
	"""Configure process logging once; instrument every app passed in."""
	global _logging_configured
	if not settings.obs_enabled:
		return
	if not _logging_configured:
		obs_logging.configure_logging()
		_logging_configured = True
	middleware.install(app)


__all__ = ["init"]
