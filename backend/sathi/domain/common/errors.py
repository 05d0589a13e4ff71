"""Domain-level exceptions shared by chat, notifications and the socket layer."""

from __future__ import annotations


class RealtimeError(Exception):
	"""Base class for failures surfaced to the acting client."""

	reason: str = "unknown"
	status_code: int = 400

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class Unauthenticated(RealtimeError):
	reason = "unauthenticated"
	status_code = 401


class ChatNotFound(RealtimeError):
	reason = "chat_not_found"
	status_code = 404


class NotificationNotFound(RealtimeError):
	reason = "notification_not_found"
	status_code = 404


class NotChatMember(RealtimeError):
	reason = "not_chat_member"
	status_code = 403


class InvalidPayload(RealtimeError):
	reason = "invalid_payload"
	status_code = 400


class RateLimited(RealtimeError):
	reason = "rate_limited"
	status_code = 429


class SendFailed(RealtimeError):
	"""The durable write behind a send did not succeed; nothing was broadcast."""

	reason = "send_failed"
	status_code = 503


class IdentityLocked(RealtimeError):
	"""The connection is already bound to another user."""

	reason = "identity_locked"
	status_code = 409


class StoreUnavailable(RealtimeError):
	"""A persistence gateway read or write failed outside the send path."""

	reason = "store_unavailable"
	status_code = 503
