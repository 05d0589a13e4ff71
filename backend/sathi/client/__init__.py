"""Python client for the real-time channel and the local state it reconciles."""

from .queue import ListenerQueue
from .realtime import RealtimeClient, SendRejected
from .state import ChatListState, PendingOperations, PendingSend, ThreadState, TypingState

__all__ = [
	"ChatListState",
	"ListenerQueue",
	"PendingOperations",
	"PendingSend",
	"RealtimeClient",
	"SendRejected",
	"ThreadState",
	"TypingState",
]
