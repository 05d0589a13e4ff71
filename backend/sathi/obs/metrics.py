"""Central registry for Prometheus metrics used across the real-time backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"sathi_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"sathi_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"sathi_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"sathi_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event"],
)

SOCKET_AUTH = Counter(
	"sathi_socketio_auth_total",
	"Socket registrations by outcome",
	["result"],
)

CHAT_SEND = Counter(
	"sathi_chat_messages_sent_total",
	"Chat messages persisted and fanned out",
)

CHAT_SEND_FAILED = Counter(
	"sathi_chat_send_failures_total",
	"Chat sends rejected or failed before fanout",
	["reason"],
)

CHAT_READ = Counter(
	"sathi_chat_read_receipts_total",
	"Read receipts persisted",
)

FANOUT_DELIVERED = Counter(
	"sathi_fanout_delivered_total",
	"Live deliveries pushed to a connection",
	["event"],
)

FANOUT_DROPPED = Counter(
	"sathi_fanout_dropped_total",
	"Live deliveries dropped because the connection was unreachable",
	["event"],
)

NOTIFICATIONS_DELIVERED = Counter(
	"sathi_notifications_total",
	"Persisted notifications by live delivery outcome",
	["live"],
)

RATE_LIMITED_EVENTS = Counter(
	"sathi_rate_limited_total",
	"Events dropped due to rate limiting",
	["kind"],
)

ONLINE_USERS = Gauge(
	"sathi_online_users",
	"Users with at least one authenticated connection",
)

REDIS_UP = Gauge("sathi_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("sathi_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("sathi_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("sathi_postgres_latency_seconds", "Postgres ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def socket_auth(result: str) -> None:
	SOCKET_AUTH.labels(result=result).inc()


def set_online_users(count: int) -> None:
	ONLINE_USERS.set(count)


def chat_message_sent() -> None:
	CHAT_SEND.inc()


def chat_send_failed(reason: str) -> None:
	CHAT_SEND_FAILED.labels(reason=reason).inc()


def chat_read() -> None:
	CHAT_READ.inc()


def fanout_delivered(event: str) -> None:
	FANOUT_DELIVERED.labels(event=event).inc()


def fanout_dropped(event: str) -> None:
	FANOUT_DROPPED.labels(event=event).inc()


def notification_delivered(live: bool) -> None:
	NOTIFICATIONS_DELIVERED.labels(live="yes" if live else "no").inc()


def rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
