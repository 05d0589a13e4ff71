import pytest

from sathi.client.queue import ListenerQueue


def _recorder(log, label):
    def handler(payload):
        log.append((label, payload))

    return handler


@pytest.mark.asyncio
async def test_queued_listeners_attach_in_order_on_flush():
    queue = ListenerQueue()
    log = []
    a, b, c = (_recorder(log, label) for label in "abc")

    queue.on_event("new_message", a)
    queue.on_event("new_message", b)
    queue.on_event("new_message", c)
    assert queue.listeners("new_message") == []

    assert await queue.flush() == 3
    assert queue.pending() == []
    assert queue.listeners("new_message") == [a, b, c]

    await queue.dispatch("new_message", 1)
    await queue.dispatch("new_message", 2)
    assert log == [("a", 1), ("b", 1), ("c", 1), ("a", 2), ("b", 2), ("c", 2)]


@pytest.mark.asyncio
async def test_events_before_flush_are_replayed_not_dropped():
    queue = ListenerQueue()
    log = []
    queue.on_event("user_typing", _recorder(log, "typing"))

    assert await queue.dispatch("user_typing", "early") == 0
    await queue.flush()

    assert log == [("typing", "early")]


@pytest.mark.asyncio
async def test_connected_queue_attaches_immediately():
    queue = ListenerQueue()
    await queue.flush()
    log = []

    queue.on_event("messages_read", _recorder(log, "read"))

    assert await queue.dispatch("messages_read", {"chatId": "c1"}) == 1
    assert log == [("read", {"chatId": "c1"})]


@pytest.mark.asyncio
async def test_off_removes_from_pending_queue():
    queue = ListenerQueue()
    log = []
    handler = _recorder(log, "x")
    queue.on_event("new_notification", handler)

    assert queue.off("new_notification", handler) is True
    await queue.flush()
    await queue.dispatch("new_notification", "n1")

    assert log == []


@pytest.mark.asyncio
async def test_off_removes_attached_listener():
    queue = ListenerQueue()
    await queue.flush()
    log = []
    handler = _recorder(log, "x")
    queue.on_event("new_notification", handler)

    assert queue.off("new_notification", handler) is True
    assert queue.off("new_notification", handler) is False
    assert await queue.dispatch("new_notification", "n1") == 0


@pytest.mark.asyncio
async def test_listeners_survive_disconnect_and_new_ones_queue():
    queue = ListenerQueue()
    log = []
    early = _recorder(log, "early")
    late = _recorder(log, "late")
    queue.on_event("new_message", early)
    await queue.flush()

    queue.mark_disconnected()
    queue.on_event("new_message", late)
    await queue.dispatch("new_message", "while-down")
    await queue.flush()

    assert log == [("early", "while-down"), ("late", "while-down")]


@pytest.mark.asyncio
async def test_failing_listener_does_not_stop_the_rest():
    queue = ListenerQueue()
    log = []

    def broken(payload):
        raise RuntimeError("boom")

    async def async_handler(payload):
        log.append(("async", payload))

    queue.on_event("new_message", broken)
    queue.on_event("new_message", async_handler)
    await queue.flush()

    assert await queue.dispatch("new_message", "m1") == 1
    assert log == [("async", "m1")]


@pytest.mark.asyncio
async def test_events_arriving_during_replay_wait_their_turn():
    queue = ListenerQueue()
    log = []

    async def handler(payload):
        log.append(payload)
        if payload == "buffered-1":
            # The socket delivers a fresh event while the replay is still running.
            await queue.dispatch("new_message", "live")

    queue.on_event("new_message", handler)
    await queue.dispatch("new_message", "buffered-1")
    await queue.dispatch("new_message", "buffered-2")

    await queue.flush()

    assert log == ["buffered-1", "buffered-2", "live"]
    assert queue.connected is True


@pytest.mark.asyncio
async def test_listener_registered_during_replay_is_attached():
    queue = ListenerQueue()
    log = []
    late = _recorder(log, "late")

    def first(payload):
        log.append(("first", payload))
        if payload == "m1":
            queue.on_event("new_message", late)

    queue.on_event("new_message", first)
    await queue.dispatch("new_message", "m1")
    await queue.dispatch("new_message", "m2")
    await queue.flush()

    assert queue.pending() == []
    assert queue.listeners("new_message") == [first, late]
    assert log == [("first", "m1"), ("first", "m2"), ("late", "m2")]
