from unittest.mock import AsyncMock, MagicMock

import pytest
from socketio import exceptions as sio_exceptions

from sathi.client import RealtimeClient, SendRejected
from sathi.domain.realtime.events import NewMessage


def _fake_sio():
    sio = MagicMock()
    sio.connect = AsyncMock()
    sio.disconnect = AsyncMock()
    sio.emit = AsyncMock()
    sio.call = AsyncMock()
    return sio


def _handlers(sio):
    return {call.args[0]: call.args[1] for call in sio.on.call_args_list}


def _echo_ack(message_id="m1"):
    async def fake_call(event, payload, namespace=None, timeout=None):
        return {
            "ok": True,
            "message": {
                "id": message_id,
                "chatId": payload["chatId"],
                "sender": {"id": "me", "name": "Me"},
                "text": payload["text"],
                "clientMsgId": payload["clientMsgId"],
                "createdAt": "2024-05-01T08:30:00Z",
            },
        }

    return fake_call


@pytest.mark.asyncio
async def test_send_resolves_pending_operation():
    sio = _fake_sio()
    sio.call.side_effect = _echo_ack()
    client = RealtimeClient("http://localhost:8000", sio=sio)

    message = await client.send_message("c1", "hello")

    event, payload = sio.call.await_args.args
    assert event == "send_message"
    assert payload["chatId"] == "c1"
    assert message.client_msg_id == payload["clientMsgId"]
    assert len(client.pending) == 0


@pytest.mark.asyncio
async def test_refused_send_stays_failed_until_retried():
    sio = _fake_sio()
    sio.call.return_value = {"ok": False, "error": "send_failed"}
    client = RealtimeClient("http://localhost:8000", sio=sio)

    with pytest.raises(SendRejected) as exc:
        await client.send_message("c1", "flaky")
    op = exc.value.op
    assert exc.value.error == "send_failed"
    assert client.pending.get(op.client_msg_id).status == "failed"

    sio.call.return_value = None
    sio.call.side_effect = _echo_ack("m2")
    message = await client.retry(op.client_msg_id)

    assert message.id == "m2"
    assert message.client_msg_id == op.client_msg_id
    assert op.attempts == 2
    assert op.client_msg_id not in client.pending


@pytest.mark.asyncio
async def test_ack_timeout_marks_send_failed():
    sio = _fake_sio()
    sio.call.side_effect = sio_exceptions.TimeoutError()
    client = RealtimeClient("http://localhost:8000", sio=sio)

    with pytest.raises(SendRejected) as exc:
        await client.send_message("c1", "anyone there?")

    assert exc.value.error == "timeout"
    assert exc.value.op.status == "failed"


@pytest.mark.asyncio
async def test_listeners_registered_before_connect_receive_typed_events():
    sio = _fake_sio()
    client = RealtimeClient("http://localhost:8000", sio=sio)
    received = []
    client.on_event("new_message", received.append)
    handlers = _handlers(sio)

    await handlers["new_message"](
        {
            "chatId": "c1",
            "message": {
                "id": "m1",
                "chatId": "c1",
                "sender": {"id": "bob"},
                "text": "early bird",
                "createdAt": "2024-05-01T08:30:00Z",
            },
        }
    )
    assert received == []

    await handlers["connect"]()

    assert len(received) == 1
    assert isinstance(received[0], NewMessage)
    assert received[0].message.text == "early bird"


@pytest.mark.asyncio
async def test_ready_event_records_identity_and_bad_payloads_are_dropped():
    sio = _fake_sio()
    client = RealtimeClient("http://localhost:8000", sio=sio)
    await _handlers(sio)["connect"]()

    await client.receive("realtime:ready", {"userId": "me"})

    assert client.user_id == "me"
    assert await client.receive("new_message", {"chatId": "c1"}) == 0


@pytest.mark.asyncio
async def test_connect_passes_token_in_handshake_auth():
    sio = _fake_sio()
    client = RealtimeClient("http://localhost:8000", sio=sio)

    await client.connect("tok-1")
    await client.start_typing("c1")

    assert sio.connect.await_args.kwargs["auth"] == {"token": "tok-1"}
    sio.emit.assert_awaited_with("typing_start", {"chatId": "c1"}, namespace="/")
