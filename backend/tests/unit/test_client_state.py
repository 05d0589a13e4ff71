from datetime import datetime, timedelta, timezone

import pytest

from sathi.client.state import ChatListState, PendingOperations, ThreadState, TypingState
from sathi.domain.chat.schemas import MessageContent, MessagePayload, MessageSender
from sathi.domain.realtime.events import NewMessage, UserStoppedTyping, UserTyping

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _server_message(message_id, *, text="hi", sender="alice", client_msg_id=None, chat_id="c1", offset=0):
    return MessagePayload(
        id=message_id,
        chat_id=chat_id,
        sender=MessageSender(id=sender),
        text=text,
        client_msg_id=client_msg_id,
        created_at=T0 + timedelta(seconds=offset),
    )


def test_ack_replaces_optimistic_copy():
    pending = PendingOperations()
    thread = ThreadState("c1")
    op = pending.begin("c1", MessageContent(text="hello"))
    thread.add_optimistic(op)

    ack = _server_message("m1", text="hello", client_msg_id=op.client_msg_id)
    pending.resolve(op.client_msg_id, ack)
    thread.confirm(ack)

    assert [entry.message_id for entry in thread.entries] == ["m1"]
    assert thread.entries[0].status == "sent"
    assert len(pending) == 0


def test_same_text_is_never_matched_by_content():
    thread = ThreadState("c1")
    pending = PendingOperations()
    op = pending.begin("c1", MessageContent(text="ok"))
    thread.add_optimistic(op)

    thread.apply_broadcast(_server_message("m-other", text="ok", sender="bob"))

    assert len(thread.entries) == 2
    assert thread.entries[0].status == "pending"


def test_broadcast_after_ack_is_not_duplicated():
    thread = ThreadState("c1")
    pending = PendingOperations()
    op = pending.begin("c1", MessageContent(text="hello"))
    thread.add_optimistic(op)
    ack = _server_message("m1", client_msg_id=op.client_msg_id)

    thread.confirm(ack)
    thread.apply_broadcast(ack)
    thread.apply_broadcast(ack)

    assert thread.message_ids() == ["m1"]


def test_broadcast_before_ack_reconciles_by_correlation_id():
    thread = ThreadState("c1")
    op = PendingOperations().begin("c1", MessageContent(text="hello"))
    thread.add_optimistic(op)
    server_copy = _server_message("m1", client_msg_id=op.client_msg_id)

    thread.apply_broadcast(server_copy)
    thread.confirm(server_copy)

    assert thread.message_ids() == ["m1"]
    assert len(thread.entries) == 1


def test_failed_send_can_be_retried():
    pending = PendingOperations()
    thread = ThreadState("c1")
    op = pending.begin("c1", MessageContent(text="flaky"))
    thread.add_optimistic(op)

    pending.reject(op.client_msg_id, "send_failed")
    thread.mark_failed(op.client_msg_id, "send_failed")
    assert thread.entries[0].status == "failed"

    retried = pending.retry(op.client_msg_id)
    thread.add_optimistic(retried)

    assert retried.attempts == 2
    assert retried.content.client_msg_id == op.client_msg_id
    assert [entry.status for entry in thread.entries] == ["pending"]


def test_only_failed_sends_retry():
    pending = PendingOperations()
    op = pending.begin("c1", MessageContent(text="x"))

    with pytest.raises(ValueError):
        pending.retry(op.client_msg_id)
    with pytest.raises(KeyError):
        pending.retry("unknown")


def test_read_flags_only_move_forward():
    thread = ThreadState("c1")
    thread.apply_broadcast(_server_message("m1"))
    thread.apply_broadcast(_server_message("m2", offset=1))

    assert thread.apply_read(["m1", "nope"]) == 1
    assert thread.apply_read(["m1"]) == 0
    assert [entry.message.read for entry in thread.entries] == [True, False]


def test_refetch_replaces_state_but_keeps_unconfirmed_sends():
    pending = PendingOperations()
    thread = ThreadState("c1")
    confirmed_op = pending.begin("c1", MessageContent(text="made it"))
    lost_op = pending.begin("c1", MessageContent(text="still pending"))
    thread.add_optimistic(confirmed_op)
    thread.add_optimistic(lost_op)
    thread.apply_broadcast(_server_message("stale"))

    thread.replace_all(
        [
            _server_message("m1", offset=1),
            _server_message("m2", client_msg_id=confirmed_op.client_msg_id, offset=2),
        ]
    )

    assert [entry.key for entry in thread.entries] == ["m1", "m2", lost_op.client_msg_id]


def test_typing_indicator_expires_without_stop():
    now = [100.0]
    typing = TypingState(self_id="me", timeout_seconds=3.0, clock=lambda: now[0])

    typing.apply(UserTyping(chat_id="c1", user_id="bob", user_name="Bob"))
    typing.apply(UserTyping(chat_id="c1", user_id="me", user_name="Me"))
    assert typing.active("c1") == [("bob", "Bob")]

    now[0] += 3.5
    assert typing.active("c1") == []


def test_typing_stop_clears_immediately():
    typing = TypingState(timeout_seconds=3.0, clock=lambda: 0.0)
    typing.start("c1", "bob", "Bob")

    typing.apply(UserStoppedTyping(chat_id="c1", user_id="bob", user_name="Bob"))

    assert typing.active("c1") == []


def test_chat_list_badges_follow_new_messages():
    chats = ChatListState("me")
    chats.open_chat_id = "c2"

    chats.apply(NewMessage(chat_id="c1", message=_server_message("m1", sender="bob", offset=1)))
    chats.apply(NewMessage(chat_id="c1", message=_server_message("m1", sender="bob", offset=1)))
    chats.apply(NewMessage(chat_id="c1", message=_server_message("m2", sender="me", offset=2)))
    chats.apply(NewMessage(chat_id="c2", message=_server_message("m3", sender="bob", chat_id="c2", offset=3)))

    assert chats.get("c1").unread == 1
    assert chats.get("c1").last_message.id == "m2"
    assert chats.get("c2").unread == 0
    assert [summary.chat_id for summary in chats.ordered()] == ["c2", "c1"]

    chats.clear("c1")
    assert chats.get("c1").unread == 0
