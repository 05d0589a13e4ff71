import pytest

from sathi.domain.common.errors import NotificationNotFound
from sathi.domain.notifications.models import NotificationCategory, NotificationPriority, NotificationType
from sathi.domain.notifications.repo import InMemoryNotificationRepository, NewNotification
from sathi.domain.notifications.service import NotificationService
from sathi.domain.realtime.fanout import NotificationFanout


class ExplodingRegistry:
    async def connections_for(self, user_id):
        raise RuntimeError("registry offline")


@pytest.mark.asyncio
async def test_notify_persists_and_delivers_to_every_connection(hub, transport, connect):
    await connect("b1", "bob")
    await connect("b2", "bob")

    notification = await hub.notifications.notify(
        "bob",
        NotificationType.RIDE_CONFIRMATION,
        "Ride confirmed",
        "Alice accepted your request",
        sender_id="alice",
        payload={"rideId": "ride-9"},
    )

    assert notification.category is NotificationCategory.RIDE
    assert await hub.notifications.unread_count("bob") == 1
    deliveries = transport.events("new_notification")
    assert sorted(sid for sid, _ in deliveries) == ["b1", "b2"]
    payload = deliveries[0][1]
    assert payload["id"] == notification.notification_id
    assert payload["type"] == "ride_confirmation"
    assert payload["category"] == "ride"
    assert payload["data"] == {"rideId": "ride-9"}
    assert payload["isRead"] is False


@pytest.mark.asyncio
async def test_offline_recipient_still_gets_persisted_notification(hub, transport):
    await hub.notifications.notify("carol", "friend_request", "New request", "Dan wants to connect")

    assert transport.sent == []
    items = await hub.notifications.list_for_user("carol")
    assert [item.title for item in items] == ["New request"]
    assert items[0].category is NotificationCategory.SOCIAL


@pytest.mark.asyncio
async def test_fanout_failure_never_fails_producer():
    repo = InMemoryNotificationRepository()
    service = NotificationService(repo, NotificationFanout(ExplodingRegistry(), None))

    notification = await service.notify("bob", "system", "Maintenance", "Back soon")

    assert await repo.unread_count("bob") == 1
    assert notification.priority is NotificationPriority.MEDIUM


@pytest.mark.asyncio
async def test_unreachable_connection_is_skipped(hub, transport, connect):
    await connect("b1", "bob")
    await connect("b2", "bob")
    transport.unreachable.add("b1")

    notification = await hub.notifications.notify("bob", "eta_change", "ETA updated", "Driver is 5 min out")

    assert await hub.fanout.deliver(notification) == 1
    assert transport.received_by("b1") == []


@pytest.mark.asyncio
async def test_notify_many_skips_sender_and_duplicates(hub):
    created = await hub.notifications.notify_many(
        ["alice", "bob", "bob", "carol"],
        NotificationType.RIDE_CANCELLATION,
        "Ride cancelled",
        "The 9am ride was cancelled",
        sender_id="alice",
    )

    assert sorted(n.recipient_id for n in created) == ["bob", "carol"]
    assert await hub.notifications.unread_count("alice") == 0


@pytest.mark.asyncio
async def test_sos_defaults_to_urgent(hub):
    notification = await hub.notifications.notify("bob", "sos", "SOS", "Alice needs help")

    assert notification.priority is NotificationPriority.URGENT
    assert notification.category is NotificationCategory.SOS


@pytest.mark.asyncio
async def test_read_state_is_monotonic_and_scoped_to_recipient():
    repo = InMemoryNotificationRepository()
    created = await repo.create_many(
        [
            NewNotification(recipient_id="bob", type=NotificationType.MESSAGE, title="t1", body="b1"),
            NewNotification(recipient_id="bob", type=NotificationType.MESSAGE, title="t2", body="b2"),
            NewNotification(recipient_id="carol", type=NotificationType.MESSAGE, title="t3", body="b3"),
        ]
    )
    bob_first, bob_second, carol_item = created

    assert await repo.mark_read("bob", [bob_first.notification_id, carol_item.notification_id]) == 1
    assert await repo.mark_read("bob", [bob_first.notification_id]) == 0
    assert await repo.unread_count("bob") == 1
    assert await repo.unread_count("carol") == 1

    unread = await repo.list_for_user("bob", is_read=False)
    assert [item.notification_id for item in unread] == [bob_second.notification_id]

    assert await repo.mark_all_read("bob") == 1
    assert await repo.unread_count("bob") == 0


@pytest.mark.asyncio
async def test_listing_filters_and_pages():
    repo = InMemoryNotificationRepository()
    created = []
    for kind, priority in [
        (NotificationType.RIDE_REQUEST, NotificationPriority.HIGH),
        (NotificationType.ETA_CHANGE, NotificationPriority.MEDIUM),
        (NotificationType.FRIEND_REQUEST, NotificationPriority.MEDIUM),
        (NotificationType.SOS, NotificationPriority.URGENT),
    ]:
        created.append(
            await repo.create(NewNotification(recipient_id="bob", type=kind, title=kind.value, body="-", priority=priority))
        )
    await repo.mark_read("bob", [created[1].notification_id])

    rides = await repo.list_for_user("bob", category=NotificationCategory.RIDE)
    assert {n.type for n in rides} == {NotificationType.RIDE_REQUEST, NotificationType.ETA_CHANGE}
    unread_rides = await repo.list_for_user("bob", category=NotificationCategory.RIDE, is_read=False)
    assert [n.type for n in unread_rides] == [NotificationType.RIDE_REQUEST]
    read = await repo.list_for_user("bob", is_read=True)
    assert [n.notification_id for n in read] == [created[1].notification_id]
    urgent = await repo.list_for_user("bob", priority=NotificationPriority.URGENT)
    assert [n.type for n in urgent] == [NotificationType.SOS]

    everything = await repo.list_for_user("bob")
    first_page = await repo.list_for_user("bob", limit=3)
    second_page = await repo.list_for_user("bob", limit=3, offset=3)
    assert first_page + second_page == everything
    assert len(second_page) == 1


@pytest.mark.asyncio
async def test_unread_counts_and_read_all_by_category(hub):
    await hub.notifications.notify("bob", "ride_request", "Ride", "Join?")
    await hub.notifications.notify("bob", "capacity_alert", "Ride full", "No seats left")
    await hub.notifications.notify("bob", "friend_activity", "Dan", "Dan posted a ride")

    assert await hub.notifications.unread_count("bob", category="ride") == 2
    counts = await hub.notifications.unread_by_category("bob")
    assert counts == {
        NotificationCategory.RIDE: 2,
        NotificationCategory.SOCIAL: 1,
        NotificationCategory.SOS: 0,
        NotificationCategory.SYSTEM: 0,
    }

    assert await hub.notifications.mark_all_read("bob", category=NotificationCategory.RIDE) == 2
    assert await hub.notifications.unread_count("bob", category="ride") == 0
    assert await hub.notifications.unread_count("bob") == 1


@pytest.mark.asyncio
async def test_delete_only_removes_own_notification(hub):
    mine = await hub.notifications.notify("bob", "system", "Maintenance", "Tonight")
    theirs = await hub.notifications.notify("carol", "system", "Maintenance", "Tonight")

    with pytest.raises(NotificationNotFound):
        await hub.notifications.delete("bob", theirs.notification_id)
    await hub.notifications.delete("bob", mine.notification_id)
    with pytest.raises(NotificationNotFound):
        await hub.notifications.delete("bob", mine.notification_id)

    assert await hub.notifications.list_for_user("bob") == []
    assert [n.notification_id for n in await hub.notifications.list_for_user("carol")] == [theirs.notification_id]
